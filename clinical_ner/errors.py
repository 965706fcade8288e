from __future__ import annotations

from typing import Optional


class AnnotationError(Exception):
    """Base class for a failed annotation request.

    Parameters
    ----------
    message:
        Technical description, used in logs.
    user_message:
        Short human-readable text shown in the page. Defaults to ``message``.
    """

    def __init__(self, message: str, user_message: Optional[str] = None) -> None:
        super().__init__(message)
        self.user_message = user_message or message


class TransportError(AnnotationError):
    """The request could not be sent or no response was received."""


class ServiceError(AnnotationError):
    """The service answered with a non-2xx status."""

    def __init__(self, status_code: int, body: str = "") -> None:
        super().__init__(
            f"Annotation service returned HTTP {status_code}: {body[:200]!r}",
            user_message=f"The annotation service returned an error (HTTP status {status_code}). Please try again.",
        )
        self.status_code = status_code


class ParseError(AnnotationError):
    """The response body was not JSON or did not match the annotation shape."""


# ----------------------------
# Controller usage errors
# ----------------------------

class EmptyInputError(ValueError):
    """Raised when submit is called with blank text."""


class SubmissionInProgressError(RuntimeError):
    """Raised when submit is called while a request is already in flight."""


class ViewClosedError(RuntimeError):
    """Raised when submit is called on a view that has been closed."""
