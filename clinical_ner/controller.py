"""
View controller for the clinical entity extraction page.

The controller owns the input text and a request state. The state is one of
four variants, and every variant carries the results currently on display:

- ``Idle``: nothing submitted yet.
- ``Loading``: one request in flight; previous results still shown.
- ``Success``: the last request succeeded; results replaced wholesale.
- ``Failed``: the last request failed; previous results preserved.

Only one request may be in flight per controller. Closing the controller
cancels the pending request and drops its outcome.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional, Tuple, Union

import httpx

from clinical_ner.client import annotate
from clinical_ner.config import Settings
from clinical_ner.errors import (
    AnnotationError,
    EmptyInputError,
    SubmissionInProgressError,
    ViewClosedError,
)
from clinical_ner.models import (
    AnnotationResult,
    RenderedEvidence,
    RenderedResult,
    RenderedState,
)


logger = logging.getLogger(__name__)

PLACEHOLDER = 'No results to display. Enter clinical text and click "Extract Entities" to begin.'
UNEXPECTED_ERROR_MESSAGE = "Failed to fetch data. Please try again."
SEMANTIC_TYPE_SEPARATOR = ", "

Results = Tuple[AnnotationResult, ...]


# ----------------------------
# Request state
# ----------------------------

@dataclass(frozen=True)
class Idle:
    results: Results = ()
    status = "idle"


@dataclass(frozen=True)
class Loading:
    results: Results = ()
    status = "loading"


@dataclass(frozen=True)
class Success:
    results: Results = ()
    status = "success"


@dataclass(frozen=True)
class Failed:
    message: str
    results: Results = ()
    error: Optional[BaseException] = None
    status = "failed"


RequestState = Union[Idle, Loading, Success, Failed]


# ----------------------------
# Controller
# ----------------------------

class AnnotationController:
    """State holder and submit action for one mounted view.

    Parameters
    ----------
    settings:
        Service configuration.
    transport:
        Optional httpx transport passed through to the client (tests).
    """

    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        self.settings = settings
        self.transport = transport
        self.text = ""
        self.state: RequestState = Idle()
        self._pending: Optional[asyncio.Future] = None
        self._closed = False

    @property
    def results(self) -> Results:
        return self.state.results

    @property
    def is_loading(self) -> bool:
        return isinstance(self.state, Loading)

    @property
    def error(self) -> Optional[str]:
        return self.state.message if isinstance(self.state, Failed) else None

    @property
    def closed(self) -> bool:
        return self._closed

    def can_submit(self) -> bool:
        return not self._closed and not self.is_loading and bool(self.text.strip())

    async def submit(self, text: Optional[str] = None) -> RequestState:
        """Send the current text to the annotation service and update state.

        Parameters
        ----------
        text:
            If given, replaces the current input text first.

        Returns
        -------
        RequestState
            The state after the request resolved.

        Raises
        ------
        EmptyInputError
            The text is empty or whitespace only. No request is made.
        SubmissionInProgressError
            A request is already in flight. No request is made.
        ViewClosedError
            The view has been closed.
        """
        if self._closed:
            raise ViewClosedError("This view has been closed")
        if self.is_loading:
            raise SubmissionInProgressError("A request is already in progress.")
        if text is not None:
            self.text = text
        if not self.text.strip():
            raise EmptyInputError("Please enter some clinical text first.")

        previous = self.results
        self.state = Loading(results=previous)
        self._pending = asyncio.ensure_future(annotate(self.text, self.settings, transport=self.transport))

        outcome: RequestState = Failed(UNEXPECTED_ERROR_MESSAGE, results=previous)
        try:
            outcome = Success(results=tuple(await self._pending))
        except AnnotationError as exc:
            logger.warning("Annotation failed: %s", exc)
            outcome = Failed(exc.user_message, results=previous, error=exc)
        except asyncio.CancelledError:
            if not self._closed:
                raise
        finally:
            self._pending = None
            if self._closed:
                logger.info("View closed while a request was pending; result discarded")
            else:
                self.state = outcome
        return self.state

    def close(self) -> None:
        """Tear down the view. A pending request is cancelled and its result dropped."""
        self._closed = True
        if self._pending is not None and not self._pending.done():
            self._pending.cancel()


# ----------------------------
# Rendering
# ----------------------------

def render_result(result: AnnotationResult) -> RenderedResult:
    return RenderedResult(
        matched_text=result.matched_text,
        start=result.start,
        end=result.end,
        evidence=[
            RenderedEvidence(
                cui=ev.concept_info.cui,
                preferred_name=ev.concept_info.preferred_name,
                semantic_types=SEMANTIC_TYPE_SEPARATOR.join(ev.concept_info.semantic_types),
            )
            for ev in result.evidence
        ],
    )


def render_state(state: RequestState) -> RenderedState:
    """Turn a request state into what the page displays.

    The placeholder is shown only when there are no results and no error.
    """
    error = state.message if isinstance(state, Failed) else None
    placeholder = PLACEHOLDER if not state.results and error is None else None
    return RenderedState(
        status=state.status,
        loading=isinstance(state, Loading),
        error=error,
        placeholder=placeholder,
        results=[render_result(r) for r in state.results],
    )
