from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx
from pydantic import ValidationError

from clinical_ner.config import Settings
from clinical_ner.errors import ParseError, ServiceError, TransportError
from clinical_ner.models import AnnotationResult, AnnotationResults


logger = logging.getLogger(__name__)

# Fixed form fields sent with every request
DOC_FORMAT = "freetext"
RESULT_FORMAT = "json"
API_KEY_FIELD = "apiKey"


# ----------------------------
# Metrics (simple in-memory)
# ----------------------------

@dataclass
class Metrics:
    """Process-local counters for calls to the annotation service.

    Latency is kept as a running total, so memory use does not grow with
    the number of requests. A request cancelled because its view closed
    counts towards ``total_requests`` and ``cancelled_requests`` only.
    """
    total_requests: int = 0
    success_requests: int = 0
    failed_requests: int = 0
    cancelled_requests: int = 0
    last_latency_ms: Optional[float] = None
    latency_total_ms: float = 0.0

    def record(self, ok: bool, latency_ms: float, cancelled: bool = False) -> None:
        self.total_requests += 1
        self.last_latency_ms = latency_ms
        self.latency_total_ms += latency_ms
        if cancelled:
            self.cancelled_requests += 1
        elif ok:
            self.success_requests += 1
        else:
            self.failed_requests += 1

    def summary(self) -> Dict[str, Any]:
        avg = self.latency_total_ms / self.total_requests if self.total_requests else None
        return {
            "total_requests": self.total_requests,
            "success_requests": self.success_requests,
            "failed_requests": self.failed_requests,
            "cancelled_requests": self.cancelled_requests,
            "last_latency_ms": self.last_latency_ms,
            "avg_latency_ms": avg,
        }


METRICS = Metrics()


# ----------------------------
# Service client
# ----------------------------

def build_request_parts(text: str, settings: Settings) -> Dict[str, Dict[str, str]]:
    """Return the form body and query parameters for one annotation call.

    The API key goes into exactly one of the two, depending on
    ``settings.key_placement``.

    Examples
    --------
    >>> s = Settings(api_key="k", key_placement="query")
    >>> build_request_parts("fever", s)["params"]
    {'apiKey': 'k'}
    """
    data = {"inputtext": text, "docformat": DOC_FORMAT, "resultformat": RESULT_FORMAT}
    params: Dict[str, str] = {}
    if settings.key_placement == "query":
        params[API_KEY_FIELD] = settings.api_key
    else:
        data[API_KEY_FIELD] = settings.api_key
    return {"data": data, "params": params}


def parse_annotations(data: Any) -> List[AnnotationResult]:
    """Validate decoded JSON against the annotation models.

    Raises
    ------
    ParseError
        If ``data`` is not a list of well-formed annotation objects.
    """
    try:
        return AnnotationResults.validate_python(data)
    except ValidationError as exc:
        raise ParseError(
            f"Response did not match the annotation format: {exc.error_count()} error(s): {exc.errors()[:3]}",
            user_message="The annotation service returned data in an unexpected format.",
        ) from exc


async def annotate(
    text: str,
    settings: Settings,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> List[AnnotationResult]:
    """Send one piece of clinical text to the annotation service.

    Parameters
    ----------
    text:
        The raw clinical text, sent unchanged as ``inputtext``.
    settings:
        Endpoint, key, key placement and timeout.
    transport:
        Optional httpx transport, used by tests to mock the service.

    Returns
    -------
    list of AnnotationResult
        The validated annotations, in service order.

    Raises
    ------
    TransportError
        Connection failure, DNS failure, reset or timeout.
    ServiceError
        The service answered with a non-2xx status.
    ParseError
        The body was not JSON or had the wrong shape.
    """
    parts = build_request_parts(text, settings)
    url = settings.service_url
    logger.info("Annotating %d characters via %s", len(text), url)
    start = time.perf_counter()

    timeout = httpx.Timeout(settings.timeout_seconds)
    async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
        try:
            resp = await client.post(
                url,
                data=parts["data"],
                params=parts["params"] or None,
                headers={"Accept": "application/json"},
            )
        except httpx.TimeoutException as e:
            latency_ms = (time.perf_counter() - start) * 1000.0
            METRICS.record(ok=False, latency_ms=latency_ms)
            logger.warning("Annotation request timed out after %.1f ms", latency_ms)
            raise TransportError(
                f"Timeout after {settings.timeout_seconds:.1f}s calling {url}: {type(e).__name__}",
                user_message=(
                    f"The annotation service did not respond within {settings.timeout_seconds:.0f} seconds. "
                    "Please try again."
                ),
            ) from e
        except httpx.RequestError as e:
            latency_ms = (time.perf_counter() - start) * 1000.0
            METRICS.record(ok=False, latency_ms=latency_ms)
            logger.warning("Annotation request failed: %s: %s", type(e).__name__, e)
            raise TransportError(
                f"Network error calling {url}: {type(e).__name__}: {e}",
                user_message="Could not reach the annotation service. Check your connection and try again.",
            ) from e
        except asyncio.CancelledError:
            latency_ms = (time.perf_counter() - start) * 1000.0
            METRICS.record(ok=False, latency_ms=latency_ms, cancelled=True)
            logger.info("Annotation request cancelled after %.1f ms", latency_ms)
            raise

    latency_ms = (time.perf_counter() - start) * 1000.0

    if resp.status_code // 100 != 2:
        METRICS.record(ok=False, latency_ms=latency_ms)
        logger.warning("Annotation service returned HTTP %d", resp.status_code)
        raise ServiceError(resp.status_code, resp.text)

    try:
        data = resp.json()
    except ValueError as e:
        METRICS.record(ok=False, latency_ms=latency_ms)
        logger.warning("Annotation response was not valid JSON: %r", resp.text[:200])
        raise ParseError(
            "Response body was not valid JSON",
            user_message="The annotation service returned a response that could not be read.",
        ) from e

    try:
        results = parse_annotations(data)
    except ParseError:
        METRICS.record(ok=False, latency_ms=latency_ms)
        logger.warning("Annotation response had an unexpected shape")
        raise

    METRICS.record(ok=True, latency_ms=latency_ms)
    logger.info("Received %d annotations in %.1f ms", len(results), latency_ms)
    return results
