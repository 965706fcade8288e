import asyncio

import httpx
import pytest

from clinical_ner.controller import (
    PLACEHOLDER,
    AnnotationController,
    Failed,
    Idle,
    Loading,
    Success,
    render_state,
)
from clinical_ner.errors import (
    EmptyInputError,
    ParseError,
    ServiceError,
    SubmissionInProgressError,
    TransportError,
    ViewClosedError,
)
from clinical_ner.models import AnnotationResults


def _controller(settings, handler):
    return AnnotationController(settings, transport=httpx.MockTransport(handler))


def _succeeded(settings, payload):
    controller = _controller(settings, lambda request: httpx.Response(200, json=payload))
    asyncio.run(controller.submit("chest pain and fever"))
    return controller


@pytest.mark.parametrize("text", ["", "   ", "\n\t"])
def test_blank_text_sends_nothing(settings, text):
    calls = []
    controller = _controller(settings, lambda request: calls.append(request) or httpx.Response(200, json=[]))

    with pytest.raises(EmptyInputError):
        asyncio.run(controller.submit(text))

    assert calls == []
    assert isinstance(controller.state, Idle)


def test_success_replaces_results_verbatim(settings, two_results):
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, json=two_results)

    controller = _controller(settings, handler)
    state = asyncio.run(controller.submit("chest pain and fever"))

    assert len(calls) == 1
    assert isinstance(state, Success)
    assert not controller.is_loading
    assert controller.error is None
    assert [r.model_dump(by_alias=True) for r in controller.results] == two_results


def test_second_success_replaces_not_merges(settings, two_results):
    controller = _succeeded(settings, two_results)
    controller.transport = httpx.MockTransport(lambda request: httpx.Response(200, json=two_results[1:]))

    asyncio.run(controller.submit("fever"))

    assert [r.matched_text for r in controller.results] == ["fever"]


@pytest.mark.parametrize("status", [404, 500])
def test_service_error_keeps_previous_results(settings, two_results, status):
    controller = _succeeded(settings, two_results)
    before = controller.results
    controller.transport = httpx.MockTransport(lambda request: httpx.Response(status))

    state = asyncio.run(controller.submit("again"))

    assert isinstance(state, Failed)
    assert isinstance(state.error, ServiceError)
    assert str(status) in controller.error
    assert controller.results == before
    assert not controller.is_loading


def test_connection_reset_keeps_previous_results(settings, two_results):
    controller = _succeeded(settings, two_results)
    before = controller.results

    def handler(request):
        raise httpx.ConnectError("Connection reset by peer", request=request)

    controller.transport = httpx.MockTransport(handler)
    state = asyncio.run(controller.submit("again"))

    assert isinstance(state.error, TransportError)
    assert "reach the annotation service" in controller.error
    assert controller.results == before
    assert not controller.is_loading


def test_malformed_body_is_parse_error(settings):
    controller = _controller(settings, lambda request: httpx.Response(200, text="not json"))

    state = asyncio.run(controller.submit("fever"))

    assert isinstance(state.error, ParseError)
    assert controller.results == ()
    assert not controller.is_loading


def test_unexpected_exception_still_clears_loading(settings):
    def handler(request):
        raise RuntimeError("boom")

    controller = _controller(settings, handler)

    with pytest.raises(RuntimeError):
        asyncio.run(controller.submit("fever"))

    assert isinstance(controller.state, Failed)
    assert not controller.is_loading


def test_overlapping_submit_is_rejected(settings, two_results):
    async def scenario():
        release = asyncio.Event()
        calls = []

        async def handler(request):
            calls.append(request)
            await release.wait()
            return httpx.Response(200, json=two_results)

        controller = _controller(settings, handler)
        first = asyncio.ensure_future(controller.submit("chest pain and fever"))
        while not calls:
            await asyncio.sleep(0)

        assert controller.is_loading
        assert not controller.can_submit()
        with pytest.raises(SubmissionInProgressError):
            await controller.submit("something else")

        release.set()
        state = await first
        return controller, calls, state

    controller, calls, state = asyncio.run(scenario())

    assert len(calls) == 1
    assert isinstance(state, Success)
    assert controller.text == "chest pain and fever"


def test_close_while_pending_discards_result(settings, two_results, fresh_metrics):
    async def scenario():
        calls = []

        async def handler(request):
            calls.append(request)
            await asyncio.sleep(10)
            return httpx.Response(200, json=two_results)

        controller = _controller(settings, handler)
        first = asyncio.ensure_future(controller.submit("fever"))
        while not calls:
            await asyncio.sleep(0)

        controller.close()
        await first
        return controller

    controller = asyncio.run(scenario())

    assert controller.closed
    assert isinstance(controller.state, Loading)
    assert fresh_metrics.total_requests == 1
    assert fresh_metrics.cancelled_requests == 1
    assert controller.results == ()
    with pytest.raises(ViewClosedError):
        asyncio.run(controller.submit("fever"))


def test_render_success(two_results):
    results = tuple(AnnotationResults.validate_python(two_results))

    rendered = render_state(Success(results=results))

    assert rendered.status == "success"
    assert rendered.placeholder is None
    assert rendered.results[1].start == 15
    assert rendered.results[1].end == 20
    assert rendered.results[1].evidence[0].semantic_types == "sosy, fndg"
    assert rendered.results[0].evidence[0].preferred_name == "Chest Pain"


def test_render_placeholder_only_without_error():
    assert render_state(Idle()).placeholder == PLACEHOLDER
    failed = render_state(Failed("Could not reach the annotation service."))
    assert failed.placeholder is None
    assert failed.error == "Could not reach the annotation service."
    assert render_state(Loading()).loading is True
