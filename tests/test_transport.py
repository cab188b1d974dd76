"""httpx transport tests against httpx.MockTransport."""

import asyncio

import httpx

from conftest import wait_until

from sse_manager.client.connection_manager import ConnectionManager
from sse_manager.client.transport import HttpxTransport, TransportListener
from sse_manager.shared.errors import StreamTimeoutError, TransportError
from sse_manager.shared.models import ConnectionState, EventKind, StreamConfig

SSE_HEADERS = {"content-type": "text/event-stream"}


class Recorder:
    def __init__(self):
        self.calls: list[tuple] = []

    def listener(self) -> TransportListener:
        return TransportListener(
            on_opened=lambda: self.calls.append(("opened",)),
            on_message=lambda data, event_id, name: self.calls.append(("message", data, event_id, name)),
            on_error=lambda message, fault: self.calls.append(("error", message, fault)),
            on_closed=lambda: self.calls.append(("closed",)),
        )

    @property
    def kinds(self) -> list[str]:
        return [c[0] for c in self.calls]


async def _run(handler, config: StreamConfig | None = None, last_event_id: str | None = None) -> Recorder:
    recorder = Recorder()
    transport = HttpxTransport(http_transport=httpx.MockTransport(handler))
    handle = transport.open(config or StreamConfig(address="http://test/sse"), recorder.listener(), last_event_id)
    await handle.wait_closed()
    return recorder


async def test_stream_is_decoded_and_closed() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, headers=SSE_HEADERS, content=b"id: 1\ndata: hello\n\nevent: tick\ndata: {}\n\n")

    recorder = await _run(handler)

    assert recorder.calls == [
        ("opened",),
        ("message", "hello", "1", "message"),
        ("message", "{}", "1", "tick"),
        ("closed",),
    ]


async def test_request_headers() -> None:
    seen: dict[str, str] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen.update(request.headers)
        seen["method"] = request.method
        seen["body"] = request.content.decode()
        return httpx.Response(200, headers=SSE_HEADERS, content=b"")

    config = StreamConfig(
        address="http://test/sse",
        method="POST",
        headers={"Authorization": "Bearer t"},
        body='{"q": 1}',
    )
    await _run(handler, config, last_event_id="41")

    assert seen["accept"] == "text/event-stream"
    assert seen["authorization"] == "Bearer t"
    assert seen["last-event-id"] == "41"
    assert seen["method"] == "POST"
    assert seen["body"] == '{"q": 1}'


async def test_rejected_status_is_transport_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, text="unavailable")

    recorder = await _run(handler)

    assert recorder.kinds == ["error"]
    fault = recorder.calls[0][2]
    assert isinstance(fault, TransportError)
    assert fault.status_code == 503


async def test_wrong_content_type_is_transport_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"not": "a stream"})

    recorder = await _run(handler)

    assert isinstance(recorder.calls[0][2], TransportError)


async def test_content_type_is_case_insensitive() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        headers = {"content-type": "Text/Event-Stream; charset=utf-8"}
        return httpx.Response(200, headers=headers, content=b"data: hi\n\n")

    recorder = await _run(handler)

    assert recorder.kinds == ["opened", "message", "closed"]


async def test_connection_failure_is_transport_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    recorder = await _run(handler)

    fault = recorder.calls[0][2]
    assert isinstance(fault, TransportError)
    assert isinstance(fault.__cause__, httpx.ConnectError)


async def test_slow_response_is_timeout() -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(1)
        return httpx.Response(200, headers=SSE_HEADERS, content=b"")

    recorder = await _run(handler, StreamConfig(address="http://test/sse", connect_timeout_ms=20))

    assert recorder.kinds == ["error"]
    assert isinstance(recorder.calls[0][2], StreamTimeoutError)


async def test_unexpected_exception_is_passed_through() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise RuntimeError("boom")

    recorder = await _run(handler)

    assert isinstance(recorder.calls[0][2], RuntimeError)


async def test_close_suppresses_callbacks() -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(1)
        return httpx.Response(200, headers=SSE_HEADERS, content=b"")

    recorder = Recorder()
    transport = HttpxTransport(http_transport=httpx.MockTransport(handler))
    handle = transport.open(StreamConfig(address="http://test/sse"), recorder.listener())
    await asyncio.sleep(0.01)

    handle.close()
    await handle.wait_closed()

    assert handle.closed
    assert recorder.calls == []


async def test_manager_end_to_end() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, headers=SSE_HEADERS, content=b'data: {"a":1}\n\ndata: not json\n\n')

    manager = ConnectionManager(transport=HttpxTransport(http_transport=httpx.MockTransport(handler)))
    kinds: list[EventKind] = []
    for kind in EventKind:
        manager.on(kind, lambda e: kinds.append(e.kind))

    manager.connect(StreamConfig(address="http://test/sse"))
    await wait_until(lambda: manager.state == ConnectionState.DISCONNECTED)

    assert kinds == [EventKind.OPENED, EventKind.MESSAGE, EventKind.MESSAGE, EventKind.CLOSED]
    contents = [r.content for r in manager.messages]
    assert contents == ["Connection established", '{\n  "a": 1\n}', "not json", "Connection closed"]


async def test_manager_recovers_after_rejection() -> None:
    responses = iter(
        [
            httpx.Response(500),
            httpx.Response(200, headers=SSE_HEADERS, content=b"data: back\n\n"),
        ]
    )

    def handler(request: httpx.Request) -> httpx.Response:
        return next(responses)

    manager = ConnectionManager(transport=HttpxTransport(http_transport=httpx.MockTransport(handler)))
    opened: list = []
    manager.on(EventKind.OPENED, opened.append)

    manager.connect(StreamConfig(address="http://test/sse", reconnect_base_delay_ms=10))
    await wait_until(lambda: len(opened) == 1)
    await wait_until(lambda: manager.state == ConnectionState.DISCONNECTED)

    assert manager.reconnect_attempts == 0
    assert manager.messages[-2].content == "back"
