"""
MODULE OVERVIEW:
The Server-Sent Events HTTP transport.

WHAT IS HAPPENING HERE:
We use an HTTPX streaming request to keep the response body open, and feed the raw
text through `SSEDecoder`. The transport knows nothing about retries or state: it
reports what happened through four callbacks (opened, message, error, closed) and
the ConnectionManager decides what that means.

One call to `open()` produces one `HttpxStreamHandle`, backed by one asyncio task.
`close()` cancels that task and no further callbacks fire.
"""
import asyncio
from dataclasses import dataclass
from typing import Callable, Optional, Protocol

import httpx
from loguru import logger

from sse_manager.client.decoder import SSEDecoder
from sse_manager.shared.errors import StreamError, StreamTimeoutError, TransportError
from sse_manager.shared.models import StreamConfig


@dataclass
class TransportListener:
    on_opened: Callable[[], None]
    on_message: Callable[[str, Optional[str], str], None]
    on_error: Callable[[str, Optional[BaseException]], None]
    on_closed: Callable[[], None]


class TransportHandle(Protocol):
    def close(self) -> None: ...


class Transport(Protocol):
    def open(
        self,
        config: StreamConfig,
        listener: TransportListener,
        last_event_id: Optional[str] = None,
    ) -> TransportHandle: ...


def _seconds(ms: Optional[int]) -> Optional[float]:
    return ms / 1000.0 if ms else None


class HttpxStreamHandle:
    def __init__(
        self,
        config: StreamConfig,
        listener: TransportListener,
        last_event_id: Optional[str] = None,
        http_transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config
        self.listener = listener
        self.last_event_id = last_event_id
        self._http_transport = http_transport
        self._closed = False
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            raise TransportError("No running event loop to open the stream on")
        self._task = loop.create_task(self._run())

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if not self._task.done():
            self._task.cancel()

    async def wait_closed(self) -> None:
        """Wait for the underlying task to finish, however it ended."""
        try:
            await self._task
        except asyncio.CancelledError:
            pass

    def _request_headers(self) -> dict[str, str]:
        headers = {"Accept": "text/event-stream", "Cache-Control": "no-cache"}
        headers.update(self.config.headers)
        if self.last_event_id:
            headers["Last-Event-ID"] = self.last_event_id
        return headers

    async def _run(self) -> None:
        connect_s = _seconds(self.config.connect_timeout_ms)
        timeout = httpx.Timeout(connect_s, read=_seconds(self.config.read_timeout_ms))

        try:
            async with httpx.AsyncClient(timeout=timeout, transport=self._http_transport) as client:
                request = client.build_request(
                    self.config.method,
                    self.config.address,
                    headers=self._request_headers(),
                    content=self.config.body,
                )
                try:
                    response = await asyncio.wait_for(client.send(request, stream=True), timeout=connect_s)
                except asyncio.TimeoutError:
                    raise StreamTimeoutError(
                        f"No response from server within {self.config.connect_timeout_ms} ms"
                    )
                try:
                    self._check_response(response)
                    self.listener.on_opened()
                    await self._consume(response)
                finally:
                    await response.aclose()
        except asyncio.CancelledError:
            raise
        except StreamError as e:
            self._report(e)
            return
        except httpx.TimeoutException as e:
            err = StreamTimeoutError(f"Stream timed out: {type(e).__name__}")
            err.__cause__ = e
            self._report(err)
            return
        except httpx.HTTPError as e:
            err = TransportError(f"Connection failed: {str(e) or type(e).__name__}")
            err.__cause__ = e
            self._report(err)
            return
        except Exception as e:
            # Anything else is a bug or an unexpected runtime failure; the manager
            # reports it as a transport exception.
            self._report(e)
            return

        if not self._closed:
            self.listener.on_closed()

    def _check_response(self, response: httpx.Response) -> None:
        if not response.is_success:
            raise TransportError(
                f"Server rejected the stream (Status: {response.status_code})",
                status_code=response.status_code,
            )
        content_type = response.headers.get("content-type", "")
        if not content_type.lower().startswith("text/event-stream"):
            raise TransportError(
                f"Unexpected content type {content_type!r}, expected text/event-stream",
                status_code=response.status_code,
            )

    async def _consume(self, response: httpx.Response) -> None:
        decoder = SSEDecoder()
        async for chunk in response.aiter_text():
            for block in decoder.feed(chunk):
                if self.config.debug:
                    logger.debug(f"event=sse_block name={block.event} id={block.id} bytes={len(block.data)}")
                self.listener.on_message(block.data, block.id, block.event)
                if self._closed:
                    return

    def _report(self, error: BaseException) -> None:
        if self._closed:
            return
        self.listener.on_error(str(error) or type(error).__name__, error)


class HttpxTransport:
    def __init__(self, http_transport: Optional[httpx.AsyncBaseTransport] = None):
        # Tests inject an httpx.MockTransport here
        self._http_transport = http_transport

    def open(
        self,
        config: StreamConfig,
        listener: TransportListener,
        last_event_id: Optional[str] = None,
    ) -> HttpxStreamHandle:
        return HttpxStreamHandle(config, listener, last_event_id, self._http_transport)
