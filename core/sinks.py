# core/sinks.py
import asyncio
import logging
from typing import Awaitable, Callable, Mapping
from starlette.responses import Response
from starlette.types import Receive, Scope, Send
from util.errors import SinkClosed

logger = logging.getLogger(__name__)


class AsgiSink:
    """
    ResponseSink over an ASGI `send` channel.
    - write() sends one body chunk; the server's own flow control applies.
    - close() is called by the disconnect listener; later writes raise SinkClosed.
    """

    def __init__(self, send: Send) -> None:
        self._send = send
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        self._closed = True

    async def write(self, data: memoryview) -> None:
        # `data` views a pooled buffer that the next read overwrites, and the
        # server may hold the message past this await, so the body is a copy.
        if self._closed:
            raise SinkClosed()
        try:
            await self._send(
                {"type": "http.response.body", "body": bytes(data), "more_body": True}
            )
        except OSError as e:
            self._closed = True
            raise SinkClosed() from e

    async def flush(self) -> None:
        if self._closed:
            raise SinkClosed()
        # ASGI sends are unbuffered; yield so the disconnect listener can run.
        await asyncio.sleep(0)

    async def finish(self) -> None:
        if self._closed:
            return
        try:
            await self._send({"type": "http.response.body", "body": b"", "more_body": False})
        except OSError:
            self._closed = True


async def listen_for_disconnect(receive: Receive, sink: AsgiSink) -> None:
    while True:
        message = await receive()
        if message["type"] == "http.disconnect":
            sink.close()
            return


class PipelineStreamResponse(Response):
    """
    Chunked response driven by a forwarder callback instead of an iterator.
    No Content-Length: the body size is unknown until the pipeline drains.
    """

    def __init__(
        self,
        run: Callable[[AsgiSink], Awaitable[object]],
        *,
        media_type: str,
        headers: Mapping[str, str],
        status_code: int = 200,
    ) -> None:
        self._run = run
        self.status_code = status_code
        self.media_type = media_type
        self.background = None
        self.init_headers(headers)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        sink = AsgiSink(send)
        try:
            await send(
                {
                    "type": "http.response.start",
                    "status": self.status_code,
                    "headers": self.raw_headers,
                }
            )
        except OSError:
            logger.info("stream.client.gone.before_start")
            sink.close()

        listener = asyncio.create_task(listen_for_disconnect(receive, sink))
        try:
            await self._run(sink)
        finally:
            listener.cancel()
            await asyncio.gather(listener, return_exceptions=True)
        await sink.finish()
