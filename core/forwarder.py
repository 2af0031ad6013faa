# core/forwarder.py
import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Optional, Protocol
from core.buffer_pool import BufferPool
from util.errors import SinkClosed

logger = logging.getLogger(__name__)


class ByteSource(Protocol):
    async def readinto(self, buf: memoryview) -> int: ...


class ResponseSink(Protocol):
    async def write(self, data: memoryview) -> None: ...

    async def flush(self) -> None: ...


@dataclass
class ForwardResult:
    bytes_forwarded: int = 0
    error: Optional[BaseException] = None
    client_gone: bool = False
    timed_out: bool = False

    @property
    def fatal(self) -> bool:
        # A vanished client is a normal exit; read errors and deadlines are not.
        return self.error is not None and not self.client_gone


async def forward(
    source: ByteSource,
    sink: ResponseSink,
    pool: BufferPool,
    *,
    flush_every: int = 512 * 1024,
    deadline: Optional[float] = None,
    label: str = "",
) -> ForwardResult:
    """
    Copy `source` into `sink` until end-of-stream.

    - One pooled buffer per call, always handed back.
    - Every chunk is written as soon as it is read; the sink is flushed each
      `flush_every` bytes and once more at the end.
    - Sink failures end the loop quietly (client_gone); read failures and an
      expired `deadline` (seconds from now) are reported as fatal.
    """
    result = ForwardResult()
    since_flush = 0
    expires_at = time.monotonic() + deadline if deadline else None

    with pool.lease() as buf:
        view = memoryview(buf)
        while True:
            try:
                if expires_at is None:
                    n = await source.readinto(view)
                else:
                    remaining = max(0.0, expires_at - time.monotonic())
                    n = await asyncio.wait_for(source.readinto(view), remaining)
            except asyncio.TimeoutError as e:
                logger.warning(
                    "forward.deadline job=%s seconds=%s bytes=%d",
                    label,
                    deadline,
                    result.bytes_forwarded,
                )
                result.error = e
                result.timed_out = True
                break
            except (OSError, ValueError, RuntimeError) as e:
                logger.error("forward.read.error job=%s err=%s", label, e)
                result.error = e
                break

            if n == 0:
                break

            try:
                await sink.write(view[:n])
                result.bytes_forwarded += n
                since_flush += n
                if since_flush >= flush_every:
                    await sink.flush()
                    since_flush = 0
            except (SinkClosed, OSError) as e:
                logger.info(
                    "forward.client.gone job=%s bytes=%d",
                    label,
                    result.bytes_forwarded,
                )
                result.error = e
                result.client_gone = True
                break

    if not result.client_gone:
        try:
            await sink.flush()
        except (SinkClosed, OSError) as e:
            if result.error is None:
                result.client_gone = True
                result.error = e
    return result
