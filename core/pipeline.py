# core/pipeline.py
"""
Two-process media pipeline: acquisition stdout -> OS pipe -> transcode stdin,
with the transcode's stdout exposed through `readinto`.

State machine:
  IDLE -> ACQUISITION_STARTED -> TRANSCODE_STARTED -> STREAMING -> DRAINED -> CLOSED
  any setup failure -> FAULTED

`close()` is the single teardown routine. It runs on every exit path (also via
`async with`), terminates whatever is still alive and always reaps both
processes and both stderr drains.
"""
import asyncio
import codecs
import logging
import os
import re
from typing import Awaitable, Callable, Dict, List, Optional, Sequence
from util.enums import PipelineState
from util.errors import SpawnError, UpstreamFailure
from util.logger import tool_logger

logger = logging.getLogger(__name__)

StateHook = Callable[[PipelineState], Awaitable[None]]

# High-frequency progress output; everything else on stderr is worth logging.
PROGRESS_MARKERS = ("frame=", "size=", "speed=")
PROGRESS_PREFIXES = ("[download]",)

_LINE_SPLIT = re.compile(r"[\r\n]+")
_DRAIN_CHUNK = 4096


def is_progress_line(line: str) -> bool:
    return any(m in line for m in PROGRESS_MARKERS) or line.startswith(
        PROGRESS_PREFIXES
    )


async def drain_diagnostics(
    stream: Optional[asyncio.StreamReader], tool: str, label: str = ""
) -> None:
    """Read a process' stderr to EOF, forwarding non-progress lines to the log."""
    if stream is None:
        return
    log = tool_logger(tool)
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    pending = ""

    def _emit(line: str) -> None:
        line = line.strip()
        if line and not is_progress_line(line):
            log.warning("[%s] job=%s %s", tool, label, line)

    try:
        while True:
            chunk = await stream.read(_DRAIN_CHUNK)
            if not chunk:
                break
            parts = _LINE_SPLIT.split(pending + decoder.decode(chunk))
            pending = parts.pop()
            for part in parts:
                _emit(part)
        _emit(pending + decoder.decode(b"", final=True))
    except (OSError, ValueError) as e:
        logger.warning("pipeline.drain.error tool=%s job=%s err=%s", tool, label, e)


class ProcessPipeline:
    def __init__(
        self,
        acquisition_argv: Sequence[str],
        transcode_argv: Sequence[str],
        *,
        names: Sequence[str] = ("yt-dlp", "ffmpeg"),
        label: str = "",
        reap_timeout: float = 5.0,
        on_state: Optional[StateHook] = None,
    ) -> None:
        self._argv = (list(acquisition_argv), list(transcode_argv))
        self._names = (names[0], names[1])
        self.label = label
        self._reap_timeout = reap_timeout
        self._on_state = on_state

        self.state = PipelineState.IDLE
        self.acquisition: Optional[asyncio.subprocess.Process] = None
        self.transcode: Optional[asyncio.subprocess.Process] = None
        self._drains: List[asyncio.Task] = []
        self.exit_codes: Dict[str, Optional[int]] = {}
        self._drained = False
        self._closed = False

    # ---------------- State ----------------

    async def _set_state(self, state: PipelineState) -> None:
        self.state = state
        logger.debug("pipeline.state job=%s state=%s", self.label, state.value)
        if self._on_state is not None:
            await self._on_state(state)

    @property
    def drained(self) -> bool:
        return self._drained

    # ---------------- Setup ----------------

    async def _spawn(self, index: int, **streams) -> asyncio.subprocess.Process:
        argv, name = self._argv[index], self._names[index]
        logger.info("pipeline.spawn job=%s tool=%s argv=%s", self.label, name, argv)
        try:
            proc = await asyncio.create_subprocess_exec(
                *argv, stderr=asyncio.subprocess.PIPE, **streams
            )
        except (OSError, ValueError) as e:
            logger.error("pipeline.spawn.error job=%s tool=%s err=%s", self.label, name, e)
            raise SpawnError(name, e) from e
        self._drains.append(
            asyncio.create_task(drain_diagnostics(proc.stderr, name, self.label))
        )
        return proc

    async def start(self) -> "ProcessPipeline":
        if self.state != PipelineState.IDLE:
            raise RuntimeError(f"pipeline already started (state={self.state.value})")

        read_fd, write_fd = os.pipe()
        try:
            try:
                self.acquisition = await self._spawn(
                    0, stdin=asyncio.subprocess.DEVNULL, stdout=write_fd
                )
            except SpawnError:
                await self._fault()
                raise
            await self._set_state(PipelineState.ACQUISITION_STARTED)

            try:
                self.transcode = await self._spawn(
                    1, stdin=read_fd, stdout=asyncio.subprocess.PIPE
                )
            except SpawnError:
                await self._fault()
                raise
            await self._set_state(PipelineState.TRANSCODE_STARTED)
        finally:
            # Children hold their own copies; ours must go so EOF propagates.
            os.close(read_fd)
            os.close(write_fd)

        await self._set_state(PipelineState.STREAMING)
        return self

    async def _fault(self) -> None:
        self.state = PipelineState.FAULTED
        self._closed = True
        await self._teardown(terminate=True)
        logger.warning("pipeline.faulted job=%s exit=%s", self.label, self.exit_codes)
        if self._on_state is not None:
            await self._on_state(PipelineState.FAULTED)

    # ---------------- Streaming ----------------

    async def readinto(self, buf: memoryview) -> int:
        """
        Read up to len(buf) bytes of transcode output into `buf`.
        StreamReader has no readinto, so each chunk is still a fresh bytes
        object copied in here; the pooled buffer only fixes the read size.
        """
        if self.state == PipelineState.DRAINED:
            return 0
        if self.state != PipelineState.STREAMING or self.transcode is None:
            raise RuntimeError(f"pipeline not streaming (state={self.state.value})")
        data = await self.transcode.stdout.read(len(buf))
        n = len(data)
        if n == 0:
            self._drained = True
            await self._set_state(PipelineState.DRAINED)
            return 0
        buf[:n] = data
        return n

    def upstream_failure(self) -> Optional[UpstreamFailure]:
        """Exit codes only count once the output was fully drained and reaped."""
        if not self._drained or self.state != PipelineState.CLOSED:
            return None
        if any(code for code in self.exit_codes.values()):
            return UpstreamFailure(self.exit_codes)
        return None

    # ---------------- Teardown ----------------

    async def _reap(
        self, proc: Optional[asyncio.subprocess.Process], name: str, terminate: bool
    ) -> Optional[int]:
        if proc is None:
            return None
        if terminate and proc.returncode is None:
            _signal(proc, "terminate")
        try:
            await asyncio.wait_for(proc.wait(), self._reap_timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "pipeline.reap.timeout job=%s tool=%s seconds=%.1f",
                self.label,
                name,
                self._reap_timeout,
            )
            _signal(proc, "terminate" if not terminate else "kill")
            try:
                await asyncio.wait_for(proc.wait(), self._reap_timeout)
            except asyncio.TimeoutError:
                _signal(proc, "kill")
                await proc.wait()
        return proc.returncode

    async def _teardown(self, terminate: bool) -> None:
        # Transcode first: once it is gone the acquisition side sees EPIPE.
        for proc, name in (
            (self.transcode, self._names[1]),
            (self.acquisition, self._names[0]),
        ):
            if proc is not None:
                self.exit_codes[name] = await self._reap(proc, name, terminate)

        drains, self._drains = self._drains, []
        if drains:
            done, pending = await asyncio.wait(drains, timeout=self._reap_timeout)
            for task in pending:
                task.cancel()
            if pending:
                logger.warning(
                    "pipeline.drain.slow job=%s pending=%d", self.label, len(pending)
                )
                await asyncio.gather(*pending, return_exceptions=True)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._teardown(terminate=not self._drained)
        if self.state != PipelineState.FAULTED:
            self.state = PipelineState.CLOSED
        logger.info(
            "pipeline.closed job=%s drained=%s exit=%s",
            self.label,
            self._drained,
            self.exit_codes,
        )

    async def __aenter__(self) -> "ProcessPipeline":
        return await self.start()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()


def _signal(proc: asyncio.subprocess.Process, how: str) -> None:
    try:
        getattr(proc, how)()
    except ProcessLookupError:
        pass
