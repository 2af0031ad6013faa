# core/titles.py
import asyncio
import logging
import re
import time
from typing import Optional, Sequence, Union
from core.arguments import build_title_args
from util.constants import FALLBACK_TITLE_PREFIX, MAX_TITLE_LENGTH
from util.enums import SourceProfile
from util.functions import clip_text
from util.timing import timed

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s+")
# Filename/header-illegal: C0/C1 controls, DEL and the Windows-reserved set.
_ILLEGAL = re.compile(r'[<>:"/\\|?*\x00-\x1f\x7f-\x9f]')


def fallback_title(now: Optional[float] = None) -> str:
    return f"{FALLBACK_TITLE_PREFIX}{int(now if now is not None else time.time())}"


def sanitize_title(raw: Union[str, bytes]) -> str:
    """
    Make a title safe for filenames and Content-Disposition.
    Undecodable bytes and lone surrogates are dropped, not replaced.
    """
    if isinstance(raw, (bytes, bytearray)):
        text = bytes(raw).decode("utf-8", errors="ignore")
    else:
        text = raw.encode("utf-8", errors="ignore").decode("utf-8")
    text = _WHITESPACE.sub(" ", text)
    text = _ILLEGAL.sub("", text)
    text = _WHITESPACE.sub(" ", text).strip()
    return clip_text(text, MAX_TITLE_LENGTH)


async def resolve_title(
    url: str,
    source_profile: SourceProfile,
    acquisition_cmd: Sequence[str],
    timeout: float = 30.0,
) -> str:
    """
    Ask the acquisition tool for the media title. Never raises: any failure
    (spawn, timeout, non-zero exit, empty output) yields a timestamped fallback.
    """
    argv = [*acquisition_cmd, *build_title_args(url, source_profile)]
    with timed(logger, "title.resolve", profile=source_profile.value) as fields:
        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except (OSError, ValueError) as e:
            # ValueError: NUL or unencodable characters in the argv
            logger.warning("title.spawn.error err=%s", type(e).__name__)
            fields["fallback"] = True
            return fallback_title()

        try:
            out, err = await asyncio.wait_for(proc.communicate(), timeout)
        except asyncio.TimeoutError:
            logger.warning("title.timeout seconds=%.1f", timeout)
            try:
                proc.kill()
            except ProcessLookupError:
                pass
            await proc.wait()
            fields["fallback"] = True
            return fallback_title()

        if proc.returncode != 0:
            logger.warning(
                "title.exit code=%s stderr=%s",
                proc.returncode,
                sanitize_title(err or b"")[:120],
            )
            fields["fallback"] = True
            return fallback_title()

        first = next((ln for ln in (out or b"").splitlines() if ln.strip()), b"")
        title = sanitize_title(first)
        if not title:
            fields["fallback"] = True
            return fallback_title()
        return title
