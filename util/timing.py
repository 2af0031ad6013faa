# util/timing.py
import logging
import time
from contextlib import contextmanager
from typing import Any, Dict, Iterator


@contextmanager
def timed(logger: logging.Logger, name: str, **kv: Any) -> Iterator[Dict[str, Any]]:
    """
    Log how long a block took, with key=value context.

      with timed(logger, "stream.forward", job=job_id) as fields:
          fields["bytes"] = n

    Exits normally as INFO "<name>.done ms=.. k=v"; an exception escaping
    the block is logged as WARNING "<name>.aborted" and re-raised.
    """
    fields: Dict[str, Any] = dict(kv)
    started = time.perf_counter()
    outcome = "aborted"
    try:
        yield fields
        outcome = "done"
    finally:
        elapsed = int((time.perf_counter() - started) * 1000)
        tail = "".join(f" {k}={v}" for k, v in fields.items())
        level = logging.INFO if outcome == "done" else logging.WARNING
        logger.log(level, "%s.%s ms=%d%s", name, outcome, elapsed, tail)
