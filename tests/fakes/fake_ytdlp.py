"""
Stand-in for yt-dlp. The last argv item is the URL; its query string drives
behaviour:
  bytes=N    payload size written to stdout (default 4096)
  chunk=N    write size (default 65536)
  delay=S    pause between writes
  fail=N     exit code after the payload
  title=T    title printed for --get-title
  hang=S     sleep before answering --get-title
  notitle=1  exit 1 for --get-title
"""
import os
import sys
import time
from urllib.parse import parse_qs, urlparse


def _query(url):
    return {k: v[0] for k, v in parse_qs(urlparse(url).query).items()}


def _title(q):
    if q.get("hang"):
        time.sleep(float(q["hang"]))
    if q.get("notitle"):
        sys.stderr.write("ERROR: Unsupported URL\n")
        return 1
    sys.stdout.buffer.write(q.get("title", "Fake Title").encode("utf-8") + b"\n")
    return 0


def _download(q):
    total = int(q.get("bytes", "4096"))
    chunk = int(q.get("chunk", "65536"))
    delay = float(q.get("delay", "0"))
    sys.stderr.write("[download]   0.0% of ~1.00MiB at 1.00MiB/s ETA 00:01\r")
    sys.stderr.write("WARNING: fake acquisition in use\n")
    sys.stderr.flush()
    out = sys.stdout.buffer
    block = bytes(range(256)) * (chunk // 256 + 1)
    sent = 0
    try:
        while sent < total:
            n = min(chunk, total - sent)
            out.write(block[:n])
            out.flush()
            sent += n
            if delay:
                time.sleep(delay)
    except BrokenPipeError:
        os.dup2(os.open(os.devnull, os.O_WRONLY), sys.stdout.fileno())
        return 1
    return int(q.get("fail", "0"))


def main(argv):
    q = _query(argv[-1])
    if "--get-title" in argv:
        return _title(q)
    return _download(q)


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
