# util/functions.py
from urllib.parse import quote


def clip_text(text: str, max_chars: int) -> str:
    """Trim `text` to at most `max_chars` code points, dropping trailing space."""
    if len(text) <= max_chars:
        return text
    return text[:max_chars].rstrip()


def content_disposition(title: str, extension: str) -> str:
    """
    Attachment header for a sanitized title.
    - ASCII names go out as a plain quoted filename.
    - Anything else keeps an ASCII fallback plus an RFC 5987 filename*.
    """
    filename = f"{title}.{extension}"
    try:
        filename.encode("ascii")
        return f'attachment; filename="{filename}"'
    except UnicodeEncodeError:
        pass
    stem = " ".join(title.encode("ascii", "ignore").decode("ascii").split())
    fallback = f"{stem or 'download'}.{extension}"
    return (
        f'attachment; filename="{fallback}"; '
        f"filename*=UTF-8''{quote(filename, safe='')}"
    )
