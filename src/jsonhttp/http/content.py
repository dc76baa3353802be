"""
=============================================================================
CONDITIONAL CONTENT SERVING
=============================================================================

Serves an in-memory or seekable blob the way a static file server would:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    serve_content() DECISIONS                        │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   If-None-Match == ETag ?                ──yes──► 304 Not Modified   │
    │        │ no                                                          │
    │   If-Modified-Since >= modtime ?         ──yes──► 304 Not Modified   │
    │        │ no                                                          │
    │   Range: bytes=a-b (single, satisfiable) ──yes──► 206 + slice        │
    │        │ unsatisfiable                   ───────► 416                │
    │        │ absent / multi-range / stale If-Range                       │
    │        ▼                                                             │
    │   200 + full content                                                 │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

The ETag is derived from modification time and size, like the one a static
file handler computes from os.stat().

=============================================================================
"""

import io
import mimetypes
from datetime import datetime, timezone
from http import HTTPStatus
from typing import BinaryIO, Optional, Union

from .request import HTTPRequest
from .response import HTTPResponse, format_http_date


Content = Union[bytes, bytearray, BinaryIO]


def serve_content(
    request: HTTPRequest,
    name: str,
    content: Content,
    modtime: Optional[datetime] = None,
) -> HTTPResponse:
    """
    Build a response for `content`, honoring conditional and range headers.

    Args:
        request: The request being answered (its headers drive the logic).
        name: File name, used to guess Content-Type from the extension.
        content: bytes or a seekable binary file object.
        modtime: Last modification time. None disables Last-Modified and
                 If-Modified-Since handling.

    Returns:
        A 200, 206, 304 or 416 response.
    """
    size = _content_size(content)
    mtime = _to_utc(modtime)

    headers = {
        "Content-Type": mimetypes.guess_type(name)[0] or "application/octet-stream",
        "Accept-Ranges": "bytes",
    }
    etag = f'"{int(mtime.timestamp()) if mtime else 0:x}-{size:x}"'
    headers["ETag"] = etag
    if mtime is not None:
        headers["Last-Modified"] = format_http_date(mtime)

    if _not_modified(request, etag, mtime):
        # 304 must not carry a body or entity headers describing one
        headers.pop("Content-Type")
        return HTTPResponse(status=HTTPStatus.NOT_MODIFIED, headers=headers)

    start, end = 0, size
    status = HTTPStatus.OK

    range_header = request.get_header("range")
    if range_header and _if_range_matches(request, etag, headers.get("Last-Modified")):
        parsed = _parse_range(range_header, size)
        if parsed is _UNSATISFIABLE:
            headers.pop("Content-Type")
            headers["Content-Range"] = f"bytes */{size}"
            return HTTPResponse(status=HTTPStatus.REQUESTED_RANGE_NOT_SATISFIABLE, headers=headers)
        if parsed is not None:
            start, end = parsed
            status = HTTPStatus.PARTIAL_CONTENT
            headers["Content-Range"] = f"bytes {start}-{end - 1}/{size}"

    headers["Content-Length"] = str(end - start)
    body = b"" if request.method == "HEAD" else _read_slice(content, start, end)
    return HTTPResponse(status=status, headers=headers, body=body)


# =============================================================================
# HELPERS
# =============================================================================

_UNSATISFIABLE = object()


def _content_size(content: Content) -> int:
    if isinstance(content, (bytes, bytearray)):
        return len(content)
    position = content.tell()
    size = content.seek(0, io.SEEK_END)
    content.seek(position)
    return size


def _read_slice(content: Content, start: int, end: int) -> bytes:
    if isinstance(content, (bytes, bytearray)):
        return bytes(content[start:end])
    content.seek(start)
    return content.read(end - start)


def _to_utc(modtime: Optional[datetime]) -> Optional[datetime]:
    if modtime is None:
        return None
    if modtime.tzinfo is None:
        modtime = modtime.astimezone()  # naive means local time
    # HTTP dates have one-second resolution
    return modtime.astimezone(timezone.utc).replace(microsecond=0)


def _parse_http_date(value: str) -> Optional[datetime]:
    try:
        parsed = datetime.strptime(value.strip(), "%a, %d %b %Y %H:%M:%S GMT")
    except ValueError:
        return None
    return parsed.replace(tzinfo=timezone.utc)


def _not_modified(request: HTTPRequest, etag: str, mtime: Optional[datetime]) -> bool:
    if request.method not in ("GET", "HEAD"):
        return False

    if_none_match = request.get_header("if-none-match")
    if if_none_match:
        candidates = [tag.strip() for tag in if_none_match.split(",")]
        return "*" in candidates or etag in candidates or f"W/{etag}" in candidates

    if mtime is None:
        return False
    since = _parse_http_date(request.get_header("if-modified-since"))
    return since is not None and mtime <= since


def _if_range_matches(request: HTTPRequest, etag: str, last_modified: Optional[str]) -> bool:
    if_range = request.get_header("if-range")
    if not if_range:
        return True
    return if_range == etag or (last_modified is not None and if_range == last_modified)


def _parse_range(header: str, size: int):
    """
    Parse a single "bytes=" range into a half-open (start, end) pair.

    Returns None when the header should be ignored (wrong unit, several
    ranges, syntax error) and _UNSATISFIABLE when no byte of the range
    exists.
    """
    unit, _, spec = header.partition("=")
    if unit.strip().lower() != "bytes" or "," in spec:
        return None

    first, dash, last = spec.strip().partition("-")
    if not dash:
        return None

    try:
        if not first:
            # suffix range: last N bytes
            length = int(last)
            if length <= 0 or size == 0:
                return _UNSATISFIABLE
            return max(size - length, 0), size
        start = int(first)
        end = int(last) + 1 if last else size
    except ValueError:
        return None

    if start >= size or end <= start:
        return _UNSATISFIABLE
    return start, min(end, size)
