"""
=============================================================================
HTTP RESPONSE
=============================================================================

The transport-level response and the one-shot writer that guards it.

=============================================================================
WRITE EXACTLY ONCE
=============================================================================

A handler may run several times for one request (see jsonhttp.dispatch),
but the client must see exactly one status line. ResponseWriter enforces
that structurally:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   handler ──► req.res.set_header("X-Trace", "...")   (any time)     │
    │                                                                      │
    │   dispatcher ──► writer.write(HTTPResponse)          (once)         │
    │                       │                                              │
    │                       ├── merges handler headers                     │
    │                       └── second call → ResponseAlreadyWritten      │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Handlers only ever see the header side of the writer. Status and body are
decided by the dispatcher.

=============================================================================
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from http import HTTPStatus
from typing import Optional, Dict, Any, Union
import json


@dataclass
class HTTPResponse:
    """
    An HTTP response ready to be serialized onto a socket.

    `status` is a plain int so that handlers can use any code, including
    ones HTTPStatus does not know about.
    """

    status: int = HTTPStatus.OK
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    version: str = "HTTP/1.1"

    @property
    def status_line(self) -> str:
        """e.g. "HTTP/1.1 200 OK"."""
        try:
            phrase = HTTPStatus(self.status).phrase
        except ValueError:
            phrase = "Unknown"
        return f"{self.version} {int(self.status)} {phrase}"

    def set_header(self, name: str, value: str) -> "HTTPResponse":
        self.headers[name] = value
        return self

    def to_bytes(self, server_name: str = "jsonhttp/1.0") -> bytes:
        """
        Serialize for socket.sendall().

        Content-Length, Date and Server are added when missing.
        """
        response_headers = dict(self.headers)

        if "Content-Length" not in response_headers:
            response_headers["Content-Length"] = str(len(self.body))
        if "Date" not in response_headers:
            response_headers["Date"] = format_http_date(datetime.now(timezone.utc))
        if "Server" not in response_headers:
            response_headers["Server"] = server_name

        lines = [self.status_line]
        for name, value in response_headers.items():
            lines.append(f"{name}: {value}")
        lines.append("")

        header_bytes = "\r\n".join(lines).encode("iso-8859-1") + b"\r\n"
        return header_bytes + self.body


class ResponseAlreadyWritten(RuntimeError):
    """Raised on a second ResponseWriter.write() for the same request."""


class ResponseWriter:
    """
    Per-request response sink.

    Handlers may add headers through `set_header()`. The dispatcher calls
    `write()` exactly once with the final response.
    """

    def __init__(self):
        self.headers: Dict[str, str] = {}
        self._written: Optional[HTTPResponse] = None

    @property
    def written(self) -> bool:
        return self._written is not None

    @property
    def response(self) -> Optional[HTTPResponse]:
        """The response passed to write(), or None."""
        return self._written

    def set_header(self, name: str, value: str) -> None:
        if self.written:
            raise ResponseAlreadyWritten(f"cannot set header {name!r}: response already written")
        self.headers[name] = value

    def write(self, response: HTTPResponse) -> HTTPResponse:
        """
        Commit the response for this request.

        Headers collected with set_header() are merged in; headers the
        response already carries win.
        """
        if self.written:
            raise ResponseAlreadyWritten("response already written")
        for name, value in self.headers.items():
            response.headers.setdefault(name, value)
        self._written = response
        return response


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================

def format_http_date(dt: datetime) -> str:
    """
    Format a datetime as an HTTP-date (RFC 7231), always in GMT.

    Example: Wed, 01 Jan 2026 12:00:00 GMT
    """
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc)
    days = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]
    months = ["Jan", "Feb", "Mar", "Apr", "May", "Jun",
              "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]
    return (
        f"{days[dt.weekday()]}, "
        f"{dt.day:02d} {months[dt.month - 1]} {dt.year} "
        f"{dt.hour:02d}:{dt.minute:02d}:{dt.second:02d} GMT"
    )


def json_response(data: Any, status: int = HTTPStatus.OK) -> HTTPResponse:
    """Compact JSON response used by the transport's own error paths."""
    body = json.dumps(data, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
    return HTTPResponse(
        status=status,
        headers={"Content-Type": "application/json"},
        body=body,
    )


def not_found(message: str = "Not Found") -> HTTPResponse:
    return json_response({"error": message}, HTTPStatus.NOT_FOUND)


def internal_error(message: str = "Internal Server Error") -> HTTPResponse:
    return json_response({"error": message}, HTTPStatus.INTERNAL_SERVER_ERROR)


def status_only(status: Union[int, HTTPStatus]) -> HTTPResponse:
    """A response carrying just a status line and no body."""
    return HTTPResponse(status=int(status))
