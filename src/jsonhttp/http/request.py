"""
=============================================================================
HTTP REQUEST PARSER
=============================================================================

Turns the raw bytes read by a Connection into an HTTPRequest.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                     WHAT THE PARSER PRODUCES                        │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   POST /hi?lang=en HTTP/1.1\r\n                                      │
    │   Host: localhost:8080\r\n            HTTPRequest(                   │
    │   Content-Type: application/json\r\n    method="POST",               │
    │   Content-Length: 20\r\n        ──►     path="/hi",                  │
    │   \r\n                                  raw_query="lang=en",         │
    │   {"name":"imchuncai"}                  query_params={"lang":["en"]},│
    │                                         headers={...lowercase...},   │
    │                                         body=b'{"name":...}',        │
    │                                       )                              │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

The parser only knows HTTP/1.x framing. What the body *means* (JSON,
multipart form, nothing at all) is decided later by the request adapters
in jsonhttp.adapters.

=============================================================================
"""

from dataclasses import dataclass, field
from typing import Optional, Dict
from urllib.parse import parse_qs, urlparse, unquote
import re


class HTTPParseError(Exception):
    """
    Raised when a request cannot be parsed.

    Carries the status code the transport should answer with
    (400, 405, 413 or 505).
    """

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class HTTPRequest:
    """
    A parsed HTTP request, as delivered by the transport.

    Header names are stored lowercase; HTTP header names are
    case-insensitive and normalizing once avoids .lower() everywhere.
    """

    method: str
    path: str
    version: str = "HTTP/1.1"

    headers: Dict[str, str] = field(default_factory=dict)
    query_params: Dict[str, list[str]] = field(default_factory=dict)
    raw_query: str = ""
    body: bytes = b""

    # Filled in by the router (:param and *wildcard segments)
    path_params: Dict[str, str] = field(default_factory=dict)

    client_address: tuple[str, int] = ("", 0)

    @property
    def content_type(self) -> Optional[str]:
        """Content-Type without parameters, e.g. "multipart/form-data"."""
        ct = self.headers.get("content-type", "")
        return ct.split(";")[0].strip().lower() or None

    @property
    def content_length(self) -> int:
        try:
            return int(self.headers.get("content-length", 0))
        except ValueError:
            return 0

    @property
    def remote_ip(self) -> str:
        """Client IP address with the port stripped."""
        return self.client_address[0] if self.client_address else ""

    @property
    def is_keep_alive(self) -> bool:
        """
        Whether the connection should stay open after this request.

        HTTP/1.1 keeps alive unless "Connection: close" is sent.
        HTTP/1.0 closes unless "Connection: keep-alive" is sent.
        """
        connection = self.headers.get("connection", "").lower()
        if self.version == "HTTP/1.1":
            return connection != "close"
        return connection == "keep-alive"

    def get_header(self, name: str, default: str = "") -> str:
        """Case-insensitive header lookup."""
        return self.headers.get(name.lower(), default)

    def get_query(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """First value of a query parameter."""
        values = self.query_params.get(name, [])
        return values[0] if values else default


class RequestParser:
    """
    Parses raw HTTP request bytes into HTTPRequest objects.

    ==========================================================================
    PARSING STEPS
    ==========================================================================

        1. Size check                 too large → 413
        2. Split at \\r\\n\\r\\n          missing  → 400
        3. Request line               bad method → 405, bad version → 505
        4. Headers                    lowercase names, duplicates joined
        5. Body                       exactly Content-Length bytes

    ==========================================================================
    """

    VALID_METHODS = {
        "GET", "POST", "PUT", "DELETE", "PATCH",
        "HEAD", "OPTIONS", "TRACE", "CONNECT",
    }

    REQUEST_LINE_PATTERN = re.compile(r"^([A-Z]+) ([^ ]+) (HTTP/\d\.\d)$")
    HEADER_PATTERN = re.compile(r"^([^:]+):\s*(.*)$")

    def __init__(self, max_request_size: int = 64 * 1024 * 1024):
        self.max_request_size = max_request_size

    def parse(
        self,
        data: bytes,
        client_address: tuple[str, int] = ("", 0)
    ) -> HTTPRequest:
        """
        Parse raw HTTP request data.

        Args:
            data: Complete request bytes (headers and body).
            client_address: Client's (ip, port) tuple.

        Returns:
            Parsed HTTPRequest.

        Raises:
            HTTPParseError: If the request is malformed.
        """
        if len(data) > self.max_request_size:
            raise HTTPParseError(
                f"Request too large: {len(data)} bytes",
                status_code=413
            )

        header_end = data.find(b"\r\n\r\n")
        if header_end == -1:
            raise HTTPParseError("Incomplete request: no header terminator")

        header_section = data[:header_end].decode("iso-8859-1")
        body = data[header_end + 4:]

        lines = header_section.split("\r\n")
        method, path, raw_query, version = self._parse_request_line(lines[0])
        headers = self._parse_headers(lines[1:])

        # Trust Content-Length only; anything past it belongs to the
        # next request on a keep-alive connection.
        try:
            content_length = int(headers.get("content-length", 0))
        except ValueError:
            raise HTTPParseError("Invalid Content-Length header")
        if content_length < 0 or len(body) < content_length:
            raise HTTPParseError(
                f"Incomplete body: expected {content_length} bytes, got {len(body)}"
            )

        return HTTPRequest(
            method=method,
            path=path,
            version=version,
            headers=headers,
            query_params=parse_qs(raw_query, keep_blank_values=True),
            raw_query=raw_query,
            body=body[:content_length],
            client_address=client_address,
        )

    def _parse_request_line(self, line: str) -> tuple[str, str, str, str]:
        """
        Parse "METHOD SP REQUEST-URI SP HTTP-VERSION".

        Returns:
            Tuple of (method, path, raw_query, version).
        """
        match = self.REQUEST_LINE_PATTERN.match(line)
        if not match:
            raise HTTPParseError(f"Invalid request line: {line}")

        method, uri, version = match.groups()

        if method not in self.VALID_METHODS:
            raise HTTPParseError(f"Invalid method: {method}", status_code=405)

        if version not in ("HTTP/1.0", "HTTP/1.1"):
            raise HTTPParseError(
                f"Unsupported HTTP version: {version}",
                status_code=505
            )

        parsed = urlparse(uri)
        path = unquote(parsed.path) or "/"

        if ".." in path:
            raise HTTPParseError("Invalid path: contains ..")

        return method, path, parsed.query, version

    def _parse_headers(self, lines: list[str]) -> Dict[str, str]:
        """
        Parse "Name: Value" lines into a dict with lowercase names.

        Continuation lines (leading whitespace) extend the previous
        header; repeated headers are joined with ", ".
        """
        headers: Dict[str, str] = {}
        current_name = None

        for line in lines:
            if not line:
                continue

            if line[0] in (" ", "\t"):
                if current_name is not None:
                    headers[current_name] += " " + line.strip()
                continue

            match = self.HEADER_PATTERN.match(line)
            if not match:
                continue  # lenient: skip malformed header lines

            name, value = match.groups()
            name = name.strip().lower()
            value = value.strip()
            current_name = name

            if name in headers:
                headers[name] += ", " + value
            else:
                headers[name] = value

        return headers
