"""
=============================================================================
CLIENT CONNECTION
=============================================================================

Wraps an accepted client socket with buffered request reading.

TCP hands us bytes in arbitrary chunks. A Connection accumulates them until
it holds one complete HTTP request (headers up to \\r\\n\\r\\n, then exactly
Content-Length body bytes) and keeps any surplus for the next request on a
keep-alive connection.

    first request     socket timeout = timeout             → TimeoutError
    later requests    socket timeout = keep_alive_timeout  → None (idle)
    over the limit    max_request_size                     → ValueError

=============================================================================
"""

import logging
import socket
import uuid
from dataclasses import dataclass, field
from typing import Optional


logger = logging.getLogger(__name__)

HEADER_END = b"\r\n\r\n"


def content_length(head: bytes) -> int:
    """Content-Length from raw header bytes; 0 if absent or invalid."""
    for line in head.split(b"\r\n")[1:]:
        name, sep, value = line.partition(b":")
        if sep and name.strip().lower() == b"content-length":
            try:
                return max(int(value.strip()), 0)
            except ValueError:
                return 0
    return 0


@dataclass
class Connection:
    """
    A client connection.

    Attributes:
        socket: The accepted client socket.
        address: Client's (ip, port).
        id: Short identifier used in log lines.
        requests_handled: Requests read on this connection so far.
    """

    socket: socket.socket
    address: tuple

    id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])
    requests_handled: int = 0
    closed: bool = False

    buffer_size: int = 8192
    timeout: Optional[float] = 30.0
    keep_alive_timeout: float = 5.0
    max_request_size: int = 64 * 1024 * 1024

    _pending: bytearray = field(default_factory=bytearray, repr=False)

    def __post_init__(self):
        self.socket.settimeout(self.timeout)

    def read_request(self) -> Optional[bytes]:
        """
        Read one complete HTTP request.

        Returns:
            The request bytes, or None if the client closed the connection
            (or went idle past the keep-alive timeout).

        Raises:
            TimeoutError: If the first request does not arrive in time.
            ValueError: If the request exceeds max_request_size.
        """
        idle = self.requests_handled > 0
        if idle:
            self.socket.settimeout(self.keep_alive_timeout)

        try:
            head_end = self._pending.find(HEADER_END)
            while head_end < 0:
                if not self._fill():
                    return None
                head_end = self._pending.find(HEADER_END)

            end = head_end + len(HEADER_END) + content_length(bytes(self._pending[:head_end]))
            while len(self._pending) < end:
                if not self._fill():
                    break  # client hung up mid-body; the parser reports it
        except socket.timeout:
            if idle:
                logger.debug(f"[{self.id}] Keep-alive timeout")
                return None
            raise TimeoutError("Request read timeout")
        finally:
            self.socket.settimeout(self.timeout)

        request = bytes(self._pending[:end])
        del self._pending[:end]
        self.requests_handled += 1
        return request

    def _fill(self) -> bool:
        """Receive one chunk into the buffer. False when the peer is gone."""
        try:
            chunk = self.socket.recv(self.buffer_size)
        except (ConnectionResetError, BrokenPipeError):
            return False
        if not chunk:
            return False
        self._pending += chunk
        if len(self._pending) > self.max_request_size:
            raise ValueError(f"Request too large: {len(self._pending)} bytes")
        return True

    def send_response(self, data: bytes) -> bool:
        """sendall() the response; False if the client is gone."""
        try:
            self.socket.sendall(data)
            return True
        except OSError as e:
            logger.warning(f"[{self.id}] Send failed: {e}")
            return False

    def close(self):
        """Half-close, drain what the client still sends, then close."""
        if self.closed:
            return
        self.closed = True

        try:
            self.socket.shutdown(socket.SHUT_WR)
            self.socket.settimeout(0.5)
            while self.socket.recv(1024):
                pass
        except OSError:
            pass
        finally:
            self.socket.close()

        logger.debug(f"[{self.id}] Connection closed after {self.requests_handled} requests")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
