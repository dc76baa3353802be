"""
=============================================================================
TCP SOCKET SERVER
=============================================================================

Owns the listening socket and the accept loop.

    start(callback)
        ├──► getaddrinfo(host, port)  ← picks AF_INET or AF_INET6
        ├──► socket() + SO_REUSEADDR + TCP_NODELAY
        ├──► bind() / listen()
        ├──► ready.set()              ← tests wait on this, then read .address
        └──► while running:
                 accept()             ← 1s timeout so shutdown() is noticed
                 callback(Connection(...))

Process signals are not handled here. jsonhttp.app installs its own
handlers because a signal must end the whole process, not just this loop.

=============================================================================
"""

import logging
import socket
import threading
from typing import Callable, Optional, Tuple

from ..config import ServerConfig
from .connection import Connection


logger = logging.getLogger(__name__)

ConnectionHandler = Callable[[Connection], None]


def resolve_bind_address(host: str, port: int) -> Tuple[int, tuple]:
    """
    (family, sockaddr) to bind for `host`.

    "127.0.0.1" and "0.0.0.0" give AF_INET, "::1" and "::" give AF_INET6.
    """
    infos = socket.getaddrinfo(
        host, port, socket.AF_UNSPEC, socket.SOCK_STREAM, 0, socket.AI_PASSIVE
    )
    family, _, _, _, sockaddr = infos[0]
    return family, sockaddr


class SocketServer:
    """
    Hands each accepted TCP connection to a callback.

    Usage:
        server = SocketServer(config)
        server.start(handle_connection)   # blocks until shutdown()
    """

    def __init__(self, config: ServerConfig):
        self.config = config
        self.ready = threading.Event()
        self._listener: Optional[socket.socket] = None
        self._running = False

    @property
    def address(self) -> Tuple[str, int]:
        """Bound (ip, port); reflects the real port when config.port is 0."""
        if self._listener is None:
            return (self.config.host, self.config.port)
        return self._listener.getsockname()[:2]

    def _bind(self) -> socket.socket:
        family, sockaddr = resolve_bind_address(self.config.host, self.config.port)
        listener = socket.socket(family, socket.SOCK_STREAM)
        try:
            listener.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            listener.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
            listener.bind(sockaddr)
            listener.listen(self.config.backlog)
        except OSError as e:
            logger.error(f"Failed to bind to {self.config.host}:{self.config.port}: {e}")
            listener.close()
            raise
        listener.settimeout(1.0)
        return listener

    def start(self, on_connection: ConnectionHandler):
        """
        Bind, listen and run the accept loop. Blocks until shutdown().

        Raises:
            OSError: If the address cannot be resolved or bound.
        """
        self._listener = self._bind()
        self._running = True
        self.ready.set()

        host, port = self.address
        logger.info(f"Server listening on {host}:{port}")

        try:
            while self._running:
                accepted = self._accept()
                if accepted is None:
                    continue
                on_connection(accepted)
        finally:
            self._close_listener()

    def _accept(self) -> Optional[Connection]:
        try:
            client, peer = self._listener.accept()
        except socket.timeout:
            return None
        except OSError as e:
            if self._running:
                logger.error(f"Accept error: {e}")
            self._running = False
            return None

        logger.debug(f"Accepted connection from {peer[0]}:{peer[1]}")
        return Connection(
            socket=client,
            address=peer[:2],
            buffer_size=self.config.buffer_size,
            timeout=self.config.timeout,
            keep_alive_timeout=self.config.keep_alive_timeout,
            max_request_size=self.config.max_request_size,
        )

    def shutdown(self):
        """Stop the accept loop. Safe to call from any thread, more than once."""
        self._running = False

    def _close_listener(self):
        self._running = False
        self.ready.clear()
        if self._listener is not None:
            try:
                self._listener.close()
            except OSError:
                pass
            self._listener = None
        logger.info("Socket server stopped")
