"""
=============================================================================
CORE SERVER COMPONENTS
=============================================================================

The plumbing under jsonhttp: sockets, connections and worker threads.

    ┌─────────────────────────────────────────────────────────────────────┐
    │   SocketServer   accept() loop, hands each client to a callback     │
    │        │                                                             │
    │        ▼                                                             │
    │   ThreadPool     bounded queue + worker threads                      │
    │        │                                                             │
    │        ▼                                                             │
    │   Connection     buffered request reads, keep-alive, close          │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

from .connection import Connection
from .socket_server import SocketServer, resolve_bind_address
from .thread_pool import ThreadPool, Worker, WorkerState

__all__ = [
    "Connection",
    "SocketServer",
    "resolve_bind_address",
    "ThreadPool",
    "Worker",
    "WorkerState",
]
