"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

Centralized configuration for the transport and the dispatch layer.

=============================================================================
SET ONCE, READ EVERYWHERE
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    CONFIGURATION FLOW                               │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   ServerConfig(...) / ServerConfig.from_env()                       │
    │        │                                                             │
    │        ▼                                                             │
    │   validate()          ← fail fast, before any socket is bound       │
    │        │                                                             │
    │        ├──────────► HTTPServer   (host, port, workers, timeouts)    │
    │        │                                                             │
    │        └──────────► Dispatcher   (max_tries, max_form_memory)       │
    │                                                                      │
    │   After listen() starts, nobody writes to the config again, so      │
    │   worker threads read it without locking.                           │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

The retry budget deserves a word: every request copies `max_tries` into a
local counter. The config value itself is never decremented.

=============================================================================
"""

import os
from dataclasses import dataclass
from typing import Optional


class ConfigError(ValueError):
    """Raised when the configuration cannot be used to start a server."""


@dataclass
class ServerConfig:
    """
    Configuration for the server and the dispatch core.

    =========================================================================
    CONFIGURATION GROUPS
    =========================================================================

    NETWORK     host, port, backlog, buffer_size, timeout
    HTTP        keep_alive, keep_alive_timeout, max_request_size
    THREADS     min_workers, max_workers
    DISPATCH    max_tries, max_form_memory
    LOGGING     log_level, log_dir

    =========================================================================
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    host: str = "127.0.0.1"
    """Address to bind. "0.0.0.0" listens on every interface."""

    port: int = 8080
    """Port to listen on. 0 lets the OS pick a free port."""

    backlog: int = 128
    """Maximum number of queued, not yet accepted connections."""

    buffer_size: int = 8192
    """Bytes read from a client socket per recv() call."""

    timeout: Optional[float] = 30.0
    """Socket timeout in seconds. None blocks forever."""

    # ─────────────────────────────────────────────────────────────────────
    # HTTP SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    keep_alive: bool = True
    keep_alive_timeout: float = 5.0

    max_request_size: int = 64 * 1024 * 1024  # 64 MB
    """
    Largest request (headers + body) the transport will buffer.
    Multipart uploads count against this too.
    """

    # ─────────────────────────────────────────────────────────────────────
    # THREAD POOL SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    min_workers: int = 4
    max_workers: int = 16

    # ─────────────────────────────────────────────────────────────────────
    # DISPATCH SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    max_tries: int = 3
    """
    How many times a handler may run for one request when it keeps
    failing with transient backend errors. Must be >= 1.
    """

    max_form_memory: int = 32 << 20  # 32 MiB
    """Form file parts larger than this are spilled to temporary files."""

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"

    log_dir: Optional[str] = None
    """If set, dispatch logs go to daily files in this directory."""

    server_name: str = "jsonhttp/1.0"

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """
        Create configuration from environment variables.

        =====================================================================
        ENVIRONMENT VARIABLES
        =====================================================================

        JSONHTTP_HOST       Server host (default: 127.0.0.1)
        JSONHTTP_PORT       Server port (default: 8080)
        JSONHTTP_WORKERS    Max worker threads (default: 16)
        JSONHTTP_TIMEOUT    Socket timeout in seconds (default: 30)
        JSONHTTP_MAX_TRIES  Handler attempts per request (default: 3)
        JSONHTTP_LOG_LEVEL  Logging level (default: INFO)
        JSONHTTP_LOG_DIR    Directory for daily log files (default: None)

        =====================================================================
        """
        return cls(
            host=os.getenv("JSONHTTP_HOST", "127.0.0.1"),
            port=int(os.getenv("JSONHTTP_PORT", "8080")),
            max_workers=int(os.getenv("JSONHTTP_WORKERS", "16")),
            timeout=float(os.getenv("JSONHTTP_TIMEOUT", "30")),
            max_tries=int(os.getenv("JSONHTTP_MAX_TRIES", "3")),
            log_level=os.getenv("JSONHTTP_LOG_LEVEL", "INFO"),
            log_dir=os.getenv("JSONHTTP_LOG_DIR"),
        )

    def validate(self) -> None:
        """
        Validate configuration values.

        Called before the server binds its socket.

        Raises:
            ConfigError: On the first invalid value found.
        """
        if not 0 <= self.port < 65536:
            raise ConfigError(f"Invalid port: {self.port}. Must be 0-65535.")
        if self.min_workers < 1:
            raise ConfigError("min_workers must be >= 1")
        if self.max_workers < self.min_workers:
            raise ConfigError("max_workers must be >= min_workers")
        if self.buffer_size < 1024:
            raise ConfigError("buffer_size must be >= 1024")
        if self.timeout is not None and self.timeout <= 0:
            raise ConfigError("timeout must be > 0")
        if self.max_tries < 1:
            raise ConfigError(
                f"jsonhttp: listen {self.host}:{self.port} failed, "
                f"max_tries must be positive (got {self.max_tries})"
            )


def parse_address(address: str) -> tuple[str, int]:
    """
    Split a listen address into (host, port).

        "127.0.0.1:8080"  → ("127.0.0.1", 8080)
        ":8080"           → ("0.0.0.0", 8080)
        "[::1]:8080"      → ("::1", 8080)

    Raises:
        ConfigError: If the address has no usable port.
    """
    host, sep, port = address.rpartition(":")
    if not sep or not port.isdigit():
        raise ConfigError(f"Invalid listen address: {address!r}")
    host = host.strip("[]") or "0.0.0.0"
    return host, int(port)
