"""
=============================================================================
JSONHTTP DEMO SERVER
=============================================================================

    python -m jsonhttp                          # 127.0.0.1:8080
    python -m jsonhttp --listen :3000           # every interface
    python -m jsonhttp --max-tries 5 --log-dir ./logs

Routes:

    POST /echo          body echoed back under "data"
    POST /hi            {"name": "..."} → {"message": "hello, ...!"}
    GET  /hi/query      ?hi=... → the value of hi

=============================================================================
"""

import argparse
import sys

from pydantic import BaseModel

from . import __version__
from .adapters import Request, RequestGet
from .app import JsonHTTP
from .config import ConfigError, ServerConfig
from .envelope import Response, echo, success
from .errors import bad_request


class Hi(BaseModel):
    name: str = ""


class HiQuery(BaseModel):
    hi: str = ""


def hi(req: Request) -> Response:
    body = req.unmarshal(Hi)
    if not body.name:
        bad_request("name is empty")
    return success({"message": f"hello, {body.name}!"})


def hi_query(req: RequestGet) -> Response:
    return success(req.unmarshal(HiQuery).hi)


def build_app(config: ServerConfig) -> JsonHTTP:
    app = JsonHTTP(config)
    app.handle("/echo", echo)
    app.handle("/hi", hi)
    app.handle_get("/hi/query", hi_query)
    return app


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        prog="jsonhttp",
        description="Demo JSON server with abort-based errors and bounded retries",
    )

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--listen", "-L",
        default="127.0.0.1:8080",
        help="Address to listen on, host:port or :port (default: 127.0.0.1:8080)",
    )
    parser.add_argument(
        "--workers", "-w",
        type=int,
        default=4,
        help="Worker threads to start with (max is 4x this)",
    )

    # ─────────────────────────────────────────────────────────────────────
    # DISPATCH AND LOGGING
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--max-tries", "-t",
        type=int,
        default=3,
        help="Handler attempts per request on transient errors (default: 3)",
    )
    parser.add_argument(
        "--log-level", "-l",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
    )
    parser.add_argument(
        "--log-dir",
        default=None,
        help="Write dispatch logs to daily files in this directory",
    )
    parser.add_argument("--version", "-v", action="version", version=f"jsonhttp {__version__}")

    args = parser.parse_args(argv)

    config = ServerConfig(
        min_workers=args.workers,
        max_workers=args.workers * 4,
        log_level=args.log_level,
        log_dir=args.log_dir,
    )
    app = build_app(config)
    try:
        app.listen(args.listen, max_tries=args.max_tries)
    except ConfigError as e:
        print(f"jsonhttp: {e}", file=sys.stderr)
        return 2
    except KeyboardInterrupt:
        pass
    return 0


if __name__ == "__main__":
    sys.exit(main())
