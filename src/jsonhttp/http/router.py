"""
=============================================================================
URL ROUTER
=============================================================================

Maps request paths to transport handlers.

    Pattern              Matches                    path_params
    ───────────────────  ─────────────────────────  ───────────────────────
    /hi                  /hi                        {}
    /users/:id           /users/42                  {"id": "42"}
    /files/*path         /files/a/b.txt             {"path": "a/b.txt"}

Patterns are compiled to anchored regexes with named groups. First
registered, first matched. Routes are method-agnostic: a jsonhttp handler
decides for itself what to do with GET vs POST.

=============================================================================
"""

from dataclasses import dataclass, field
from typing import Callable, Optional, Dict, List
import re

from .request import HTTPRequest
from .response import HTTPResponse, not_found


# A transport handler takes the parsed request and returns one response.
Handler = Callable[[HTTPRequest], HTTPResponse]


@dataclass
class Route:
    path: str
    handler: Handler
    _pattern: Optional[re.Pattern] = field(default=None, repr=False)
    _param_names: List[str] = field(default_factory=list, repr=False)


@dataclass
class RouteMatch:
    route: Route
    params: Dict[str, str]


class Router:
    """
    Path router used by HTTPServer.

    Usage:
        router = Router()
        router.add_route("/users/:id", get_user)
        response = router.handle(request)
    """

    def __init__(self):
        self._routes: List[Route] = []

    def add_route(self, path: str, handler: Handler) -> Route:
        """
        Register `handler` for `path`.

        Raises:
            ValueError: If the same pattern is registered twice.
        """
        if any(route.path == path for route in self._routes):
            raise ValueError(f"multiple registrations for {path}")

        pattern, param_names = self._compile_pattern(path)
        route = Route(
            path=path,
            handler=handler,
            _pattern=pattern,
            _param_names=param_names,
        )
        self._routes.append(route)
        return route

    def _compile_pattern(self, path: str) -> tuple[re.Pattern, List[str]]:
        """
        Compile "/users/:id/files/*rest" into
        ^/users/(?P<id>[^/]+)/files/(?P<rest>.*)$
        """
        param_names: List[str] = []
        regex_parts = ["^"]

        for segment in path.split("/"):
            if not segment:
                continue

            regex_parts.append("/")

            if segment.startswith(":"):
                name = segment[1:]
                param_names.append(name)
                regex_parts.append(f"(?P<{name}>[^/]+)")
            elif segment.startswith("*"):
                # wildcard must be last; it eats the rest of the path
                name = segment[1:] or "wildcard"
                param_names.append(name)
                regex_parts.append(f"(?P<{name}>.*)")
                break
            else:
                regex_parts.append(re.escape(segment))

        if len(regex_parts) == 1:
            regex_parts.append("/")  # the root pattern "/"
        regex_parts.append("$")
        return re.compile("".join(regex_parts)), param_names

    def match(self, path: str) -> Optional[RouteMatch]:
        """Return the first route matching `path`, or None."""
        path = "/" + path.strip("/") if path != "/" else "/"

        for route in self._routes:
            match = route._pattern.match(path)
            if match:
                return RouteMatch(route=route, params=match.groupdict())
        return None

    def handle(self, request: HTTPRequest) -> HTTPResponse:
        """Route `request` to its handler, or answer 404."""
        match = self.match(request.path)
        if match is None:
            return not_found(f"No route matches {request.path}")

        request.path_params = match.params
        return match.route.handler(request)

    def routes(self) -> List[Route]:
        return list(self._routes)
