"""
HTTP protocol pieces of the transport: parsing, responses, routing and
conditional content serving.
"""

from .request import HTTPRequest, RequestParser, HTTPParseError
from .response import (
    HTTPResponse,
    ResponseWriter,
    ResponseAlreadyWritten,
    format_http_date,
    json_response,
    not_found,
    internal_error,
    status_only,
)
from .router import Router, Route, RouteMatch, Handler
from .content import serve_content

__all__ = [
    "HTTPRequest",
    "RequestParser",
    "HTTPParseError",
    "HTTPResponse",
    "ResponseWriter",
    "ResponseAlreadyWritten",
    "format_http_date",
    "json_response",
    "not_found",
    "internal_error",
    "status_only",
    "Router",
    "Route",
    "RouteMatch",
    "Handler",
    "serve_content",
]
