"""HTTP engine: routing, middleware and the response handle."""

from flowserver.http.engine import (
    BODY_METHODS,
    DEFAULT_HOST,
    DEFAULT_MAX_BODY_SIZE,
    DEFAULT_PORT,
    STOP,
    Handler,
    HttpEngine,
    Middleware,
    Next,
    decode_body,
)
from flowserver.http.response import Response

__all__ = [
    "BODY_METHODS",
    "DEFAULT_HOST",
    "DEFAULT_MAX_BODY_SIZE",
    "DEFAULT_PORT",
    "STOP",
    "Handler",
    "HttpEngine",
    "Middleware",
    "Next",
    "Response",
    "decode_body",
]
