"""
HTTP engine.

Serves HTTP/1.1 through uvicorn with a flat route table and an ordered
middleware chain. Each request gets its own RequestContext; failures in
middleware or handlers are contained to that request and turned into a
500 response, so the listening socket keeps serving.

Usage:
    http = HttpEngine(host="localhost", port=3000)

    async def timing(ctx, call_next):
        await call_next()
        ctx.res.set_header("X-Elapsed-Ms", f"{ctx.elapsed_ms:.1f}")

    http.use(timing)
    http.get("/health", lambda ctx: ctx.res.send_json({"ok": True}))

    flow.register_engine("http", http)
    await flow.start()
"""

from __future__ import annotations

import asyncio
import json
import logging
import socket
from typing import Any, Awaitable, Callable

import uvicorn
from starlette.requests import Request
from starlette.types import Receive, Scope, Send

from flowserver.errors import BindError, DuplicateRouteError, PayloadTooLargeError
from flowserver.http.response import Response
from flowserver.runtime.context import RequestContext
from flowserver.runtime.engine import Engine
from flowserver.runtime.lifecycle import maybe_await

logger = logging.getLogger(__name__)

DEFAULT_HOST = "localhost"
DEFAULT_PORT = 3000
DEFAULT_MAX_BODY_SIZE = 1024 * 1024  # 1 MiB

# Methods whose body is read before the middleware chain runs
BODY_METHODS = frozenset({"POST", "PUT", "PATCH"})

# Seconds between checks while waiting for uvicorn to report startup
_STARTUP_POLL_INTERVAL = 0.01


class _Stop:
    """Sentinel type for ending the middleware chain."""

    def __repr__(self) -> str:
        return "STOP"


# Returned by a middleware to end the chain; no route handler runs
STOP = _Stop()

Handler = Callable[[RequestContext], Any]
Next = Callable[[], Awaitable[None]]
Middleware = Callable[[RequestContext, Next], Any]


class _Continuation:
    """Runs the downstream chain at most once."""

    def __init__(self, run: Callable[[], Awaitable[None]]) -> None:
        self._run = run
        self.called = False

    async def __call__(self) -> None:
        if self.called:
            return
        self.called = True
        await self._run()


def decode_body(raw: bytes, content_type: str) -> Any:
    """
    Decode a request body.

    JSON content types are parsed; a body that fails to parse is returned
    as text instead. An empty body decodes to None.
    """
    if not raw:
        return None

    text = raw.decode("utf-8", errors="replace")
    if "application/json" in content_type.lower():
        try:
            return json.loads(text)
        except ValueError:
            return text
    return text


class HttpEngine(Engine):
    """
    Engine serving HTTP routes behind a middleware chain.

    Options (constructor keywords take precedence over the options dict):
        host: Interface to bind (default "localhost").
        port: Port to bind; 0 picks a free port (default 3000).
        max_body_size: Largest accepted request body in bytes.
        log_config: uvicorn log config (None leaves logging untouched).
    """

    def __init__(
        self,
        options: dict[str, Any] | None = None,
        *,
        host: str | None = None,
        port: int | None = None,
        max_body_size: int | None = None,
    ):
        super().__init__(options)
        self.host: str = host or self.options.get("host") or DEFAULT_HOST
        if port is None:
            port = self.options.get("port", DEFAULT_PORT)
        self.port = int(port)
        if max_body_size is None:
            max_body_size = self.options.get("max_body_size", DEFAULT_MAX_BODY_SIZE)
        self.max_body_size = int(max_body_size)

        self.routes: dict[tuple[str, str], Handler] = {}
        self.middlewares: list[Middleware] = []

        self.bound_port: int | None = None
        self._server: uvicorn.Server | None = None
        self._socket: socket.socket | None = None
        self._serve_task: asyncio.Task[None] | None = None

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def add_route(self, method: str, path: str, handler: Handler) -> HttpEngine:
        """
        Register a handler for an exact (method, path) pair.

        Raises:
            DuplicateRouteError: If the pair already has a handler.
        """
        key = (method.upper(), path)
        if key in self.routes:
            raise DuplicateRouteError(f"Route {key[0]} {path} is already registered")

        self.routes[key] = handler
        return self

    def get(self, path: str, handler: Handler) -> HttpEngine:
        return self.add_route("GET", path, handler)

    def post(self, path: str, handler: Handler) -> HttpEngine:
        return self.add_route("POST", path, handler)

    def put(self, path: str, handler: Handler) -> HttpEngine:
        return self.add_route("PUT", path, handler)

    def patch(self, path: str, handler: Handler) -> HttpEngine:
        return self.add_route("PATCH", path, handler)

    def delete(self, path: str, handler: Handler) -> HttpEngine:
        return self.add_route("DELETE", path, handler)

    def route(self, method: str, path: str) -> Callable[[Handler], Handler]:
        """Register the decorated function as a route handler."""

        def decorator(handler: Handler) -> Handler:
            self.add_route(method, path, handler)
            return handler

        return decorator

    def use(self, middleware: Middleware) -> HttpEngine:
        """Append a middleware to the chain."""
        self.middlewares.append(middleware)
        return self

    def _get_info_metadata(self) -> dict[str, Any]:
        return {
            "host": self.host,
            "port": self.port,
            "bound_port": self.bound_port,
            "routes": len(self.routes),
            "middlewares": len(self.middlewares),
        }

    # ------------------------------------------------------------------
    # Lifecycle hooks
    # ------------------------------------------------------------------

    async def _do_init(self) -> None:
        """Build the uvicorn server around the request entry point."""
        config = uvicorn.Config(
            self.asgi_app,
            host=self.host,
            port=self.port,
            interface="asgi3",
            lifespan="off",
            access_log=False,
            log_config=self.options.get("log_config"),
        )
        self._server = uvicorn.Server(config)

    async def _do_start(self) -> None:
        """Bind the socket and wait until uvicorn is serving on it."""
        if self._server is None:
            raise BindError("HTTP engine started before init", self.host, self.port)

        sock = self._bind()
        self._socket = sock
        self.bound_port = sock.getsockname()[1]

        self._serve_task = asyncio.create_task(self._server.serve(sockets=[sock]))
        while not self._server.started:
            if self._serve_task.done():
                exc = None if self._serve_task.cancelled() else self._serve_task.exception()
                self._close_socket()
                self._serve_task = None
                raise BindError(
                    f"HTTP server on {self.host}:{self.port} exited during startup: {exc}",
                    self.host,
                    self.port,
                ) from exc
            await asyncio.sleep(_STARTUP_POLL_INTERVAL)

        logger.info("HTTP server listening on %s:%s", self.host, self.bound_port)

    async def _do_stop(self) -> None:
        """Ask uvicorn to exit and wait for it to close."""
        if self._server is None or self._serve_task is None:
            return

        self._server.should_exit = True
        try:
            await self._serve_task
        finally:
            self._serve_task = None
            self._close_socket()

        logger.info("HTTP server stopped")

    def _bind(self) -> socket.socket:
        try:
            family = socket.getaddrinfo(
                self.host, self.port, type=socket.SOCK_STREAM, flags=socket.AI_PASSIVE
            )[0][0]
            return socket.create_server((self.host, self.port), family=family)
        except OSError as e:
            raise BindError(
                f"Cannot listen on {self.host}:{self.port}: {e}",
                self.host,
                self.port,
            ) from e

    def _close_socket(self) -> None:
        if self._socket is not None:
            self._socket.close()
            self._socket = None

    # ------------------------------------------------------------------
    # Request handling
    # ------------------------------------------------------------------

    @property
    def asgi_app(self) -> Callable[[Scope, Receive, Send], Awaitable[None]]:
        """The ASGI entry point served by uvicorn."""
        return self._asgi

    async def _asgi(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "websocket":
            await send({"type": "websocket.close", "code": 1000})
            return
        if scope["type"] != "http":
            return

        response = await self.handle(Request(scope, receive))
        await response.to_starlette()(scope, receive, send)

    async def handle(self, request: Request) -> Response:
        """
        Run one request through the pipeline and return its response.

        Never raises for errors in middleware or handlers.
        """
        res = Response()
        ctx = RequestContext(
            req=request,
            res=res,
            method=request.method.upper(),
            path=request.url.path,
            query=request.query_params,
            engine=self,
            flow=self.flow,
        )

        try:
            if ctx.method in BODY_METHODS:
                raw = await self._read_body(request)
                ctx.body = decode_body(raw, request.headers.get("content-type", ""))

            await self.emit("http.request", {"ctx": ctx})
            await self._run_chain(ctx)
        except PayloadTooLargeError as e:
            logger.warning("Rejected %s %s: %s", ctx.method, ctx.path, e.message)
            if not res.finished:
                res.reset()
                res.send_json({"error": "Payload Too Large"}, status=413)
        except Exception:
            logger.exception("Request error: %s %s", ctx.method, ctx.path)
            if not res.finished:
                res.reset()
                res.send_json({"error": "Internal Server Error"}, status=500)

        # Fires for every outcome, with the status that goes on the wire
        try:
            await self.emit("http.response", {"ctx": ctx, "status": res.status_code})
        except Exception:
            logger.exception("http.response listener failed: %s %s", ctx.method, ctx.path)

        return res

    async def _read_body(self, request: Request) -> bytes:
        declared = request.headers.get("content-length", "")
        if declared.isdigit() and int(declared) > self.max_body_size:
            raise PayloadTooLargeError(
                f"Declared body of {declared} bytes exceeds {self.max_body_size}",
                self.max_body_size,
            )

        chunks: list[bytes] = []
        size = 0
        async for chunk in request.stream():
            size += len(chunk)
            if size > self.max_body_size:
                raise PayloadTooLargeError(
                    f"Body exceeds {self.max_body_size} bytes",
                    self.max_body_size,
                )
            chunks.append(chunk)
        return b"".join(chunks)

    async def _run_chain(self, ctx: RequestContext) -> None:
        middlewares = list(self.middlewares)

        async def dispatch(index: int) -> None:
            if index >= len(middlewares):
                await self._dispatch_route(ctx)
                return

            downstream = _Continuation(lambda: dispatch(index + 1))
            result = await maybe_await(middlewares[index](ctx, downstream))
            if result is STOP or result is False:
                return
            if not downstream.called:
                await downstream()

        await dispatch(0)

    async def _dispatch_route(self, ctx: RequestContext) -> None:
        handler = self.routes.get((ctx.method, ctx.path))
        if handler is None:
            ctx.res.send_json({"error": "Not Found"}, status=404)
            return

        await maybe_await(handler(ctx))
