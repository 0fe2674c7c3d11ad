"""
Demo application served by `flowserver serve`.

Endpoints:
    GET  /        application info and endpoint list
    GET  /config  the full configuration snapshot
    POST /echo    echoes the parsed request body and headers
"""

import logging
from datetime import datetime, timezone
from typing import Any

from flowserver import create_flow
from flowserver.core.config import Config
from flowserver.http import HttpEngine, Next
from flowserver.runtime import Flow, RequestContext

logger = logging.getLogger(__name__)

DEFAULT_CONFIG: dict[str, Any] = {
    "app": {"name": "Flow Example Server", "version": "1.0.0"},
    "http": {"host": "localhost", "port": 3000},
}


async def request_logger(ctx: RequestContext, call_next: Next) -> None:
    """Log each request and attach a ctx.json(data, status) helper."""
    logger.info("%s %s - Request received", ctx.method, ctx.path)

    def json_response(data: Any, status: int = 200) -> None:
        ctx.res.send_json(data, status=status)

    ctx.json = json_response  # type: ignore[attr-defined]

    await call_next()

    logger.info("%s %s - Response sent in %.1fms", ctx.method, ctx.path, ctx.elapsed_ms)


def create_app(config: dict[str, Any] | Config | None = None, **engine_options: Any) -> Flow:
    """Build a Flow with the demo HTTP engine registered as "http"."""
    if isinstance(config, Config):
        merged = Config(DEFAULT_CONFIG).merge(config.get_all())
    else:
        merged = Config(DEFAULT_CONFIG).merge(config or {})

    flow = create_flow(merged)
    http = HttpEngine(
        engine_options,
        host=merged.get("http.host"),
        port=merged.get("http.port"),
    )
    http.use(request_logger)

    @http.route("GET", "/")
    def index(ctx: RequestContext) -> None:
        ctx.json(
            {
                "app": merged.get("app.name"),
                "version": merged.get("app.version"),
                "message": "Welcome to Flow Server Framework!",
                "endpoints": [
                    {"path": "/", "method": "GET", "description": "This information"},
                    {"path": "/echo", "method": "POST", "description": "Echo back request body"},
                    {
                        "path": "/config",
                        "method": "GET",
                        "description": "View application configuration",
                    },
                ],
            }
        )

    @http.route("GET", "/config")
    def show_config(ctx: RequestContext) -> None:
        ctx.json(merged.get_all())

    @http.route("POST", "/echo")
    def echo(ctx: RequestContext) -> None:
        ctx.json(
            {
                "echo": ctx.body,
                "headers": dict(ctx.headers),
                "timestamp": datetime.now(timezone.utc).isoformat(),
            }
        )

    flow.register_engine("http", http)
    return flow
