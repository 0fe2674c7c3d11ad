"""
Per-request context.

One RequestContext is built for every HTTP request, passed through the
middleware chain and into the route handler, then discarded.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Mapping
from uuid import uuid4

if TYPE_CHECKING:
    from starlette.requests import Request

    from flowserver.http.response import Response
    from flowserver.runtime.engine import Engine
    from flowserver.runtime.flow import Flow


@dataclass(eq=False)
class RequestContext:
    """
    Context for a single request.

    Handlers and middleware may attach extra attributes (e.g. a ctx.json
    helper); they live and die with the request.
    """

    req: Request
    res: Response
    method: str
    path: str
    query: Mapping[str, str] = field(default_factory=dict)
    params: dict[str, Any] = field(default_factory=dict)
    body: Any = None
    engine: Engine | None = None
    flow: Flow | None = None
    request_id: str = field(default_factory=lambda: str(uuid4()))
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def elapsed_ms(self) -> float:
        """Milliseconds since the request started."""
        return (datetime.now(timezone.utc) - self.started_at).total_seconds() * 1000

    @property
    def headers(self) -> Mapping[str, str]:
        """Request headers (case-insensitive)."""
        return self.req.headers
