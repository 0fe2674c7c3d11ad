"""
Response handle passed to middleware and route handlers.

Handlers write status, headers and body onto the handle; the engine sends
the buffered result once the request pipeline has finished. There is no
streaming: the body is delivered in one piece.
"""

import json
from typing import Any

from starlette.responses import Response as StarletteResponse


class Response:
    """
    Buffered HTTP response.

    Example:
        async def hello(ctx):
            ctx.res.status_code = 201
            ctx.res.set_header("Content-Type", "text/plain")
            ctx.res.end("created")
    """

    def __init__(self) -> None:
        self.status_code = 200
        self._headers: dict[str, str] = {}
        self._chunks: list[bytes] = []
        self._finished = False

    @property
    def finished(self) -> bool:
        """True once end() has been called."""
        return self._finished

    @property
    def headers(self) -> dict[str, str]:
        """Response headers, keyed by lower-cased name."""
        return dict(self._headers)

    @property
    def body(self) -> bytes:
        return b"".join(self._chunks)

    def set_header(self, name: str, value: str) -> "Response":
        self._headers[name.lower()] = str(value)
        return self

    def get_header(self, name: str, default: str | None = None) -> str | None:
        return self._headers.get(name.lower(), default)

    def write(self, data: str | bytes) -> "Response":
        """Append data to the body."""
        if self._finished:
            raise RuntimeError("Cannot write to a finished response")
        self._chunks.append(data.encode("utf-8") if isinstance(data, str) else data)
        return self

    def end(self, data: str | bytes | None = None) -> "Response":
        """Append optional final data and mark the response finished."""
        if data is not None:
            self.write(data)
        self._finished = True
        return self

    def send_json(self, data: Any, status: int = 200) -> "Response":
        """Serialize data as JSON and finish the response."""
        self.status_code = status
        self.set_header("Content-Type", "application/json")
        return self.end(json.dumps(data, default=str))

    def reset(self) -> "Response":
        """Discard anything written so far. Only valid before end()."""
        if self._finished:
            raise RuntimeError("Cannot reset a finished response")
        self.status_code = 200
        self._headers.clear()
        self._chunks.clear()
        return self

    def to_starlette(self) -> StarletteResponse:
        """Build the starlette response that goes on the wire."""
        return StarletteResponse(
            content=self.body,
            status_code=self.status_code,
            headers=self._headers,
        )
