"""
Tests for the HTTP engine.

Verifies:
1. Exact routing and JSON 404s
2. Middleware ordering, wrapping and short-circuit
3. Body parsing and the size guard
4. Error containment
5. Real socket lifecycle, bind errors and the end-to-end config scenario
"""

import socket

import httpx
import pytest

from flowserver import create_flow
from flowserver.errors import BindError, DuplicateRouteError
from flowserver.http import STOP, HttpEngine, decode_body
from flowserver.runtime import LifecycleState


def client_for(engine: HttpEngine) -> httpx.AsyncClient:
    """HTTP client that talks to the engine's ASGI entry point in-process."""
    return httpx.AsyncClient(
        transport=httpx.ASGITransport(app=engine.asgi_app),
        base_url="http://testserver",
    )


def ok(ctx):
    ctx.res.send_json({"path": ctx.path, "method": ctx.method})


class TestConstruction:
    """Tests for engine options."""

    def test_defaults(self):
        """Defaults match the documented host and port."""
        engine = HttpEngine()
        assert engine.host == "localhost"
        assert engine.port == 3000

    def test_options_dict(self):
        """Host and port may come from the options dict."""
        engine = HttpEngine({"host": "0.0.0.0", "port": 8081})
        assert engine.host == "0.0.0.0"
        assert engine.port == 8081

    def test_keywords_override_options(self):
        """Keyword arguments take precedence over options."""
        engine = HttpEngine({"port": 8081}, port=0)
        assert engine.port == 0


class TestRouting:
    """Tests for the route table."""

    @pytest.mark.asyncio
    async def test_exact_match_only(self):
        """GET /foo matches only GET /foo."""
        engine = HttpEngine().get("/foo", ok)

        async with client_for(engine) as client:
            hit = await client.get("/foo")
            slash = await client.get("/foo/")
            wrong_method = await client.post("/foo")

        assert hit.status_code == 200
        assert hit.json() == {"path": "/foo", "method": "GET"}
        assert slash.status_code == 404
        assert wrong_method.status_code == 404

    @pytest.mark.asyncio
    async def test_not_found_body(self):
        """Unmatched requests get a JSON error body."""
        async with client_for(HttpEngine()) as client:
            response = await client.get("/missing")

        assert response.status_code == 404
        assert response.headers["content-type"] == "application/json"
        assert response.json() == {"error": "Not Found"}

    @pytest.mark.asyncio
    async def test_method_sugar(self):
        """Each verb helper registers under its method."""
        engine = HttpEngine()
        engine.get("/r", ok).post("/r", ok).put("/r", ok).patch("/r", ok).delete("/r", ok)

        async with client_for(engine) as client:
            for method in ("GET", "POST", "PUT", "PATCH", "DELETE"):
                response = await client.request(method, "/r")
                assert response.json()["method"] == method

    @pytest.mark.asyncio
    async def test_route_decorator(self):
        """route() registers the decorated handler and returns it."""
        engine = HttpEngine()

        @engine.route("get", "/hello")
        async def hello(ctx):
            ctx.res.set_header("Content-Type", "text/plain")
            ctx.res.end("hi")

        async with client_for(engine) as client:
            response = await client.get("/hello")

        assert response.text == "hi"
        assert callable(hello)

    def test_duplicate_route_rejected(self):
        """The same (method, path) cannot be registered twice."""
        engine = HttpEngine().get("/x", ok)

        with pytest.raises(DuplicateRouteError):
            engine.add_route("get", "/x", ok)

    def test_same_path_different_method_allowed(self):
        """Routes are keyed by method and path together."""
        engine = HttpEngine().get("/x", ok).post("/x", ok)
        assert set(engine.routes) == {("GET", "/x"), ("POST", "/x")}

    @pytest.mark.asyncio
    async def test_query_mapping(self):
        """Query parameters are exposed on the context."""
        engine = HttpEngine()
        engine.get("/search", lambda ctx: ctx.res.send_json({"q": ctx.query.get("q")}))

        async with client_for(engine) as client:
            response = await client.get("/search", params={"q": "flow"})

        assert response.json() == {"q": "flow"}

    @pytest.mark.asyncio
    async def test_context_fields(self):
        """Handlers receive params, engine and flow references."""
        flow = create_flow()
        engine = HttpEngine()
        flow.register_engine("http", engine)
        seen = {}

        def handler(ctx):
            seen.update(params=ctx.params, engine=ctx.engine, flow=ctx.flow, body=ctx.body)
            ctx.res.end()

        engine.get("/ctx", handler)
        async with client_for(engine) as client:
            await client.get("/ctx")

        assert seen == {"params": {}, "engine": engine, "flow": flow, "body": None}


class TestMiddleware:
    """Tests for the middleware chain."""

    @pytest.mark.asyncio
    async def test_sequential_order(self):
        """Middleware that does not call next still hands over in order."""
        engine = HttpEngine()
        trace = []

        def first(ctx, call_next):
            trace.append("first")

        async def second(ctx, call_next):
            trace.append("second")

        def handler(ctx):
            trace.append("handler")
            ctx.res.end()

        engine.use(first).use(second).get("/", handler)

        async with client_for(engine) as client:
            await client.get("/")

        assert trace == ["first", "second", "handler"]

    @pytest.mark.asyncio
    async def test_wrapping_middleware(self):
        """Awaiting call_next runs the rest of the chain inline."""
        engine = HttpEngine()
        trace = []

        async def timing(ctx, call_next):
            trace.append("before")
            await call_next()
            trace.append("after")
            ctx.res.set_header("X-Handled", "yes")

        def handler(ctx):
            trace.append("handler")
            ctx.res.send_json({"ok": True})

        engine.use(timing).get("/", handler)

        async with client_for(engine) as client:
            response = await client.get("/")

        assert trace == ["before", "handler", "after"]
        assert response.headers["x-handled"] == "yes"

    @pytest.mark.asyncio
    async def test_downstream_runs_once(self):
        """Calling next twice does not run the handler twice."""
        engine = HttpEngine()
        runs = []

        async def greedy(ctx, call_next):
            await call_next()
            await call_next()

        def handler(ctx):
            runs.append(1)
            ctx.res.end()

        engine.use(greedy).get("/", handler)
        async with client_for(engine) as client:
            await client.get("/")

        assert runs == [1]

    @pytest.mark.asyncio
    async def test_short_circuit(self):
        """A middleware returning STOP ends the chain; nothing after it runs."""
        engine = HttpEngine()
        handler_runs = []

        def first(ctx, call_next):
            ctx.trace = ["first"]
            ctx.res.send_json({"error": "Forbidden"}, status=403)
            return STOP

        def second(ctx, call_next):
            ctx.trace.append("second")

        def third(ctx, call_next):
            ctx.trace.append("third")

        contexts = []
        engine.on("http.response", lambda data: contexts.append(data["ctx"]))
        engine.use(first).use(second).use(third)
        engine.get("/", lambda ctx: handler_runs.append(ctx))

        async with client_for(engine) as client:
            response = await client.get("/")

        assert response.status_code == 403
        assert response.json() == {"error": "Forbidden"}
        assert handler_runs == []
        assert contexts[0].trace == ["first"]

    @pytest.mark.asyncio
    async def test_false_also_stops(self):
        """Returning False ends the chain like STOP."""
        engine = HttpEngine()
        handler_runs = []

        async def guard(ctx, call_next):
            ctx.res.status_code = 401
            ctx.res.end()
            return False

        engine.use(guard).get("/", lambda ctx: handler_runs.append(ctx))

        async with client_for(engine) as client:
            response = await client.get("/")

        assert response.status_code == 401
        assert handler_runs == []

    @pytest.mark.asyncio
    async def test_middleware_runs_for_unmatched_routes(self):
        """Middleware runs before the 404 fallback."""
        engine = HttpEngine()
        seen = []
        engine.use(lambda ctx, call_next: seen.append(ctx.path))

        async with client_for(engine) as client:
            response = await client.get("/nowhere")

        assert seen == ["/nowhere"]
        assert response.status_code == 404


class TestBodyParsing:
    """Tests for request body handling."""

    def test_decode_body(self):
        """decode_body parses JSON and falls back to text."""
        assert decode_body(b"", "application/json") is None
        assert decode_body(b'{"a": 1}', "application/json; charset=utf-8") == {"a": 1}
        assert decode_body(b"{broken", "application/json") == "{broken"
        assert decode_body(b"plain", "text/plain") == "plain"
        assert decode_body(b'{"a": 1}', "") == '{"a": 1}'

    @pytest.mark.asyncio
    async def test_json_body(self):
        """JSON POST bodies are parsed before handlers run."""
        engine = HttpEngine()
        engine.post("/echo", lambda ctx: ctx.res.send_json({"echo": ctx.body}))

        async with client_for(engine) as client:
            response = await client.post("/echo", json={"name": "flow"})

        assert response.json() == {"echo": {"name": "flow"}}

    @pytest.mark.asyncio
    async def test_malformed_json_reaches_handler_as_text(self):
        """A JSON decode failure is swallowed and the raw text is kept."""
        engine = HttpEngine()
        engine.put("/echo", lambda ctx: ctx.res.send_json({"echo": ctx.body}))

        async with client_for(engine) as client:
            response = await client.put(
                "/echo",
                content=b"{not json",
                headers={"Content-Type": "application/json"},
            )

        assert response.status_code == 200
        assert response.json() == {"echo": "{not json"}

    @pytest.mark.asyncio
    async def test_get_body_not_parsed(self):
        """Bodies on GET requests are left alone."""
        engine = HttpEngine()
        engine.get("/echo", lambda ctx: ctx.res.send_json({"echo": ctx.body}))

        async with client_for(engine) as client:
            response = await client.request("GET", "/echo", content=b"ignored")

        assert response.json() == {"echo": None}

    @pytest.mark.asyncio
    async def test_body_size_guard(self):
        """Bodies over max_body_size are rejected with 413."""
        engine = HttpEngine(max_body_size=16)
        handler_runs = []
        engine.post("/upload", lambda ctx: handler_runs.append(ctx))

        async with client_for(engine) as client:
            response = await client.post("/upload", content=b"x" * 100)

        assert response.status_code == 413
        assert response.json() == {"error": "Payload Too Large"}
        assert handler_runs == []


class TestErrorContainment:
    """Tests for per-request error handling."""

    @pytest.mark.asyncio
    async def test_handler_error_becomes_500(self):
        """A raising handler yields a JSON 500 and the engine keeps serving."""
        engine = HttpEngine()

        def broken(ctx):
            raise RuntimeError("boom")

        engine.get("/broken", broken).get("/fine", ok)

        async with client_for(engine) as client:
            failed = await client.get("/broken")
            after = await client.get("/fine")

        assert failed.status_code == 500
        assert failed.json() == {"error": "Internal Server Error"}
        assert after.status_code == 200

    @pytest.mark.asyncio
    async def test_async_middleware_error_becomes_500(self):
        """Errors raised by async middleware are contained too."""
        engine = HttpEngine()

        async def broken(ctx, call_next):
            raise ValueError("bad middleware")

        engine.use(broken).get("/", ok)

        async with client_for(engine) as client:
            response = await client.get("/")

        assert response.status_code == 500

    @pytest.mark.asyncio
    async def test_partial_response_discarded(self):
        """Output written before the error is replaced by the 500 body."""
        engine = HttpEngine()

        def half(ctx):
            ctx.res.set_header("X-Partial", "1")
            ctx.res.write("partial")
            raise RuntimeError("midway")

        engine.get("/", half)
        async with client_for(engine) as client:
            response = await client.get("/")

        assert response.status_code == 500
        assert "x-partial" not in response.headers
        assert response.json() == {"error": "Internal Server Error"}

    @pytest.mark.asyncio
    async def test_finished_response_kept(self):
        """An error after the response was finished does not change it."""
        engine = HttpEngine()

        def answered(ctx):
            ctx.res.send_json({"done": True}, status=201)
            raise RuntimeError("after the fact")

        engine.post("/", answered)
        async with client_for(engine) as client:
            response = await client.post("/")

        assert response.status_code == 201
        assert response.json() == {"done": True}


class TestRequestEvents:
    """Tests for request-scoped events."""

    @pytest.mark.asyncio
    async def test_request_events_propagate(self):
        """http.request and http.response reach the container bus."""
        flow = create_flow()
        engine = HttpEngine().get("/", ok)
        flow.register_engine("web", engine)
        seen = []
        flow.on("engine.http.request", lambda data: seen.append(("request", data["engine_name"])))
        flow.on("engine.http.response", lambda data: seen.append(("response", data["status"])))

        async with client_for(engine) as client:
            await client.get("/")

        assert seen == [("request", "web"), ("response", 200)]

    @pytest.mark.asyncio
    async def test_response_event_for_failed_requests(self):
        """http.response also fires for 500 and 413 answers, with the final status."""
        flow = create_flow()
        engine = HttpEngine(max_body_size=16)

        def broken(ctx):
            raise RuntimeError("boom")

        engine.get("/broken", broken).post("/upload", ok)
        flow.register_engine("web", engine)
        statuses = []
        flow.on("engine.http.response", lambda data: statuses.append(data["status"]))

        async with client_for(engine) as client:
            await client.get("/broken")
            await client.post("/upload", content=b"x" * 100)
            await client.get("/missing")

        assert statuses == [500, 413, 404]

    @pytest.mark.asyncio
    async def test_response_listener_error_keeps_response(self):
        """A failing http.response listener does not change what is sent."""
        engine = HttpEngine().get("/", ok)

        def broken_listener(data):
            raise RuntimeError("listener")

        engine.on("http.response", broken_listener)

        async with client_for(engine) as client:
            response = await client.get("/")

        assert response.status_code == 200
        assert response.json() == {"path": "/", "method": "GET"}


class TestServing:
    """Tests against a real listening socket."""

    @pytest.mark.asyncio
    async def test_end_to_end_config(self):
        """GET /config returns the configuration supplied at construction."""
        settings = {
            "app": {"name": "Flow Example Server", "version": "1.0.0"},
            "http": {"host": "127.0.0.1", "port": 0},
        }
        flow = create_flow(settings)
        engine = HttpEngine(host=flow.config.get("http.host"), port=flow.config.get("http.port"))
        engine.get("/config", lambda ctx: ctx.res.send_json(flow.config.get_all()))
        flow.register_engine("http", engine)

        await flow.start()
        try:
            assert engine.state == LifecycleState.STARTED
            async with httpx.AsyncClient() as client:
                response = await client.get(f"http://127.0.0.1:{engine.bound_port}/config")
        finally:
            await flow.stop()

        assert response.status_code == 200
        assert response.json() == settings
        assert engine.state == LifecycleState.STOPPED

    @pytest.mark.asyncio
    async def test_stop_closes_socket(self):
        """After stop the port accepts no connections."""
        engine = HttpEngine(host="127.0.0.1", port=0).get("/", ok)
        await engine.start()
        port = engine.bound_port
        await engine.stop()

        with pytest.raises(httpx.ConnectError):
            async with httpx.AsyncClient() as client:
                await client.get(f"http://127.0.0.1:{port}/")

    @pytest.mark.asyncio
    async def test_bind_error_aborts_start(self):
        """A busy port raises BindError and leaves the engine unstarted."""
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as busy:
            busy.bind(("127.0.0.1", 0))
            busy.listen(1)
            port = busy.getsockname()[1]

            engine = HttpEngine(host="127.0.0.1", port=port)
            with pytest.raises(BindError) as exc_info:
                await engine.start()

        assert exc_info.value.port == port
        assert engine.state == LifecycleState.INITIALIZED

    @pytest.mark.asyncio
    async def test_engine_info_metadata(self):
        """get_info exposes the bound port and table sizes."""
        engine = HttpEngine(host="127.0.0.1", port=0).get("/", ok)
        await engine.start()
        try:
            metadata = engine.get_info().metadata
        finally:
            await engine.stop()

        assert metadata["bound_port"] == engine.bound_port
        assert metadata["routes"] == 1
        assert metadata["middlewares"] == 0
