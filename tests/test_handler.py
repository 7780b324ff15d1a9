"""Tests for edgeroute.server.handler: end-to-end routing and response generation."""

import json
import logging

import httpx
import pytest

from edgeroute.assets import MemoryAssets
from edgeroute.config import RouterConfig
from edgeroute.errors import HTTPError
from edgeroute.http.request import Request
from edgeroute.http.response import Response
from edgeroute.output import FunctionItem, MiddlewareItem, OutputMap, OverrideItem, StaticItem
from edgeroute.routing.table import RouteTable
from edgeroute.server.handler import EdgeRouter


def _router(routes, items, files=None, config=None, client=None) -> EdgeRouter:
    return EdgeRouter(
        RouteTable.from_routes(routes),
        OutputMap(items),
        MemoryAssets(files or {}),
        config,
        client=client,
    )


def _get(path: str, **headers: str) -> Request:
    return Request.build(f"https://example.com{path}", headers={k.replace("_", "-"): v for k, v in headers.items()})


class TestStatic:
    async def test_rewrite_serves_asset(self) -> None:
        router = _router(
            [{"src": "/old", "dest": "/new"}],
            {"/new": StaticItem()},
            {"/new.html": "new page"},
        )
        response = await router.handle(_get("/old"))
        assert response.status == 200
        assert response.text == "new page"
        assert response.get_header("content-type") == "text/html"

    async def test_missing_item_is_404(self) -> None:
        router = _router([], {"/": StaticItem()}, {"/index.html": "home"})
        response = await router.handle(_get("/nope"))
        assert response.status == 404

    async def test_override_item_headers(self) -> None:
        router = _router(
            [],
            {"/about-us": OverrideItem(path="/about.html", headers={"x-robots-tag": "noindex"})},
            {"/about.html": "about"},
        )
        response = await router.handle(_get("/about-us"))
        assert response.status == 200
        assert response.text == "about"
        assert response.get_header("x-robots-tag") == "noindex"

    async def test_trailing_slash_retry(self) -> None:
        router = _router([], {"/about": StaticItem()}, {"/about.html": "about"})
        response = await router.handle(_get("/about/"))
        assert response.status == 200
        assert response.text == "about"

    async def test_trailing_slash_retry_disabled(self) -> None:
        config = RouterConfig(rewrite_trailing_slash_retry=False)
        router = _router([], {"/about": StaticItem()}, {"/about.html": "about"}, config)
        response = await router.handle(_get("/about/"))
        assert response.status == 404


class TestConditions:
    ROUTES = [
        {"src": "/dash", "has": [{"type": "cookie", "key": "session"}], "dest": "/app"},
        {"src": "/dash", "dest": "/login"},
    ]
    ITEMS = {"/app": StaticItem(), "/login": StaticItem()}
    FILES = {"/app.html": "app", "/login.html": "login"}

    async def test_condition_met(self) -> None:
        router = _router(self.ROUTES, self.ITEMS, self.FILES)
        response = await router.handle(_get("/dash", cookie="session=abc"))
        assert response.text == "app"

    async def test_fallback_route(self) -> None:
        router = _router(self.ROUTES, self.ITEMS, self.FILES)
        response = await router.handle(_get("/dash"))
        assert response.text == "login"


class TestRedirects:
    async def test_redirect_with_capture(self) -> None:
        router = _router([{"src": "^/go/(?<id>[^/]+)$", "headers": {"location": "/dest?id=$id"}}], {})
        response = await router.handle(_get("/go/42"))
        assert response.status == 307
        assert response.get_header("location") == "/dest?id=42"
        assert response.body_bytes == b""

    async def test_route_redirect_appends_search_params(self) -> None:
        router = _router([{"src": "/old", "headers": {"location": "/new"}, "status": 301}], {})
        response = await router.handle(_get("/old?x=1"))
        assert response.status == 301
        assert response.get_header("location") == "/new?x=1"

    async def test_existing_query_joined_with_ampersand(self) -> None:
        router = _router([{"src": "/old", "headers": {"location": "/new?a=b"}}], {})
        response = await router.handle(_get("/old?x=1"))
        assert response.get_header("location") == "/new?a=b&x=1"

    async def test_external_destination(self) -> None:
        router = _router([{"src": "/ext", "dest": "https://other.example/x"}], {})
        response = await router.handle(_get("/ext"))
        assert response.status == 307
        assert response.get_header("location") == "https://other.example/x"

    async def test_locale_cookie_beats_header(self) -> None:
        routes = [
            {
                "src": "/",
                "locale": {"redirect": {"en": "/", "fr": "/fr", "de": "/de"}, "cookie": "NEXT_LOCALE"},
                "continue": True,
            }
        ]
        router = _router(routes, {"/": StaticItem(), "/fr": StaticItem(), "/de": StaticItem()})
        response = await router.handle(_get("/", cookie="NEXT_LOCALE=fr", accept_language="de"))
        assert response.status == 307
        assert response.get_header("location") == "/fr"


class TestHeaderPrecedence:
    @staticmethod
    def _function(request: Request) -> Response:
        return Response("ok").with_header("cache-control", "from-function")

    async def test_important_beats_function_headers(self) -> None:
        routes = [
            {"src": "/.*", "headers": {"cache-control": "important"}, "important": True, "continue": True},
            {"src": "/.*", "headers": {"cache-control": "normal", "x-later": "1"}, "continue": True},
            {"src": "/.*", "headers": {"x-later": "2"}, "continue": True},
        ]
        router = _router(routes, {"/p": FunctionItem(self._function)})
        response = await router.handle(_get("/p"))
        assert response.get_header("cache-control") == "important"
        assert response.get_header("x-later") == "2"

    async def test_function_headers_beat_route_headers(self) -> None:
        routes = [{"src": "/.*", "headers": {"cache-control": "normal"}, "continue": True}]
        router = _router(routes, {"/p": FunctionItem(self._function)})
        response = await router.handle(_get("/p"))
        assert response.get_header("cache-control") == "from-function"

    async def test_set_cookie_accumulates(self) -> None:
        routes = [
            {"src": "/.*", "headers": {"set-cookie": "a=1"}, "continue": True},
            {"src": "/.*", "headers": {"set-cookie": "b=2"}, "continue": True},
        ]
        router = _router(routes, {"/p": StaticItem()}, {"/p.html": "p"})
        response = await router.handle(_get("/p"))
        assert response.get_header_list("set-cookie") == ["a=1", "b=2"]


class TestMiddleware:
    ROUTES = [{"src": "/.*", "middlewarePath": "/_middleware", "continue": True}]

    async def test_override_request_headers(self) -> None:
        def middleware(request: Request) -> Response:
            return Response().with_headers(
                {
                    "x-middleware-override-headers": "x-custom",
                    "x-middleware-request-x-custom": "replaced",
                    "x-middleware-next": "1",
                }
            )

        def api(request: Request) -> Response:
            return Response(request.headers.get("x-custom") or "")

        router = _router(
            self.ROUTES,
            {"/_middleware": MiddlewareItem(middleware), "/api": FunctionItem(api)},
        )
        response = await router.handle(_get("/api", x_custom="original"))
        assert response.status == 200
        assert response.text == "replaced"
        assert not [name for name, _ in response.headers if name.startswith("x-middleware-")]

    async def test_async_middleware_rewrite(self) -> None:
        async def middleware(request: Request) -> Response:
            return Response().with_header("x-middleware-rewrite", "/internal?y=2")

        def internal(request: Request) -> Response:
            return Response(f"{request.query.get('x')}-{request.query.get('y')}")

        router = _router(
            self.ROUTES,
            {"/_middleware": MiddlewareItem(middleware), "/internal": FunctionItem(internal)},
        )
        response = await router.handle(_get("/p?x=1"))
        assert response.status == 200
        assert response.text == "1-2"

    async def test_middleware_redirect_keeps_location(self) -> None:
        def middleware(request: Request) -> Response:
            return Response(status=307).with_header("location", "/login")

        router = _router(self.ROUTES, {"/_middleware": MiddlewareItem(middleware), "/p": StaticItem()})
        response = await router.handle(_get("/p?x=1"))
        assert response.status == 307
        assert response.get_header("location") == "/login"

    async def test_middleware_body(self) -> None:
        def middleware(request: Request) -> Response:
            return Response("from middleware", status=202)

        router = _router(self.ROUTES, {"/_middleware": MiddlewareItem(middleware), "/p": StaticItem()})
        response = await router.handle(_get("/p"))
        assert response.status == 202
        assert response.text == "from middleware"

    async def test_middleware_forbidden(self) -> None:
        def middleware(request: Request) -> Response:
            return Response("Forbidden here", status=403)

        router = _router(self.ROUTES, {"/_middleware": MiddlewareItem(middleware), "/p": StaticItem()})
        response = await router.handle(_get("/p"))
        assert response.status == 403
        assert response.text == "Forbidden here"

    async def test_middleware_runs_once_per_phase(self) -> None:
        calls: list[str] = []

        def middleware(request: Request) -> Response:
            calls.append(request.path)
            return Response().with_header("x-middleware-next", "1")

        routes = [*self.ROUTES, {"src": "/.*", "middlewarePath": "/_middleware", "continue": True}]
        router = _router(routes, {"/_middleware": MiddlewareItem(middleware), "/p": StaticItem()}, {"/p.html": "p"})
        response = await router.handle(_get("/p"))
        assert response.text == "p"
        assert calls == ["/p"]

    async def test_shared_middleware_keeps_its_headers(self) -> None:
        def middleware(request: Request) -> Response:
            return (
                Response()
                .with_header("x-middleware-next", "1")
                .with_header("x-from-mw", "yes")
                .with_header("set-cookie", "seen=1")
            )

        routes = [
            {
                "src": "^\\/api(?:\\/((?:[^\\/#\\?]+?)(?:\\/(?:[^\\/#\\?]+?))*))?[\\/#\\?]?$",
                "middlewarePath": "middleware",
                "continue": True,
                "override": True,
            },
            {
                "src": (
                    "^(?:\\/(_next\\/data\\/[^/]{1,}))?"
                    "\\/api(?:\\/((?:[^\\/#\\?]+?)(?:\\/(?:[^\\/#\\?]+?))*))?(.json)?[\\/#\\?]?$"
                ),
                "middlewarePath": "middleware",
                "continue": True,
                "override": True,
            },
        ]
        router = _router(
            routes,
            {"/middleware": MiddlewareItem(middleware), "/api/hello": FunctionItem(lambda request: Response("api"))},
        )
        response = await router.handle(_get("/api/hello"))
        assert response.status == 200
        assert response.text == "api"
        assert response.get_header("x-from-mw") == "yes"
        assert response.get_header_list("set-cookie") == ["seen=1"]


class TestErrorPages:
    async def test_custom_404_page(self) -> None:
        routes = [{"handle": "error"}, {"src": "/.*", "status": 404, "dest": "/404"}]
        router = _router(routes, {"/404": StaticItem()}, {"/404.html": "custom not found"})
        response = await router.handle(_get("/missing"))
        assert response.status == 404
        assert response.text == "custom not found"

    async def test_middleware_exception_renders_500_page(self, caplog) -> None:
        def middleware(request: Request) -> Response:
            raise RuntimeError("boom")

        routes = [
            {"src": "/.*", "middlewarePath": "/_middleware", "continue": True},
            {"handle": "error"},
            {"src": "/.*", "status": 500, "dest": "/500"},
        ]
        router = _router(
            routes,
            {"/_middleware": MiddlewareItem(middleware), "/p": StaticItem(), "/500": StaticItem()},
            {"/p.html": "p", "/500.html": "server error"},
        )
        with caplog.at_level(logging.ERROR):
            response = await router.handle(_get("/p"))
        assert response.status == 500
        assert response.text == "server error"
        assert "boom" in caplog.text

    async def test_routing_loop_is_500(self) -> None:
        routes = [
            {"src": "/a", "dest": "/b", "check": True},
            {"src": "/b", "dest": "/a", "check": True},
        ]
        router = _router(routes, {})
        response = await router.handle(_get("/a"))
        assert response.status == 500


class TestFunctions:
    async def test_function_exception_is_500(self) -> None:
        def boom(request: Request) -> Response:
            raise ValueError("nope")

        router = _router([], {"/api": FunctionItem(boom)})
        response = await router.handle(_get("/api"))
        assert response.status == 500

    async def test_http_error_maps_to_status(self) -> None:
        def teapot(request: Request) -> Response:
            raise HTTPError(status=418, detail="teapot")

        router = _router([], {"/api": FunctionItem(teapot)})
        response = await router.handle(_get("/api"))
        assert response.status == 418
        assert response.text == "teapot"

    async def test_function_sees_routed_search_params(self) -> None:
        def post(request: Request) -> Response:
            return Response(request.query.get("slug") or "")

        router = _router([{"src": "/post/(?<slug>[^/]+)", "dest": "/post?slug=$slug"}], {"/post": FunctionItem(post)})
        response = await router.handle(_get("/post/hello"))
        assert response.text == "hello"

    async def test_non_response_return_is_500(self) -> None:
        router = _router([], {"/api": FunctionItem(lambda request: "plain string")})
        response = await router.handle(_get("/api"))
        assert response.status == 500


class TestProxy:
    CONFIG = RouterConfig(proxy_external_rewrites=True)
    ROUTES = [{"src": "/ext", "dest": "https://other.example/x"}]

    async def test_fetches_upstream(self) -> None:
        seen: list[httpx.Request] = []

        def upstream(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, text="proxied", headers={"x-upstream": "1"})

        client = httpx.AsyncClient(transport=httpx.MockTransport(upstream))
        router = _router(self.ROUTES, {}, config=self.CONFIG, client=client)
        response = await router.handle(_get("/ext?q=1", x_forwarded="yes"))
        await client.aclose()

        assert response.status == 200
        assert response.text == "proxied"
        assert response.get_header("x-upstream") == "1"
        assert str(seen[0].url) == "https://other.example/x?q=1"
        assert seen[0].headers["x-forwarded"] == "yes"

    async def test_upstream_failure_is_502(self) -> None:
        def upstream(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused")

        client = httpx.AsyncClient(transport=httpx.MockTransport(upstream))
        router = _router(self.ROUTES, {}, config=self.CONFIG, client=client)
        response = await router.handle(_get("/ext"))
        await client.aclose()
        assert response.status == 502

    async def test_supplied_client_not_closed(self) -> None:
        client = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(204)))
        router = _router(self.ROUTES, {}, config=self.CONFIG, client=client)
        await router.aclose()
        assert not client.is_closed
        await client.aclose()


class TestBuildOutput:
    async def test_from_build_output(self, tmp_path) -> None:
        (tmp_path / "config.json").write_text(
            json.dumps({"version": 3, "routes": [{"src": "/home", "dest": "/"}]}),
        )
        (tmp_path / "output.json").write_text(json.dumps({"/": {"type": "static"}}))
        (tmp_path / "static").mkdir()
        (tmp_path / "static" / "index.html").write_text("home")

        router = EdgeRouter.from_build_output(tmp_path)
        response = await router.handle(_get("/home"))
        assert response.status == 200
        assert response.text == "home"
        assert response.get_header("content-type") == "text/html"

    def test_missing_config(self, tmp_path) -> None:
        from edgeroute.errors import ConfigurationError

        with pytest.raises(ConfigurationError):
            EdgeRouter.from_build_output(tmp_path)
