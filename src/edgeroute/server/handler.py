"""Request handler: routes a request and produces the final response.

``EdgeRouter.handle`` is the single runtime entry point. It runs the
phase state machine (once from ``none``, once more from ``error`` when
routing failed) and turns the terminal ``MatchedSet`` into a response:
a redirect, a literal body, an outbound fetch, or the output item the
path resolved to.
"""

import logging
from pathlib import Path

import httpx

from edgeroute.assets import AssetFetcher, DirectoryAssets, create_route_request
from edgeroute.config import RouterConfig
from edgeroute.errors import HTTPError
from edgeroute.http.headers import MutableHeaders, apply_headers
from edgeroute.http.query import SearchParams, apply_search_params
from edgeroute.http.request import Request
from edgeroute.http.response import Response
from edgeroute.http.urls import is_url, url_query, with_query
from edgeroute.output import FunctionItem, MiddlewareItem, OutputMap, OverrideItem, StaticItem, call_entrypoint
from edgeroute.routing.matcher import MatchedSet, RoutesMatcher, is_redirect_status
from edgeroute.routing.route import Phase
from edgeroute.routing.table import RouteTable, load_config

logger = logging.getLogger("edgeroute.server")

# Not forwarded in either direction of an outbound fetch
_HOP_BY_HOP = frozenset(
    {
        "connection",
        "content-encoding",
        "content-length",
        "host",
        "keep-alive",
        "transfer-encoding",
        "upgrade",
    }
)


class EdgeRouter:
    """Routes requests against a built route table and output map.

    The table and output map are read-only and shared by every request;
    all per-request state lives in a fresh ``RoutesMatcher``.

    Usage::

        router = EdgeRouter(load_config("config.json"), output, assets)
        response = await router.handle(Request.build("https://example.com/"))
    """

    __slots__ = ("_client", "_owns_client", "assets", "config", "output", "table")

    def __init__(
        self,
        table: RouteTable,
        output: OutputMap,
        assets: AssetFetcher,
        config: RouterConfig | None = None,
        *,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.table = table
        self.output = output
        self.assets = assets
        self.config = config or RouterConfig()
        self._client = client
        self._owns_client = client is None

    @classmethod
    def from_build_output(
        cls,
        directory: str | Path,
        config: RouterConfig | None = None,
        *,
        manifest: str = "output.json",
    ) -> "EdgeRouter":
        """Load ``config.json``, the output manifest, and ``static/`` from *directory*."""
        root = Path(directory)
        return cls(
            load_config(root / "config.json"),
            OutputMap.load(root / manifest),
            DirectoryAssets(root / "static"),
            config,
        )

    # -- Entry point --

    async def handle(self, request: Request) -> Response:
        """Route *request* and build its response.

        Failures inside functions, middleware, or asset fetches become
        error responses; they are never raised to the caller.
        """
        matcher = await self.find_match(request)
        return await self.generate_response(matcher.request, matcher.match)

    async def find_match(self, request: Request) -> RoutesMatcher:
        """Run the matcher from ``none``, then from ``error`` if that failed."""
        matcher = RoutesMatcher(self.table, self.output, request, self.config)
        result = await matcher.run(Phase.NONE)
        if result == "error" or (matcher.match.status is not None and matcher.match.status >= 400):
            logger.debug("Routing %s ended with %s; running error phase", request.path, matcher.match.status)
            await matcher.run(Phase.ERROR)
        return matcher

    # -- Response generation --

    async def generate_response(self, request: Request, match: MatchedSet) -> Response:
        headers = match.headers
        location = match.location
        if location is not None:
            if location != match.middleware_location and len(match.search_params):
                separator = "&" if "?" in location else "?"
                headers.set("location", f"{location}{separator}{match.search_params}")
            status = match.status if is_redirect_status(match.status) else self.config.redirect_status
            return Response(body=b"", status=status).with_header_set(headers)

        if match.body is not None:
            response = Response(body=match.body, status=match.status or 200)
        elif is_url(match.path):
            response = await self.fetch_external(request, match)
        else:
            response = await self.serve_item(request, match)

        apply_headers(headers, response.headers)
        apply_headers(headers, match.important_headers)
        return Response(body=response.body, status=match.status or response.status).with_header_set(headers)

    async def serve_item(self, request: Request, match: MatchedSet) -> Response:
        """Serve the output item *match.path* resolved to."""
        item = self.output.get(match.path)
        routed = request.with_search_params(match.search_params)
        try:
            match item:
                case FunctionItem() | MiddlewareItem():
                    return await call_entrypoint(item, routed)
                case OverrideItem(path=path, headers=override_headers):
                    response = await self.assets.fetch(create_route_request(routed, path or match.path))
                    if not override_headers:
                        return response
                    merged = response.header_set()
                    apply_headers(merged, override_headers)
                    return response.with_header_set(merged)
                case StaticItem():
                    return await self.assets.fetch(create_route_request(routed, match.path))
                case _:
                    return Response(body="Not Found", status=404)
        except HTTPError as exc:
            return Response(body=exc.detail or str(exc.status), status=exc.status, headers=exc.headers)
        except Exception:
            logger.exception("Output item %r failed", match.path)
            return Response(body="Internal Server Error", status=500)

    async def fetch_external(self, request: Request, match: MatchedSet) -> Response:
        """Fetch an absolute-URL path, forwarding the original request."""
        params = SearchParams.parse(url_query(match.path))
        apply_search_params(params, match.search_params)
        url = with_query(match.path, str(params))
        forwarded = [(k, v) for k, v in request.headers.items_list() if k not in _HOP_BY_HOP]
        try:
            upstream = await self.client.request(
                request.method,
                url,
                headers=forwarded,
                content=request.body or None,
            )
        except httpx.HTTPError:
            logger.exception("Outbound fetch to %s failed", url)
            return Response(body="Bad Gateway", status=502)

        response_headers = MutableHeaders(
            (k, v) for k, v in upstream.headers.multi_items() if k.lower() not in _HOP_BY_HOP
        )
        return Response(body=upstream.content, status=upstream.status_code).with_header_set(response_headers)

    # -- Outbound client --

    @property
    def client(self) -> httpx.AsyncClient:
        """The ``httpx`` client used for outbound fetches, created on first use."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.config.fetch_timeout, follow_redirects=False)
        return self._client

    async def aclose(self) -> None:
        """Close the outbound client if this router created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
