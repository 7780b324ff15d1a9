"""Middleware invocation during routing.

A middleware's response is not sent to the client directly. Its control
headers steer the in-flight match instead:

- ``x-middleware-override-headers`` lists request headers to replace
  with the paired ``x-middleware-request-<name>`` values.
- ``x-middleware-rewrite`` rewrites the routed path (and query).
- ``x-middleware-next`` lets routing continue.

Anything else (a body, a redirect) is folded into the match state.
"""

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from edgeroute.http.headers import MutableHeaders, apply_headers
from edgeroute.http.query import SearchParams, apply_search_params
from edgeroute.http.request import Request
from edgeroute.http.response import Response
from edgeroute.http.urls import resolve_url, url_hostname, url_path, url_query
from edgeroute.output import MiddlewareItem, OutputMap, call_entrypoint

if TYPE_CHECKING:
    from edgeroute.routing.matcher import MatchedSet

logger = logging.getLogger("edgeroute.routing")

OVERRIDE_HEADERS = "x-middleware-override-headers"
REQUEST_HEADER_PREFIX = "x-middleware-request-"
REWRITE_HEADER = "x-middleware-rewrite"
NEXT_HEADER = "x-middleware-next"


@dataclass(frozen=True, slots=True)
class MiddlewareResult:
    """Outcome of running a route's middleware.

    ``request`` is the request later routing and functions should see,
    with any overridden headers applied.
    """

    ok: bool
    request: Request


def override_request_headers(request: Request, headers: MutableHeaders) -> Request:
    """Apply ``x-middleware-override-headers`` to *request*.

    Strips the control headers from *headers* in place.
    """
    override = headers.get(OVERRIDE_HEADERS)
    if not override:
        return request

    request_headers = MutableHeaders(request.headers.items_list())
    changed = False
    for key in dict.fromkeys(name.strip().lower() for name in override.split(",")):
        value_key = f"{REQUEST_HEADER_PREFIX}{key}"
        value = headers.get(value_key)
        if request_headers.get(key) != value:
            if value:
                request_headers.set(key, value)
            else:
                request_headers.delete(key)
            changed = True
        headers.delete(value_key)
    headers.delete(OVERRIDE_HEADERS)
    return request.with_headers(request_headers) if changed else request


def process_middleware_response(response: Response, request: Request, match: "MatchedSet") -> Request:
    """Fold a successful middleware *response* into *match*.

    Returns the request with overridden headers applied.
    """
    headers = response.header_set()
    request = override_request_headers(request, headers)

    rewrite = headers.get(REWRITE_HEADER)
    if rewrite:
        new_url = resolve_url(rewrite, request.url)
        external = url_hostname(new_url) != request.hostname
        match.path = new_url if external else url_path(new_url)
        apply_search_params(match.search_params, SearchParams.parse(url_query(new_url)))
        headers.delete(REWRITE_HEADER)

    location = headers.get("location")
    if headers.get(NEXT_HEADER) is not None:
        headers.delete(NEXT_HEADER)
    elif not rewrite and location is None:
        if response.body_bytes:
            match.body = response.body_bytes
            match.status = response.status
    elif location is not None and 300 <= response.status < 400:
        match.status = response.status

    apply_headers(match.headers, headers)
    match.middleware_location = location
    return request


class MiddlewareInvoker:
    """Runs middleware referenced by routes, at most once per phase visit."""

    __slots__ = ("_invoked", "_output")

    def __init__(self, output: OutputMap) -> None:
        self._output = output
        self._invoked: set[str] = set()

    def reset(self) -> None:
        """Forget which middleware ran; called on every phase entry."""
        self._invoked.clear()

    def has_run(self, path: str) -> bool:
        return path in self._invoked

    async def run(self, path: str | None, request: Request, match: "MatchedSet") -> MiddlewareResult:
        if not path or path in self._invoked:
            return MiddlewareResult(ok=True, request=request)

        item = self._output.get(path)
        if not isinstance(item, MiddlewareItem):
            logger.error("Middleware %r is not in the output map", path)
            match.status = 500
            return MiddlewareResult(ok=False, request=request)

        self._invoked.add(path)
        try:
            response = await call_entrypoint(item, request.with_search_params(match.search_params))
        except Exception:
            logger.exception("Middleware %r failed", path)
            match.status = 500
            return MiddlewareResult(ok=False, request=request)

        if response.status >= 400:
            logger.debug("Middleware %r answered %d", path, response.status)
            match.status = response.status
            if response.status < 500 and response.body_bytes:
                match.body = response.body_bytes
            return MiddlewareResult(ok=False, request=request)

        return MiddlewareResult(ok=True, request=process_middleware_response(response, request, match))
