"""Immutable HTTP request.

Frozen metadata with the body already read. Routing never mutates a
request in place: middleware that overrides request headers produces a
new Request through ``with_headers``.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from typing import Any
from urllib.parse import urlsplit

from edgeroute.http.cookies import parse_cookies
from edgeroute.http.headers import Headers, MutableHeaders
from edgeroute.http.query import QueryParams, SearchParams, apply_search_params
from edgeroute.http.urls import url_hostname, url_path, url_query, with_path, with_query


@dataclass(frozen=True, slots=True)
class Request:
    """An immutable HTTP request.

    Cookies are parsed once at creation time and stored as a frozen
    field; ``with_headers`` re-parses them.
    """

    method: str
    url: str
    headers: Headers
    body: bytes = b""
    cookies: Mapping[str, str] = field(default_factory=dict)

    # -- Factories --

    @classmethod
    def build(
        cls,
        url: str,
        *,
        method: str = "GET",
        headers: Mapping[str, str] | Iterable[tuple[str, str]] = (),
        body: bytes = b"",
    ) -> "Request":
        """Create a Request from a full URL and plain header pairs."""
        parsed = Headers.from_items(headers)
        return cls(
            method=method.upper(),
            url=url,
            headers=parsed,
            body=body,
            cookies=parse_cookies(parsed.get("cookie", "") or ""),
        )

    @classmethod
    def from_asgi(cls, scope: Mapping[str, Any], body: bytes = b"") -> "Request":
        """Create a Request from an ASGI HTTP scope and its full body."""
        headers = Headers(tuple((bytes(name), bytes(value)) for name, value in scope.get("headers", ())))
        scheme = scope.get("scheme", "http")
        host = headers.get("host")
        if host is None:
            server = scope.get("server")
            host = f"{server[0]}:{server[1]}" if server else "localhost"
        path = scope.get("raw_path", b"").decode("latin-1") or scope["path"]
        url = f"{scheme}://{host}{path}"
        query = scope.get("query_string", b"")
        if query:
            url = f"{url}?{query.decode('latin-1')}"
        return cls(
            method=scope["method"],
            url=url,
            headers=headers,
            body=body,
            cookies=parse_cookies(headers.get("cookie", "") or ""),
        )

    # -- Computed properties --

    @property
    def path(self) -> str:
        return url_path(self.url)

    @property
    def query(self) -> QueryParams:
        return QueryParams(url_query(self.url).encode("latin-1"))

    @property
    def search_params(self) -> SearchParams:
        """The query string as a fresh, mutable SearchParams."""
        return SearchParams.parse(url_query(self.url))

    @property
    def hostname(self) -> str:
        return url_hostname(self.url)

    @property
    def origin(self) -> str:
        parts = urlsplit(self.url)
        return f"{parts.scheme}://{parts.netloc}"

    # -- Transformations --

    def with_url(self, url: str) -> "Request":
        """Return a new Request for a different URL."""
        return replace(self, url=url)

    def with_path(self, path: str) -> "Request":
        """Return a new Request with the path replaced, query kept."""
        return replace(self, url=with_path(self.url, path))

    def with_search_params(self, params: SearchParams) -> "Request":
        """Return a new Request with *params* merged into its query string."""
        merged = self.search_params
        apply_search_params(merged, params)
        return replace(self, url=with_query(self.url, str(merged)))

    def with_headers(self, headers: Headers | MutableHeaders) -> "Request":
        """Return a new Request with its headers replaced (cookies re-parsed)."""
        if isinstance(headers, MutableHeaders):
            headers = Headers.from_items(headers.items())
        return replace(
            self,
            headers=headers,
            cookies=parse_cookies(headers.get("cookie", "") or ""),
        )
