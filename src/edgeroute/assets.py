"""Static asset fetchers.

The router hands static and override items to an ``AssetFetcher``: any
object with an async ``fetch(request)`` returning a ``Response``. Two
implementations are provided, one backed by an in-memory mapping (for
tests and embedded deployments) and one backed by a directory on disk.
"""

import mimetypes
import re
from collections.abc import Mapping
from pathlib import Path
from typing import Protocol

from edgeroute.http.query import apply_search_params
from edgeroute.http.request import Request
from edgeroute.http.response import Response
from edgeroute.http.urls import resolve_url, url_path, with_path, with_query

_INDEX_HTML = re.compile(r"^/index\.html$")
_HTML_SUFFIX = re.compile(r"\.html$")


class AssetFetcher(Protocol):
    """Serves static asset bytes for a request."""

    async def fetch(self, request: Request) -> Response: ...


def create_route_request(request: Request, path: str) -> Request:
    """Re-target *request* at *path* for asset matching.

    The request's own query parameters are merged into the new URL and
    the path loses ``/index.html`` and ``.html`` so it matches the way
    assets are addressed.
    """
    new_url = resolve_url(path, request.url)
    params = request.with_url(new_url).search_params
    apply_search_params(params, request.search_params)
    new_path = _HTML_SUFFIX.sub("", _INDEX_HTML.sub("/", url_path(new_url)))
    return request.with_url(with_query(with_path(new_url, new_path), str(params)))


def _candidates(path: str) -> list[str]:
    """Asset keys to try for *path*, most specific first."""
    if path.endswith("/"):
        return [path + "index.html", path]
    return [path, path + ".html", path + "/index.html"]


def _content_type(path: str) -> str:
    content_type, _ = mimetypes.guess_type(path)
    return content_type or "application/octet-stream"


class MemoryAssets:
    """Asset fetcher over an in-memory ``path -> bytes`` mapping.

    Usage::

        assets = MemoryAssets({"/index.html": b"<h1>home</h1>"})
    """

    __slots__ = ("_files",)

    def __init__(self, files: Mapping[str, str | bytes]) -> None:
        self._files = {
            path: body.encode("utf-8") if isinstance(body, str) else body
            for path, body in files.items()
        }

    async def fetch(self, request: Request) -> Response:
        for candidate in _candidates(request.path):
            body = self._files.get(candidate)
            if body is not None:
                return Response(body=body).with_header("content-type", _content_type(candidate))
        return Response(body="Not Found", status=404)


class DirectoryAssets:
    """Asset fetcher serving files from a directory.

    Security: resolves symlinks and verifies the final path is within
    the configured directory to prevent path traversal.
    """

    __slots__ = ("_cache_control", "_directory")

    def __init__(self, directory: str | Path, *, cache_control: str = "public, max-age=0, must-revalidate") -> None:
        self._directory = Path(directory).resolve()
        self._cache_control = cache_control

    async def fetch(self, request: Request) -> Response:
        for candidate in _candidates(request.path):
            relative = candidate.lstrip("/")
            file_path = (self._directory / relative).resolve()
            if not file_path.is_relative_to(self._directory):
                return Response(body="Forbidden", status=403)
            if file_path.is_file():
                return self._serve_file(file_path)
        return Response(body="Not Found", status=404)

    def _serve_file(self, file_path: Path) -> Response:
        body = file_path.read_bytes()
        return (
            Response(body=body)
            .with_header("content-type", _content_type(str(file_path)))
            .with_header("content-length", str(len(body)))
            .with_header("cache-control", self._cache_control)
        )
