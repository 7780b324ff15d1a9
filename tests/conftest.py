"""Shared fixtures for edgeroute tests."""

from collections.abc import Callable, Iterable, Mapping

import pytest

from edgeroute.http.request import Request


@pytest.fixture
def make_request() -> Callable[..., Request]:
    """Build a Request for a path on ``https://example.com``."""

    def _make(
        path: str = "/",
        *,
        method: str = "GET",
        headers: Mapping[str, str] | Iterable[tuple[str, str]] = (),
        host: str = "example.com",
        body: bytes = b"",
    ) -> Request:
        return Request.build(f"https://{host}{path}", method=method, headers=headers, body=body)

    return _make
