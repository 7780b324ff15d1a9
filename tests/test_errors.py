"""Tests for edgeroute.errors: exception hierarchy and error messages."""

import pytest

from edgeroute.errors import (
    ConfigurationError,
    EdgeRouteError,
    HTTPError,
    InvalidPatternError,
)
from edgeroute.routing.table import RouteTable


class TestHierarchy:
    def test_http_error_is_edgeroute_error(self) -> None:
        assert issubclass(HTTPError, EdgeRouteError)

    def test_configuration_error_is_edgeroute_error(self) -> None:
        assert issubclass(ConfigurationError, EdgeRouteError)

    def test_invalid_pattern_is_configuration_error(self) -> None:
        assert issubclass(InvalidPatternError, ConfigurationError)


class TestHTTPError:
    def test_status_and_detail(self) -> None:
        err = HTTPError(status=400, detail="Bad request body")
        assert err.status == 400
        assert err.detail == "Bad request body"

    def test_str_with_detail(self) -> None:
        err = HTTPError(status=400, detail="Bad request body")
        assert str(err) == "400: Bad request body"

    def test_str_without_detail(self) -> None:
        err = HTTPError(status=500)
        assert str(err) == "500"

    def test_frozen(self) -> None:
        err = HTTPError(status=400)
        with pytest.raises(AttributeError):
            err.status = 500  # type: ignore[misc]

    def test_default_empty_headers(self) -> None:
        err = HTTPError(status=400)
        assert err.headers == ()


class TestInvalidPattern:
    def test_carries_pattern_and_reason(self) -> None:
        with pytest.raises(InvalidPatternError) as exc_info:
            RouteTable.from_routes([{"src": "/(unclosed"}])
        assert exc_info.value.pattern == "^/(unclosed$"
        assert "Invalid route pattern" in str(exc_info.value)
        assert exc_info.value.reason
