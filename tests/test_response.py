"""Tests for edgeroute.http.response: chainable .with_*() API."""

from edgeroute.http.headers import MutableHeaders
from edgeroute.http.response import Response


class TestResponse:
    def test_defaults(self) -> None:
        response = Response()
        assert response.status == 200
        assert response.body_bytes == b""
        assert response.headers == ()

    def test_with_status_returns_new(self) -> None:
        original = Response("ok")
        changed = original.with_status(201)
        assert changed.status == 201
        assert original.status == 200

    def test_with_header_chain(self) -> None:
        response = Response("ok").with_header("X-A", "1").with_headers({"X-B": "2"})
        assert response.headers == (("X-A", "1"), ("X-B", "2"))

    def test_get_header_case_insensitive(self) -> None:
        response = Response().with_header("Set-Cookie", "a=1").with_header("set-cookie", "b=2")
        assert response.get_header_list("SET-COOKIE") == ["a=1", "b=2"]
        assert response.get_header("set-cookie") == "a=1, b=2"
        assert response.get_header("x-missing") is None

    def test_header_set_round_trip(self) -> None:
        response = Response().with_header("X-A", "1")
        headers = response.header_set()
        headers.set("x-b", "2")
        replaced = response.with_header_set(headers)
        assert replaced.headers == (("x-a", "1"), ("x-b", "2"))
        assert response.headers == (("X-A", "1"),)

    def test_with_header_set_from_mutable(self) -> None:
        response = Response().with_header_set(MutableHeaders({"Location": "/x"}))
        assert response.headers == (("location", "/x"),)

    def test_text_and_bytes(self) -> None:
        assert Response("héllo").body_bytes == "héllo".encode()
        assert Response(b"abc").text == "abc"

    def test_is_redirect(self) -> None:
        assert Response(status=307).with_header("location", "/x").is_redirect
        assert not Response(status=307).is_redirect
        assert not Response(status=200).with_header("location", "/x").is_redirect
