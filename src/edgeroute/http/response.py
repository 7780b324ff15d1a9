"""HTTP response with chainable .with_*() transformation API.

Each transformation returns a new Response. Immutable by convention,
built incrementally by design.
"""

from collections.abc import Mapping
from dataclasses import dataclass, replace

from edgeroute.http.headers import MutableHeaders

REDIRECT_STATUSES = frozenset({301, 302, 303, 307, 308})


@dataclass(frozen=True, slots=True)
class Response:
    """An HTTP response built through immutable transformations.

    Construct with a body, then chain ``.with_*()`` calls to set
    status and headers. Each call returns a new ``Response``.
    Header names are compared case-insensitively.
    """

    body: str | bytes = b""
    status: int = 200
    headers: tuple[tuple[str, str], ...] = ()

    # -- Chainable transformations --

    def with_status(self, status: int) -> "Response":
        """Return a new Response with a different status code."""
        return replace(self, status=status)

    def with_header(self, name: str, value: str) -> "Response":
        """Return a new Response with an additional header."""
        return replace(self, headers=(*self.headers, (name, value)))

    def with_headers(self, headers: Mapping[str, str]) -> "Response":
        """Return a new Response with additional headers."""
        new = tuple(headers.items())
        return replace(self, headers=(*self.headers, *new))

    def with_header_set(self, headers: MutableHeaders) -> "Response":
        """Return a new Response whose headers are exactly *headers*."""
        return replace(self, headers=tuple(headers.items()))

    def with_body(self, body: str | bytes) -> "Response":
        return replace(self, body=body)

    # -- Header access --

    def get_header(self, name: str, default: str | None = None) -> str | None:
        """Return all values of *name* joined with ``", "``, or *default*."""
        values = self.get_header_list(name)
        if not values:
            return default
        return ", ".join(values)

    def get_header_list(self, name: str) -> list[str]:
        name_lower = name.lower()
        return [value for key, value in self.headers if key.lower() == name_lower]

    def header_set(self) -> MutableHeaders:
        """A mutable copy of this response's headers."""
        return MutableHeaders(self.headers)

    # -- Body helpers --

    @property
    def body_bytes(self) -> bytes:
        """Body as bytes."""
        if isinstance(self.body, str):
            return self.body.encode("utf-8")
        return self.body

    @property
    def text(self) -> str:
        """Body as string."""
        if isinstance(self.body, bytes):
            return self.body.decode("utf-8")
        return self.body

    @property
    def is_redirect(self) -> bool:
        return self.status in REDIRECT_STATUSES and self.get_header("location") is not None
