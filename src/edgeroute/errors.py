"""edgeroute exception hierarchy.

Shared across the route table, matcher, and request handler so every
module raises and catches the same types.
"""

from dataclasses import dataclass


class EdgeRouteError(Exception):
    """Base for all edgeroute-specific errors."""


class ConfigurationError(EdgeRouteError):
    """Raised when the route table or output manifest is invalid.

    Always raised while building the routing structures, never while
    serving a request.
    """


class InvalidPatternError(ConfigurationError):
    """A route source or condition value is not a valid pattern."""

    def __init__(self, pattern: str, reason: str) -> None:
        self.pattern = pattern
        self.reason = reason
        super().__init__(f"Invalid route pattern {pattern!r}: {reason}")


@dataclass(frozen=True, slots=True)
class HTTPError(EdgeRouteError):
    """An error that maps directly to an HTTP status code.

    Output functions and asset fetchers may raise it. The request
    handler catches it and turns it into a plain response.
    """

    status: int
    detail: str = ""
    headers: tuple[tuple[str, str], ...] = ()

    def __str__(self) -> str:
        if self.detail:
            return f"{self.status}: {self.detail}"
        return str(self.status)
