"""URL helpers shared by the matcher and the request handler."""

import re
from urllib.parse import urljoin, urlsplit, urlunsplit

_ABSOLUTE_URL = re.compile(r"^https?://", re.IGNORECASE)


def is_url(value: str) -> bool:
    """Whether *value* is an absolute ``http(s)`` URL."""
    return bool(_ABSOLUTE_URL.match(value))


def resolve_url(target: str, base: str) -> str:
    """Resolve *target* relative to *base*, like a browser would."""
    return urljoin(base, target)


def url_path(url: str) -> str:
    """The path component of *url*, ``/`` when empty."""
    return urlsplit(url).path or "/"


def url_query(url: str) -> str:
    return urlsplit(url).query


def url_hostname(url: str) -> str:
    return urlsplit(url).hostname or ""


def with_query(url: str, query: str) -> str:
    """Replace the query component of *url*."""
    parts = urlsplit(url)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, query, parts.fragment))


def with_path(url: str, path: str) -> str:
    """Replace the path component of *url*."""
    parts = urlsplit(url)
    return urlunsplit((parts.scheme, parts.netloc, path, parts.query, parts.fragment))
