"""Cookie header parsing, used by Request."""

from urllib.parse import unquote


def parse_cookies(header: str) -> dict[str, str]:
    """Parse a ``Cookie`` header value into a name-value dict.

    Values are percent-decoded. Returns an empty dict for empty or
    missing headers.
    """
    if not header:
        return {}
    cookies: dict[str, str] = {}
    for pair in header.split(";"):
        pair = pair.strip()
        if "=" in pair:
            key, _, value = pair.partition("=")
            cookies[key.strip()] = unquote(value.strip())
    return cookies
