"""Locale negotiation for i18n routes.

Locale redirects only happen at the root: a route carrying a ``locale``
map redirects to the first configured target among the visitor's
preferred locales (cookie first, then ``Accept-Language``). The set of
known locales also adjusts how ``miss``-phase routes match and lets a
``/<locale>/<path>`` request fall back to ``/<path>``.
"""

import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field

from edgeroute.http.request import Request
from edgeroute.routing.route import Phase, Route

_QUALITY_PREFIX = re.compile(r"q *= *", re.IGNORECASE)

_LOCALE_ROUTE_PREFIX = "^//?(?:"
_LOCALE_ROUTE_SUFFIX = ")/(.*)$"
_LOCALE_ROUTE_LOOSE_SUFFIX = ")(?:/(.*))?$"


def parse_accept_language(header_value: str) -> list[str]:
    """Parse an ``Accept-Language`` value into locales, best first.

    Entries without a quality default to ``1``; an unparsable quality
    also counts as ``1``. Wildcards and empty entries are dropped. The
    sort is stable, so equal qualities keep their header order.
    """
    entries: list[tuple[str, float]] = []
    for part in header_value.split(","):
        lang, _, quality_text = part.partition(";")
        try:
            quality = float(_QUALITY_PREFIX.sub("", quality_text.strip()) or "1")
        except ValueError:
            quality = 1.0
        entries.append((lang.strip(), quality))
    entries.sort(key=lambda entry: entry[1], reverse=True)
    return [locale for locale, _ in entries if locale not in ("*", "")]


@dataclass(slots=True)
class LocaleState:
    """Locales seen while routing one request.

    Seeded with every locale the ``none`` phase declares; redirect maps
    of matched locale routes are merged in as they are encountered.
    """

    locales: set[str] = field(default_factory=set)
    redirects: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_routes(cls, routes: Iterable[Route]) -> "LocaleState":
        state = cls()
        for route in routes:
            if route.locale is not None:
                state.merge(route.locale.redirect)
        return state

    def merge(self, redirects: dict[str, str]) -> None:
        self.redirects.update(redirects)
        self.locales.update(redirects)

    def copy(self) -> "LocaleState":
        return LocaleState(locales=set(self.locales), redirects=dict(self.redirects))

    def strip_prefix(self, path: str, exists: Callable[[str], bool]) -> str:
        """Drop a leading ``/<locale>`` when the remainder exists."""
        for locale in sorted(self.locales):
            found = re.match(rf"^/{re.escape(locale)}(/.*)$", path)
            if found and exists(found.group(1)):
                return found.group(1)
        return path


def _is_locale_route_pattern(src: str, locales: set[str]) -> bool:
    """Whether *src* is ``^//?(?:en|fr)/(.*)$`` over known locales only."""
    if not src.startswith(_LOCALE_ROUTE_PREFIX) or not src.endswith(_LOCALE_ROUTE_SUFFIX):
        return False
    found = src[len(_LOCALE_ROUTE_PREFIX) : -len(_LOCALE_ROUTE_SUFFIX)].split("|")
    return all(locale in locales for locale in found)


def locale_friendly_route(route: Route, phase: Phase, state: LocaleState) -> Route:
    """Adjust a ``miss``-phase route's source for known locales.

    A source naming a bare locale (``/fr`` or ``^/fr$``) becomes an exact
    match, and a ``/<locale>/(.*)`` source is loosened so the bare
    ``/<locale>`` matches too. Other routes are returned unchanged.
    """
    if phase is not Phase.MISS or not state.locales:
        return route
    bare = route.src.removeprefix("^").removesuffix("$").lstrip("/")
    if bare in state.locales:
        src = f"^/{bare}$"
        return route.with_src(src) if src != route.src else route
    if _is_locale_route_pattern(route.src, state.locales):
        loosened = route.src[: -len(_LOCALE_ROUTE_SUFFIX)] + _LOCALE_ROUTE_LOOSE_SUFFIX
        return route.with_src(loosened)
    return route


def resolve_locale_redirect(route: Route, path: str, request: Request, state: LocaleState) -> str | None:
    """Return the locale redirect target for *route*, or ``None``.

    Only root requests are redirected: a literal source (one not starting
    with ``^``) must equal *path*. Cookie locales take precedence over
    ``Accept-Language``. No redirect is issued when *path* already starts
    with the target.
    """
    if route.locale is None or not route.locale.redirect:
        return None
    if not route.src.startswith("^") and route.src != path:
        return None

    redirects = route.locale.redirect
    state.merge(redirects)

    cookie_name = route.locale.cookie
    cookie_value = request.cookies.get(cookie_name, "") if cookie_name else ""
    preferred = [
        *parse_accept_language(cookie_value),
        *parse_accept_language(request.headers.get("accept-language", "") or ""),
    ]
    for locale in preferred:
        target = redirects.get(locale)
        if target:
            return None if path.startswith(target) else target
    return None
