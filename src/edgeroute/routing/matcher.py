"""Phase state machine: matches a request against the route table.

A ``RoutesMatcher`` is created per request. It walks the phases of the
route table, applying each matching route's effects to a ``MatchedSet``
(override, locale redirect, middleware, headers, status, destination)
until a phase decides the match is terminal.

Phases re-enter each other (``check`` routes jump back to ``none`` or
``filesystem``, every phase hands off to its successor). The traversal
keeps an explicit frame stack instead of recursing, and every phase
entry counts against a fixed bound so a cyclic table ends in a 500.
"""

import logging
import re
from dataclasses import dataclass, field

from edgeroute.config import RouterConfig
from edgeroute.http.headers import MutableHeaders, apply_headers
from edgeroute.http.query import SearchParams, apply_search_params
from edgeroute.http.request import Request
from edgeroute.http.urls import is_url, resolve_url, url_path, url_query
from edgeroute.output import OutputMap
from edgeroute.routing.conditions import check_conditions
from edgeroute.routing.locale import locale_friendly_route, resolve_locale_redirect
from edgeroute.routing.middleware import MiddlewareInvoker
from edgeroute.routing.pcre import PatternMatch, apply_pcre_matches, match_pattern
from edgeroute.routing.route import Phase, PhaseStatus, Route, RouteStatus, next_phase
from edgeroute.routing.table import RouteTable

logger = logging.getLogger("edgeroute.routing")

_INDEX_RSC = re.compile(r"/index\.rsc$", re.IGNORECASE)
_ROOT_OR_INDEX = re.compile(r"/(?:index)?$", re.IGNORECASE)
_RSC_SUFFIX = re.compile(r"(?:\.rsc)+$", re.IGNORECASE)


def strip_rsc_suffix(path: str) -> str:
    """Remove the trailing ``.rsc`` suffix (or a run of them) from *path*."""
    return _RSC_SUFFIX.sub("", path)


def is_redirect_status(status: int | None) -> bool:
    return status is not None and 300 <= status < 400


@dataclass(slots=True)
class MatchedSet:
    """Routing state threaded through the phases for one request.

    ``path`` is an output-map key, a filesystem-style path, or an
    absolute URL. ``important_headers`` win over ``headers`` when the
    final response is assembled.
    """

    path: str
    status: int | None = None
    headers: MutableHeaders = field(default_factory=MutableHeaders)
    important_headers: MutableHeaders = field(default_factory=MutableHeaders)
    search_params: SearchParams = field(default_factory=SearchParams)
    body: bytes | None = None
    middleware_location: str | None = None

    @property
    def location(self) -> str | None:
        return self.headers.get("location")


@dataclass(slots=True)
class _Frame:
    """One phase visit on the traversal stack."""

    phase: Phase
    routes: tuple[Route, ...]
    index: int = 0
    should_continue: bool = True


class RoutesMatcher:
    """Matches one request against a route table and output map.

    Usage::

        matcher = RoutesMatcher(table, output, request)
        status = await matcher.run()
        matcher.match.path, matcher.match.status
    """

    __slots__ = (
        "_checks",
        "_middleware",
        "config",
        "locales",
        "match",
        "output",
        "request",
        "table",
        "wildcard",
    )

    def __init__(
        self,
        table: RouteTable,
        output: OutputMap,
        request: Request,
        config: RouterConfig | None = None,
    ) -> None:
        self.table = table
        self.output = output
        self.config = config or RouterConfig()
        self.request = request
        self.match = MatchedSet(path=request.path)
        apply_search_params(self.match.search_params, request.search_params)
        self.locales = table.locale_state()
        self.wildcard = table.wildcard_for(request.hostname)
        self._middleware = MiddlewareInvoker(output)
        self._checks = 0

    # -- Public API --

    async def run(self, phase: Phase = Phase.NONE) -> PhaseStatus:
        """Route from *phase* until a terminal state is reached.

        The loop-guard counter is reset on every call, so a second run
        from ``error`` gets its own budget.
        """
        self._checks = 0
        result = await self._check_phase(phase)
        match = self.match

        if is_url(match.path):
            proxied = self.config.proxy_external_rewrites and not is_redirect_status(match.status)
            if not proxied:
                match.headers.set("location", match.path)

        if match.location is not None and not is_redirect_status(match.status):
            match.status = self.config.redirect_status

        logger.debug("Matched %s -> %s (status=%s, result=%s)", self.request.path, match.path, match.status, result)
        return result

    # -- Phase traversal --

    def _enter(self, stack: list[_Frame], phase: Phase) -> PhaseStatus | None:
        """Push a frame for *phase*, or fail once the loop guard is exceeded."""
        self._checks += 1
        if self._checks > self.config.max_phase_checks:
            logger.error(
                "Routing loop for %s: more than %d phase checks",
                self.request.path,
                self.config.max_phase_checks,
            )
            self.match.status = 500
            return "error"
        logger.debug("Entering phase %s with path %s", phase, self.match.path)
        self._middleware.reset()
        stack.append(_Frame(phase=phase, routes=self.table.routes(phase)))
        return None

    async def _check_phase(self, phase: Phase) -> PhaseStatus:
        stack: list[_Frame] = []
        # Value returned by the frame popped last, delivered to its caller
        result = self._enter(stack, phase)

        while stack:
            frame = stack[-1]
            if result == "error":
                stack.pop()
                continue
            if result == "done":
                # A jump made from this frame's current route finished
                result = None
                frame.should_continue = False
                frame.index = len(frame.routes)

            if frame.index < len(frame.routes):
                route = frame.routes[frame.index]
                frame.index += 1
                outcome = await self._check_route(frame.phase, route)
                if isinstance(outcome, Phase):
                    result = self._enter(stack, outcome)
                elif outcome == "error":
                    stack.pop()
                    result = "error"
                elif outcome == "done":
                    frame.should_continue = False
                    frame.index = len(frame.routes)
                continue

            following = self._finish_phase(frame)
            stack.pop()
            if following == "done":
                result = "done"
            else:
                result = self._enter(stack, following)

        return result or "done"

    def _finish_phase(self, frame: _Frame) -> Phase | PhaseStatus:
        """Decide what follows a phase whose routes have been scanned."""
        phase = frame.phase
        match = self.match
        if phase is Phase.HIT or is_url(match.path) or match.location is not None or match.body is not None:
            return "done"

        if phase is Phase.NONE and self.locales.locales:
            match.path = self.locales.strip_prefix(match.path, self.output.__contains__)

        exists = match.path in self.output
        if (
            not exists
            and phase is Phase.REWRITE
            and self.config.rewrite_trailing_slash_retry
            and len(match.path) > 1
            and match.path.endswith("/")
        ):
            stripped = match.path[:-1]
            if stripped in self.output:
                match.path = stripped
                exists = True

        if phase is Phase.MISS and not exists and (not match.status or match.status < 400):
            match.status = 404

        if exists or phase in (Phase.MISS, Phase.ERROR):
            return Phase.HIT
        if frame.should_continue:
            return next_phase(phase)
        return Phase.MISS

    # -- Single route --

    def _match_route(self, route: Route, phase: Phase) -> tuple[PatternMatch, str | None] | None:
        """Source, method, middleware, condition and required-status checks.

        Returns the source captures and the destination with any
        condition captures applied.
        """
        src_match = match_pattern(route.pattern, self.match.path)
        if src_match is None:
            return None
        if route.methods and self.request.method.upper() not in route.methods:
            return None
        if route.middleware_path and self._middleware.has_run(route.middleware_path):
            # Middleware runs once per phase visit; its route is not applied again
            return None
        conditions = check_conditions(route.has, route.missing, self.request, route.dest)
        if not conditions.valid:
            return None
        if phase is Phase.ERROR and route.status != self.match.status:
            return None
        return src_match, conditions.dest

    async def _check_route(self, phase: Phase, route: Route) -> RouteStatus | Phase:
        """Apply *route* if it matches.

        Returns the route status, or the phase to jump to when a
        ``check`` route needs the rewritten path resolved again.
        """
        route = locale_friendly_route(route, phase, self.locales)
        found = self._match_route(route, phase)
        if found is None:
            return "skip"
        src_match, dest = found
        match = self.match

        if route.override:
            match.status = None
            match.headers = MutableHeaders()
            match.important_headers = MutableHeaders()

        self._apply_locale_redirect(route)

        middleware = await self._middleware.run(route.middleware_path, self.request, match)
        self.request = middleware.request
        if not middleware.ok:
            return "error"

        if route.headers:
            apply_headers(match.headers, route.headers, src_match)
            if route.important:
                apply_headers(match.important_headers, route.headers, src_match)

        if route.status:
            match.status = route.status

        prev_path = self._apply_dest(dest, src_match)

        if route.check and not is_url(match.path):
            if prev_path == match.path:
                # Re-checking an unchanged path would loop
                if phase is not Phase.MISS:
                    return next_phase(phase)
                match.status = 404
            elif phase is Phase.MISS:
                if match.path not in self.output:
                    return Phase.FILESYSTEM
                if match.status == 404:
                    match.status = None
            else:
                return Phase.NONE

        return "next" if route.continues else "done"

    def _apply_locale_redirect(self, route: Route) -> None:
        if route.locale is None or self.match.location is not None:
            return
        target = resolve_locale_redirect(route, self.match.path, self.request, self.locales)
        if target:
            self.match.headers.set("location", target)
            self.match.status = self.config.redirect_status

    def _apply_dest(self, dest: str | None, src_match: PatternMatch) -> str:
        """Rewrite the path to *dest*; returns the path it replaced."""
        match = self.match
        prev_path = match.path
        if not dest:
            return prev_path

        if self.wildcard is not None:
            dest = dest.replace("$wildcard", self.wildcard)
        path = apply_pcre_matches(dest, src_match)

        # A root-only `/index.rsc` rewrite must not capture other pages
        if _INDEX_RSC.search(path) and not _ROOT_OR_INDEX.search(prev_path):
            path = prev_path

        # No RSC variant was built for this page
        if _RSC_SUFFIX.search(path) and path not in self.output:
            path = strip_rsc_suffix(path)

        dest_url = resolve_url(path, self.request.url)
        apply_search_params(match.search_params, SearchParams.parse(url_query(dest_url)))
        match.path = path if is_url(path) else url_path(dest_url)
        return prev_path
