"""Route table construction.

The build output declares its routes as one flat list in which
``{"handle": "<phase>"}`` markers start a new phase. Everything before
the first marker belongs to ``none``. The table partitions that list
once, anchors and compiles every source, and is read-only afterwards.
"""

import json
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from edgeroute.errors import ConfigurationError
from edgeroute.routing.locale import LocaleState
from edgeroute.routing.route import Phase, Route

SUPPORTED_VERSION = 3


def anchor_source(src: str, *, locale_index: bool = False) -> str:
    """Anchor *src* with ``^`` and ``$``.

    The locale index route (``/`` carrying a locale map) is left as a
    literal so that locale detection can recognise it as root-only.
    """
    if locale_index:
        return src
    if not src.startswith("^"):
        src = f"^{src}"
    if not src.endswith("$"):
        src = f"{src}$"
    return src


def _parse_route(data: Mapping[str, Any]) -> Route:
    src = data.get("src")
    if not isinstance(src, str):
        msg = f"Route is missing a string 'src': {dict(data)!r}"
        raise ConfigurationError(msg)
    anchored = anchor_source(src, locale_index=src == "/" and bool(data.get("locale")))
    return Route.from_dict({**data, "src": anchored})


@dataclass(frozen=True, slots=True)
class WildcardDomain:
    """A domain whose ``$wildcard`` placeholder expands to ``value``."""

    domain: str
    value: str


@dataclass(frozen=True, slots=True)
class RouteTable:
    """Routes partitioned by phase, in declaration order."""

    phases: Mapping[Phase, tuple[Route, ...]] = field(default_factory=dict)
    wildcards: tuple[WildcardDomain, ...] = ()

    @classmethod
    def from_routes(
        cls,
        entries: Iterable[Mapping[str, Any]],
        wildcards: Iterable[WildcardDomain] = (),
    ) -> "RouteTable":
        """Partition a flat route list on its ``handle`` markers.

        Raises ``ConfigurationError`` for unknown phases or malformed
        routes, and ``InvalidPatternError`` for sources that don't compile.
        """
        buckets: dict[Phase, list[Route]] = {phase: [] for phase in Phase}
        current = Phase.NONE
        for entry in entries:
            if not isinstance(entry, Mapping):
                msg = f"Route entries must be objects, got {type(entry).__name__}"
                raise ConfigurationError(msg)
            if "handle" in entry:
                try:
                    current = Phase(entry["handle"])
                except ValueError:
                    msg = f"Unknown route phase {entry['handle']!r}"
                    raise ConfigurationError(msg) from None
                continue
            buckets[current].append(_parse_route(entry))
        return cls(
            phases={phase: tuple(routes) for phase, routes in buckets.items()},
            wildcards=tuple(wildcards),
        )

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "RouteTable":
        """Build from a parsed ``config.json`` object."""
        version = config.get("version")
        if version != SUPPORTED_VERSION:
            msg = f"Unsupported build output config version {version!r}; expected {SUPPORTED_VERSION}"
            raise ConfigurationError(msg)
        try:
            wildcards = [
                WildcardDomain(domain=str(item["domain"]), value=str(item["value"]))
                for item in config.get("wildcard") or ()
            ]
        except (KeyError, TypeError) as exc:
            msg = f"Wildcard entries need a 'domain' and a 'value': {exc}"
            raise ConfigurationError(msg) from exc
        return cls.from_routes(config.get("routes") or (), wildcards)

    def routes(self, phase: Phase) -> tuple[Route, ...]:
        return self.phases.get(phase, ())

    def wildcard_for(self, hostname: str) -> str | None:
        """The wildcard value configured for *hostname*, if any."""
        for wildcard in self.wildcards:
            if wildcard.domain == hostname:
                return wildcard.value
        return None

    def locale_state(self) -> LocaleState:
        """A fresh LocaleState seeded from the ``none`` phase."""
        return LocaleState.from_routes(self.routes(Phase.NONE))

    def __len__(self) -> int:
        return sum(len(routes) for routes in self.phases.values())


def load_config(path: str | Path) -> RouteTable:
    """Read a build output ``config.json`` and build its route table."""
    try:
        config = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        msg = f"Cannot read route config {str(path)!r}: {exc}"
        raise ConfigurationError(msg) from exc
    if not isinstance(config, Mapping):
        msg = "Route config must be a JSON object"
        raise ConfigurationError(msg)
    return RouteTable.from_config(config)
