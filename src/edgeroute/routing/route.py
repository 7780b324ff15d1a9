"""Route, condition, and phase definitions.

A Route is one rule of the build output's route table. It is parsed from
its JSON form once, with its source pattern compiled up front, and is
immutable afterwards.
"""

import re
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from enum import StrEnum
from typing import Any, Literal, TypeAlias

from edgeroute.errors import ConfigurationError
from edgeroute.routing.pcre import compile_pattern

# Result of checking a single route against the routing state
RouteStatus: TypeAlias = Literal["skip", "next", "done", "error"]

# Result of checking a whole phase
PhaseStatus: TypeAlias = Literal["done", "error"]

FIELD_TYPES = frozenset({"header", "cookie", "query", "host"})


class Phase(StrEnum):
    """Routing phases, in the order the route table declares them."""

    NONE = "none"
    FILESYSTEM = "filesystem"
    REWRITE = "rewrite"
    RESOURCE = "resource"
    MISS = "miss"
    HIT = "hit"
    ERROR = "error"


_SUCCESSORS: dict[Phase, Phase] = {
    Phase.NONE: Phase.FILESYSTEM,
    Phase.FILESYSTEM: Phase.REWRITE,
    Phase.REWRITE: Phase.RESOURCE,
    Phase.RESOURCE: Phase.MISS,
}


def next_phase(phase: Phase) -> Phase:
    """The phase that follows *phase* when no path was found. Falls back to ``miss``."""
    return _SUCCESSORS.get(phase, Phase.MISS)


@dataclass(frozen=True, slots=True)
class HasField:
    """A ``has``/``missing`` condition on the request.

    ``host`` conditions carry only a value; the others carry a key and
    an optional value pattern.
    """

    type: str
    key: str | None = None
    value: str | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "HasField":
        field_type = data.get("type")
        if field_type not in FIELD_TYPES:
            msg = f"Unknown condition type {field_type!r}; expected one of {sorted(FIELD_TYPES)}"
            raise ConfigurationError(msg)
        key = data.get("key")
        value = data.get("value")
        if field_type == "host":
            if not isinstance(value, str):
                msg = "A 'host' condition requires a string 'value'."
                raise ConfigurationError(msg)
        elif not isinstance(key, str):
            msg = f"A {field_type!r} condition requires a string 'key'."
            raise ConfigurationError(msg)
        if value is not None:
            if not isinstance(value, str):
                msg = f"Condition value must be a string, got {type(value).__name__}"
                raise ConfigurationError(msg)
            compile_pattern(value)
        return cls(type=field_type, key=key, value=value)


@dataclass(frozen=True, slots=True)
class LocaleConfig:
    """Locale detection settings attached to a route."""

    redirect: dict[str, str] = field(default_factory=dict)
    cookie: str | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "LocaleConfig":
        redirect = data.get("redirect") or {}
        if not isinstance(redirect, Mapping):
            msg = "Route 'locale.redirect' must be an object."
            raise ConfigurationError(msg)
        return cls(redirect={str(k): str(v) for k, v in redirect.items()}, cookie=data.get("cookie"))


@dataclass(frozen=True, slots=True)
class Route:
    """A frozen route definition.

    ``src`` is kept as written in the table; ``pattern`` is its compiled
    form, always matched against the whole path.
    """

    src: str
    pattern: re.Pattern[str]
    dest: str | None = None
    status: int | None = None
    headers: dict[str, str] = field(default_factory=dict)
    methods: frozenset[str] | None = None
    has: tuple[HasField, ...] = ()
    missing: tuple[HasField, ...] = ()
    continues: bool = False
    override: bool = False
    important: bool = False
    check: bool = False
    case_sensitive: bool = False
    middleware_path: str | None = None
    locale: LocaleConfig | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Route":
        """Parse one non-handler entry of the route table.

        Raises ``ConfigurationError`` for missing or mistyped fields and
        ``InvalidPatternError`` for patterns that don't compile.
        """
        src = data.get("src")
        if not isinstance(src, str):
            msg = f"Route is missing a string 'src': {dict(data)!r}"
            raise ConfigurationError(msg)

        case_sensitive = bool(data.get("caseSensitive", False))
        status = data.get("status")
        if status is not None and not isinstance(status, int):
            msg = f"Route {src!r} has a non-integer status {status!r}"
            raise ConfigurationError(msg)

        methods = data.get("methods")
        if methods is not None and (
            not isinstance(methods, list | tuple) or not all(isinstance(m, str) for m in methods)
        ):
            msg = f"Route {src!r} needs 'methods' as a list of strings, got {methods!r}"
            raise ConfigurationError(msg)

        # Output map keys always start with "/"; the build output may omit it here
        middleware_path = data.get("middlewarePath")
        if middleware_path:
            middleware_path = f"/{str(middleware_path).lstrip('/')}"

        locale = data.get("locale")
        return cls(
            src=src,
            pattern=compile_pattern(src, case_sensitive),
            dest=data.get("dest"),
            status=status,
            headers={str(k): str(v) for k, v in (data.get("headers") or {}).items()},
            methods=frozenset(m.upper() for m in methods) if methods else None,
            has=tuple(HasField.from_dict(h) for h in data.get("has") or ()),
            missing=tuple(HasField.from_dict(h) for h in data.get("missing") or ()),
            continues=bool(data.get("continue", False)),
            override=bool(data.get("override", False)),
            important=bool(data.get("important", False)),
            check=bool(data.get("check", False)),
            case_sensitive=case_sensitive,
            middleware_path=middleware_path or None,
            locale=LocaleConfig.from_dict(locale) if locale else None,
        )

    def with_src(self, src: str) -> "Route":
        """Return a copy of this route matching *src* instead."""
        return replace(self, src=src, pattern=compile_pattern(src, self.case_sensitive))
