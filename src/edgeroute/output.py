"""Output map: the build artifacts that can serve a routed path.

Each path maps to exactly one item kind. Static and override items are
served through an asset fetcher; function and middleware items carry a
resolved callable that receives the routed ``Request`` and returns a
``Response`` (sync or async).
"""

import importlib
import json
from collections.abc import Awaitable, Callable, Iterator, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, TypeAlias

from edgeroute._internal.invoke import invoke
from edgeroute.errors import ConfigurationError
from edgeroute.http.request import Request
from edgeroute.http.response import Response

Entrypoint: TypeAlias = Callable[[Request], Response | Awaitable[Response]]


@dataclass(frozen=True, slots=True)
class StaticItem:
    """A prebuilt asset served as-is."""


@dataclass(frozen=True, slots=True)
class OverrideItem:
    """An asset served from another path, with extra response headers."""

    path: str | None = None
    headers: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class FunctionItem:
    """A dynamic function."""

    entrypoint: Entrypoint
    name: str = ""


@dataclass(frozen=True, slots=True)
class MiddlewareItem:
    """A middleware function invoked while routing."""

    entrypoint: Entrypoint
    name: str = ""


OutputItem: TypeAlias = StaticItem | OverrideItem | FunctionItem | MiddlewareItem


def resolve_entrypoint(import_string: str) -> Entrypoint:
    """Resolve a ``"module:attribute"`` string to a callable.

    When the attribute portion is omitted it defaults to ``"default"``
    (e.g. ``"functions.api"`` resolves to ``functions.api.default``).

    Raises:
        ConfigurationError: If the module or attribute cannot be found,
            or the resolved object is not callable.
    """
    module_path, _, attr_name = import_string.partition(":")
    if not attr_name:
        attr_name = "default"

    try:
        module = importlib.import_module(module_path)
        obj = getattr(module, attr_name)
    except (ImportError, AttributeError) as exc:
        msg = f"Cannot resolve entrypoint {import_string!r}: {exc}"
        raise ConfigurationError(msg) from exc

    if not callable(obj):
        msg = f"Entrypoint {import_string!r} resolved to {type(obj).__name__}, not a callable"
        raise ConfigurationError(msg)
    return obj


async def call_entrypoint(item: FunctionItem | MiddlewareItem, request: Request) -> Response:
    """Invoke a function or middleware item and check what it returned."""
    response = await invoke(item.entrypoint, request)
    if not isinstance(response, Response):
        msg = f"Output item {item.name or item.entrypoint!r} returned {type(response).__name__}, not a Response"
        raise TypeError(msg)
    return response


def _parse_item(path: str, data: Any, resolve: Callable[[str], Entrypoint]) -> OutputItem:
    if not isinstance(data, Mapping):
        msg = f"Output entry {path!r} must be an object, got {type(data).__name__}"
        raise ConfigurationError(msg)

    match data.get("type"):
        case "static":
            return StaticItem()
        case "override":
            headers = data.get("headers") or {}
            return OverrideItem(path=data.get("path"), headers={str(k): str(v) for k, v in headers.items()})
        case "function" | "middleware" as kind:
            entrypoint = data.get("entrypoint")
            if callable(entrypoint):
                name = getattr(entrypoint, "__qualname__", "")
            elif isinstance(entrypoint, str):
                name = entrypoint
                entrypoint = resolve(entrypoint)
            else:
                msg = f"Output entry {path!r} needs an 'entrypoint'"
                raise ConfigurationError(msg)
            if kind == "function":
                return FunctionItem(entrypoint=entrypoint, name=name)
            return MiddlewareItem(entrypoint=entrypoint, name=name)
        case other:
            msg = f"Output entry {path!r} has unknown type {other!r}"
            raise ConfigurationError(msg)


class OutputMap(Mapping[str, OutputItem]):
    """Immutable mapping from normalized path to the item serving it.

    Usage::

        output = OutputMap({
            "/index.html": StaticItem(),
            "/api/hello": FunctionItem(hello),
        })
    """

    __slots__ = ("_items",)

    def __init__(self, items: Mapping[str, OutputItem] | None = None) -> None:
        self._items: dict[str, OutputItem] = dict(items or {})
        for path in self._items:
            if not path.startswith("/"):
                msg = f"Output paths must start with '/': {path!r}"
                raise ConfigurationError(msg)

    @classmethod
    def from_manifest(
        cls,
        manifest: Mapping[str, Any],
        *,
        resolve: Callable[[str], Entrypoint] = resolve_entrypoint,
    ) -> "OutputMap":
        """Build from the JSON manifest form.

        Each entry is ``{"type": "static"}``,
        ``{"type": "override", "path": ..., "headers": {...}}``, or
        ``{"type": "function"|"middleware", "entrypoint": "module:attr"}``.
        """
        return cls({path: _parse_item(path, data, resolve) for path, data in manifest.items()})

    @classmethod
    def load(cls, path: str | Path, **kwargs: Any) -> "OutputMap":
        """Read a JSON manifest file and build the map."""
        try:
            manifest = json.loads(Path(path).read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            msg = f"Cannot read output manifest {str(path)!r}: {exc}"
            raise ConfigurationError(msg) from exc
        return cls.from_manifest(manifest, **kwargs)

    def __getitem__(self, key: str) -> OutputItem:
        return self._items[key]

    def __contains__(self, key: object) -> bool:
        return key in self._items

    def __iter__(self) -> Iterator[str]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __repr__(self) -> str:
        return f"OutputMap({len(self._items)} items)"
