"""HTTP headers: immutable request headers and mutable routing headers.

``Headers`` implements ``Mapping[str, str]`` and the ``MultiValueMapping``
protocol. Stores raw byte pairs as received; decodes on access.

``MutableHeaders`` is the accumulator the matcher threads through the
routing phases. ``set`` replaces, ``append`` adds; ``apply_headers``
applies the routing merge rule (``set-cookie`` appends, everything else
replaces).
"""

from collections.abc import Iterable, Iterator, Mapping

from edgeroute.routing.pcre import PatternMatch, apply_pcre_matches


class Headers(Mapping[str, str]):
    """Immutable, case-insensitive HTTP headers.

    ``__getitem__`` returns the first matching value.
    ``get_list`` returns all values for a header (e.g. multiple ``Set-Cookie``).
    """

    __slots__ = ("_raw",)

    def __init__(self, raw: tuple[tuple[bytes, bytes], ...] = ()) -> None:
        object.__setattr__(self, "_raw", raw)

    @classmethod
    def from_items(cls, items: Mapping[str, str] | Iterable[tuple[str, str]]) -> "Headers":
        """Build headers from string pairs or a plain mapping."""
        pairs = items.items() if isinstance(items, Mapping) else items
        return cls(tuple((k.encode("latin-1"), v.encode("latin-1")) for k, v in pairs))

    def __getitem__(self, key: str) -> str:
        key_lower = key.lower().encode("latin-1")
        for name, value in self._raw:
            if name.lower() == key_lower:
                return value.decode("latin-1")
        raise KeyError(key)

    def __contains__(self, key: object) -> bool:
        if not isinstance(key, str):
            return False
        key_lower = key.lower().encode("latin-1")
        return any(name.lower() == key_lower for name, _ in self._raw)

    def __iter__(self) -> Iterator[str]:
        seen: set[str] = set()
        for name, _ in self._raw:
            key = name.decode("latin-1").lower()
            if key not in seen:
                seen.add(key)
                yield key

    def __len__(self) -> int:
        return len(set(self))

    def __repr__(self) -> str:
        items = ", ".join(f"{k!r}: {self[k]!r}" for k in self)
        return f"Headers({{{items}}})"

    def get(self, key: str, default: str | None = None) -> str | None:  # type: ignore[override]
        """Return the first value for *key*, or *default* if missing."""
        try:
            return self[key]
        except KeyError:
            return default

    def get_list(self, key: str) -> list[str]:
        """Return all values for *key* (e.g. multiple ``Set-Cookie``)."""
        key_lower = key.lower().encode("latin-1")
        return [value.decode("latin-1") for name, value in self._raw if name.lower() == key_lower]

    def items_list(self) -> list[tuple[str, str]]:
        """All header pairs in arrival order, names lowercased."""
        return [(name.decode("latin-1").lower(), value.decode("latin-1")) for name, value in self._raw]

    @property
    def raw(self) -> tuple[tuple[bytes, bytes], ...]:
        """Access raw header byte pairs for ASGI compatibility."""
        return self._raw


class MutableHeaders:
    """Ordered, case-insensitive, mutable header collection.

    Names are stored lowercased. Multiple values per name are kept in
    insertion order, so ``set-cookie`` can hold several cookies.
    """

    __slots__ = ("_items",)

    def __init__(self, items: Mapping[str, str] | Iterable[tuple[str, str]] = ()) -> None:
        pairs = items.items() if isinstance(items, Mapping) else items
        self._items: list[tuple[str, str]] = [(k.lower(), v) for k, v in pairs]

    def __contains__(self, key: object) -> bool:
        if not isinstance(key, str):
            return False
        key_lower = key.lower()
        return any(name == key_lower for name, _ in self._items)

    def __iter__(self) -> Iterator[str]:
        seen: set[str] = set()
        for name, _ in self._items:
            if name not in seen:
                seen.add(name)
                yield name

    def __len__(self) -> int:
        return len(set(self))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, MutableHeaders):
            return NotImplemented
        return self._items == other._items

    def __repr__(self) -> str:
        return f"MutableHeaders({self._items!r})"

    def get(self, key: str, default: str | None = None) -> str | None:
        """Return all values for *key* joined with ``", "``, or *default*."""
        values = self.get_list(key)
        if not values:
            return default
        return ", ".join(values)

    def get_list(self, key: str) -> list[str]:
        key_lower = key.lower()
        return [value for name, value in self._items if name == key_lower]

    def set(self, key: str, value: str) -> None:
        """Replace every value of *key* with *value*, keeping its position."""
        key_lower = key.lower()
        for index, (name, _) in enumerate(self._items):
            if name == key_lower:
                self._items[index] = (key_lower, value)
                self._items[index + 1 :] = [
                    item for item in self._items[index + 1 :] if item[0] != key_lower
                ]
                return
        self._items.append((key_lower, value))

    def append(self, key: str, value: str) -> None:
        self._items.append((key.lower(), value))

    def delete(self, key: str) -> None:
        key_lower = key.lower()
        self._items = [item for item in self._items if item[0] != key_lower]

    def items(self) -> list[tuple[str, str]]:
        """All pairs in order, one entry per value."""
        return list(self._items)

    def copy(self) -> "MutableHeaders":
        return MutableHeaders(self._items)


def apply_headers(
    target: MutableHeaders,
    source: Mapping[str, str] | Iterable[tuple[str, str]],
    match: PatternMatch | None = None,
) -> None:
    """Apply *source* headers onto *target*.

    ``set-cookie`` values are appended; every other header replaces the
    existing value so repeated matches don't produce duplicates (e.g.
    ``x-matched-path``). When *match* is given, ``$1``/``$name``
    placeholders in values are expanded from its capture groups.
    """
    if isinstance(source, Headers):
        pairs: Iterable[tuple[str, str]] = source.items_list()
    elif isinstance(source, (Mapping, MutableHeaders)):
        pairs = source.items()
    else:
        pairs = source
    for key, value in pairs:
        lower_key = key.lower()
        new_value = apply_pcre_matches(value, match) if match is not None else value
        if lower_key == "set-cookie":
            target.append(lower_key, new_value)
        else:
            target.set(lower_key, new_value)
