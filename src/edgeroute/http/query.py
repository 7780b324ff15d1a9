"""Query string parameters.

``QueryParams`` is the immutable view of a request's query string.
``SearchParams`` is the ordered, mutable accumulator the matcher merges
destination and middleware query strings into.
"""

import re
from collections.abc import Iterable, Iterator, Mapping
from urllib.parse import parse_qs, parse_qsl, urlencode

# Next.js marks dynamic route parameters with this prefix
_NEXT_PARAM = re.compile(r"^nxtP(.+)$")


class QueryParams(Mapping[str, str]):
    """Immutable query string parameters.

    Attributes:
        _data: Parsed query string as field name -> list of values.
        _raw: Raw query string bytes.

    ``__getitem__`` returns the first value for a key.
    ``get_list`` returns all values for a key.
    """

    _data: dict[str, list[str]]
    _raw: bytes

    __slots__ = ("_data", "_raw")

    def __init__(self, query_string: bytes = b"") -> None:
        object.__setattr__(self, "_raw", query_string)
        parsed = parse_qs(query_string.decode("latin-1"), keep_blank_values=True)
        object.__setattr__(self, "_data", parsed)

    def __getitem__(self, key: str) -> str:
        return self._data[key][0]

    def __contains__(self, key: object) -> bool:
        return key in self._data

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        items = ", ".join(f"{k!r}: {self[k]!r}" for k in self)
        return f"QueryParams({{{items}}})"

    def get(self, key: str, default: str | None = None) -> str | None:  # type: ignore[override]
        """Return the first value for *key*, or *default* if missing."""
        values = self._data.get(key)
        if values:
            return values[0]
        return default

    def get_list(self, key: str) -> list[str]:
        """Return all values for *key*."""
        return list(self._data.get(key, []))


class SearchParams:
    """Ordered multi-valued query parameters, in insertion order."""

    __slots__ = ("_items",)

    def __init__(self, items: Iterable[tuple[str, str]] = ()) -> None:
        self._items: list[tuple[str, str]] = list(items)

    @classmethod
    def parse(cls, query_string: str) -> "SearchParams":
        """Parse a query string (with or without the leading ``?``)."""
        return cls(parse_qsl(query_string.lstrip("?"), keep_blank_values=True))

    def __contains__(self, key: object) -> bool:
        return any(name == key for name, _ in self._items)

    def __iter__(self) -> Iterator[str]:
        seen: set[str] = set()
        for name, _ in self._items:
            if name not in seen:
                seen.add(name)
                yield name

    def __len__(self) -> int:
        return len(self._items)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SearchParams):
            return NotImplemented
        return self._items == other._items

    def __repr__(self) -> str:
        return f"SearchParams({self._items!r})"

    def __str__(self) -> str:
        return urlencode(self._items)

    def get(self, key: str, default: str | None = None) -> str | None:
        for name, value in self._items:
            if name == key:
                return value
        return default

    def get_list(self, key: str) -> list[str]:
        return [value for name, value in self._items if name == key]

    def append(self, key: str, value: str) -> None:
        self._items.append((key, value))

    def set(self, key: str, value: str) -> None:
        """Replace every value of *key* with *value*, keeping its first position."""
        for index, (name, _) in enumerate(self._items):
            if name == key:
                self._items[index] = (key, value)
                self._items[index + 1 :] = [item for item in self._items[index + 1 :] if item[0] != key]
                return
        self._items.append((key, value))

    def delete(self, key: str) -> None:
        self._items = [item for item in self._items if item[0] != key]

    def items(self) -> list[tuple[str, str]]:
        return list(self._items)

    def copy(self) -> "SearchParams":
        return SearchParams(self._items)


def apply_search_params(
    target: SearchParams,
    source: SearchParams | Mapping[str, str] | Iterable[tuple[str, str]],
) -> None:
    """Merge *source* params into *target*.

    A param is appended only if *target* lacks the key, or if the value is
    non-empty and not already present for that key.

    Params prefixed with ``nxtP`` are Next.js dynamic route parameters;
    they are set under both the prefixed and the bare name, since the
    framework sometimes fails to derive the bare one itself.
    """
    if isinstance(source, SearchParams):
        pairs: Iterable[tuple[str, str]] = source.items()
    elif isinstance(source, Mapping):
        pairs = source.items()
    else:
        pairs = source
    for key, value in pairs:
        param = _NEXT_PARAM.match(key)
        if param:
            target.set(key, value)
            target.set(param.group(1), value)
        elif key not in target or (value and value not in target.get_list(key)):
            target.append(key, value)
