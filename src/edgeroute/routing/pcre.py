"""PCRE-style pattern matching and placeholder substitution.

Route sources and condition values in the build output are written for a
PCRE/JavaScript regex engine. They are translated to Python ``re``
syntax once, compiled, and always tested against the *whole* value: a
stored pattern that lacks ``^``/``$`` still never matches a substring.

Placeholders (``$1``, ``$name``) in destinations and header values are
expanded from a :class:`PatternMatch` in a single pass.
"""

import re
from dataclasses import dataclass, field
from functools import lru_cache

from edgeroute.errors import InvalidPatternError

_NAMED_BACKREF = re.compile(r"\\k<([A-Za-z_][A-Za-z0-9_]*)>")
_PLACEHOLDER = re.compile(r"\$([a-zA-Z0-9]+)")
_LEADING_DIGITS = re.compile(r"\d+")


@dataclass(frozen=True, slots=True)
class PatternMatch:
    """Capture groups from a successful match.

    ``values[0]`` is the whole match, ``values[n]`` the n-th group.
    ``named`` maps group names to their values (``None`` when a group
    did not participate).
    """

    values: tuple[str | None, ...]
    named: dict[str, str | None] = field(default_factory=dict)
    index_names: dict[int, str] = field(default_factory=dict)

    @classmethod
    def from_re(cls, match: re.Match[str]) -> "PatternMatch":
        return cls(
            values=(match.group(0), *match.groups()),
            named=match.groupdict(),
            index_names={index: name for name, index in match.re.groupindex.items()},
        )

    @property
    def groups(self) -> list[tuple[str | int, str | None]]:
        """Ordered (name or position, value) pairs, whole match excluded."""
        return [
            (self.index_names.get(index, index), value)
            for index, value in enumerate(self.values[1:], start=1)
        ]


def translate_pcre(expr: str) -> str:
    """Translate PCRE/JavaScript-only syntax to Python ``re`` syntax.

    ``(?<name>...)`` becomes ``(?P<name>...)`` (lookbehinds are left
    alone) and ``\\k<name>`` becomes ``(?P=name)``. Escapes and
    character classes are skipped over untouched.
    """
    out: list[str] = []
    index = 0
    length = len(expr)
    in_class = False
    while index < length:
        char = expr[index]
        if char == "\\" and index + 1 < length:
            if not in_class and expr[index + 1] == "k":
                backref = _NAMED_BACKREF.match(expr, index)
                if backref:
                    out.append(f"(?P={backref.group(1)})")
                    index = backref.end()
                    continue
            out.append(expr[index : index + 2])
            index += 2
            continue
        if in_class:
            if char == "]":
                in_class = False
        elif char == "[":
            in_class = True
        elif (
            char == "("
            and expr.startswith("?<", index + 1)
            and expr[index + 3 : index + 4] not in ("=", "!")
        ):
            out.append("(?P<")
            index += 3
            continue
        out.append(char)
        index += 1
    return "".join(out)


@lru_cache(maxsize=2048)
def compile_pattern(expr: str, case_sensitive: bool = False) -> re.Pattern[str]:
    """Compile a PCRE-style expression.

    Raises ``InvalidPatternError`` if the expression cannot be compiled.
    Matching is case-insensitive unless *case_sensitive* is set.
    """
    flags = 0 if case_sensitive else re.IGNORECASE
    try:
        return re.compile(translate_pcre(expr), flags)
    except re.error as exc:
        raise InvalidPatternError(expr, str(exc)) from exc


def match_pattern(
    expr: str | re.Pattern[str],
    value: str | None,
    case_sensitive: bool = False,
) -> PatternMatch | None:
    """Test *value* against the whole of *expr*.

    Returns the capture groups on success, ``None`` otherwise (including
    when *value* is ``None``).
    """
    if value is None:
        return None
    pattern = compile_pattern(expr, case_sensitive) if isinstance(expr, str) else expr
    found = pattern.fullmatch(value)
    if found is None:
        return None
    return PatternMatch.from_re(found)


def apply_pcre_matches(template: str, match: PatternMatch, *, named_only: bool = False) -> str:
    """Replace ``$name`` and ``$1`` placeholders in *template*.

    Named groups take priority. Otherwise the leading digits select a
    positional group (``$0`` is the whole match). Unknown placeholders
    and groups that did not participate become an empty string, unless
    *named_only* is set, in which case non-named placeholders are kept
    verbatim for a later pass. Substituted text is never re-expanded.
    """

    def _replace(found: re.Match[str]) -> str:
        key = found.group(1)
        if key in match.named:
            return match.named[key] or ""
        if named_only:
            return found.group(0)
        digits = _LEADING_DIGITS.match(key)
        if digits is None:
            return ""
        index = int(digits.group(0))
        if index >= len(match.values):
            return ""
        return match.values[index] or ""

    return _PLACEHOLDER.sub(_replace, template)
