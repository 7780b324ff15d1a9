"""Field condition evaluation for ``has``/``missing`` route conditions.

A condition either requires a header, cookie, or query parameter to be
present, or requires its value to match a pattern (anchored, like route
sources). ``host`` conditions compare the request hostname.
"""

from dataclasses import dataclass

from edgeroute.http.request import Request
from edgeroute.routing.pcre import apply_pcre_matches, match_pattern
from edgeroute.routing.route import HasField


@dataclass(frozen=True, slots=True)
class FieldResult:
    """Outcome of evaluating one condition.

    ``dest`` is the route destination with the condition's named
    captures substituted, when the condition captured any.
    """

    valid: bool
    dest: str | None = None


def _apply_captures(dest: str | None, expr: str, value: str | None) -> FieldResult:
    found = match_pattern(expr, value)
    if found is None:
        return FieldResult(valid=False)
    if dest and found.named:
        return FieldResult(valid=True, dest=apply_pcre_matches(dest, found, named_only=True))
    return FieldResult(valid=True)


def has_field(condition: HasField, request: Request, dest: str | None = None) -> FieldResult:
    """Check whether *condition* holds for *request*."""
    key = condition.key or ""
    match condition.type:
        case "host":
            if condition.value is None:
                return FieldResult(valid=False)
            if request.hostname == condition.value:
                return FieldResult(valid=True)
            return FieldResult(valid=match_pattern(condition.value, request.hostname) is not None)
        case "header":
            if condition.value is not None:
                return _apply_captures(dest, condition.value, request.headers.get(key))
            return FieldResult(valid=key in request.headers)
        case "cookie":
            cookie = request.cookies.get(key)
            if cookie and condition.value is not None:
                return _apply_captures(dest, condition.value, cookie)
            return FieldResult(valid=cookie is not None)
        case "query":
            if condition.value is not None:
                return _apply_captures(dest, condition.value, request.query.get(key))
            return FieldResult(valid=key in request.query)
    return FieldResult(valid=False)


def check_conditions(
    has: tuple[HasField, ...],
    missing: tuple[HasField, ...],
    request: Request,
    dest: str | None = None,
) -> FieldResult:
    """Evaluate a route's ``has`` and ``missing`` lists together.

    Every ``has`` condition must hold and no ``missing`` condition may.
    Named captures from ``has`` values are threaded into *dest* in order.
    """
    for condition in has:
        result = has_field(condition, request, dest)
        if not result.valid:
            return FieldResult(valid=False)
        if result.dest is not None:
            dest = result.dest
    for condition in missing:
        if has_field(condition, request).valid:
            return FieldResult(valid=False)
    return FieldResult(valid=True, dest=dest)
