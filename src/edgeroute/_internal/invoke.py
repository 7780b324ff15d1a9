"""Invoke helpers: call sync or async callables uniformly.

Output-map functions and middleware can be ``def`` or ``async def``.
Any code that calls one must handle both cases. This module provides
a single helper so the sync/async check lives in exactly one place.

Usage::

    from edgeroute._internal.invoke import invoke

    response = await invoke(item.entrypoint, request)
"""

import inspect
from typing import Any


async def invoke(handler: Any, *args: Any, **kwargs: Any) -> Any:
    """Call a handler and await the result if it's a coroutine."""
    result = handler(*args, **kwargs)
    if inspect.isawaitable(result):
        result = await result
    return result
