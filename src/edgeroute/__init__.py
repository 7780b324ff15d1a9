"""edgeroute: request routing for prebuilt edge deployments.

Takes a framework's build output (a phase-partitioned route table plus a
map of static assets, functions and middleware) and decides, per
request, what serves it, with which status and which headers.

Basic usage::

    from edgeroute import EdgeRouter, Request

    router = EdgeRouter.from_build_output(".vercel/output")
    response = await router.handle(Request.build("https://example.com/about"))

As an ASGI app::

    from edgeroute import EdgeApp

    app = EdgeApp(router)
"""

__version__ = "0.1.0.dev0"
__all__ = [
    "ConfigurationError",
    "DirectoryAssets",
    "EdgeApp",
    "EdgeRouteError",
    "EdgeRouter",
    "FunctionItem",
    "HTTPError",
    "InvalidPatternError",
    "MemoryAssets",
    "MiddlewareItem",
    "OutputMap",
    "OverrideItem",
    "Request",
    "Response",
    "RouteTable",
    "RouterConfig",
    "StaticItem",
    "load_config",
]


def __getattr__(name: str) -> object:
    """Lazy imports for public API.

    Keeps ``import edgeroute`` fast while providing a clean top-level API.
    """
    if name == "EdgeRouter":
        from edgeroute.server.handler import EdgeRouter

        return EdgeRouter

    if name == "EdgeApp":
        from edgeroute.app import EdgeApp

        return EdgeApp

    if name == "RouterConfig":
        from edgeroute.config import RouterConfig

        return RouterConfig

    if name == "Request":
        from edgeroute.http.request import Request

        return Request

    if name == "Response":
        from edgeroute.http.response import Response

        return Response

    if name in ("RouteTable", "load_config"):
        from edgeroute.routing import table as _table

        return getattr(_table, name)

    if name in ("OutputMap", "StaticItem", "OverrideItem", "FunctionItem", "MiddlewareItem"):
        from edgeroute import output as _output

        return getattr(_output, name)

    if name in ("MemoryAssets", "DirectoryAssets"):
        from edgeroute import assets as _assets

        return getattr(_assets, name)

    if name in ("EdgeRouteError", "ConfigurationError", "InvalidPatternError", "HTTPError"):
        from edgeroute import errors as _errors

        return getattr(_errors, name)

    msg = f"module {__name__!r} has no attribute {name!r}"
    raise AttributeError(msg)
