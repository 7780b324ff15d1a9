"""ASGI application serving an ``EdgeRouter``.

Reads each HTTP request in full, hands it to the router, and sends the
response back. The lifespan protocol is handled directly: the outbound
``httpx`` client is closed at shutdown.
"""

import logging

from edgeroute._internal.asgi import Receive, Scope, Send
from edgeroute.http.request import Request
from edgeroute.server.handler import EdgeRouter
from edgeroute.server.sender import send_response

logger = logging.getLogger("edgeroute.server")


async def read_body(receive: Receive) -> bytes:
    """Drain ``http.request`` messages into one body."""
    chunks: list[bytes] = []
    while True:
        message = await receive()
        if message["type"] == "http.disconnect":
            break
        chunks.append(message.get("body", b""))
        if not message.get("more_body", False):
            break
    return b"".join(chunks)


class EdgeApp:
    """ASGI 3.0 application wrapping an ``EdgeRouter``.

    Usage::

        app = EdgeApp(EdgeRouter.from_build_output(".vercel/output"))
        # run with any ASGI server: uvicorn module:app
    """

    __slots__ = ("router",)

    def __init__(self, router: EdgeRouter) -> None:
        self.router = router
        logging.getLogger("edgeroute").setLevel(router.config.log_level.upper())

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "lifespan":
            await self._handle_lifespan(receive, send)
            return
        if scope["type"] != "http":
            return

        request = Request.from_asgi(scope, await read_body(receive))
        response = await self.router.handle(request)
        await send_response(response, send, head=request.method == "HEAD")

    async def _handle_lifespan(self, receive: Receive, send: Send) -> None:
        while True:
            message = await receive()
            msg_type = message["type"]

            if msg_type == "lifespan.startup":
                logger.debug("Serving %d routes, %d output items", len(self.router.table), len(self.router.output))
                await send({"type": "lifespan.startup.complete"})

            elif msg_type == "lifespan.shutdown":
                await self.router.aclose()
                await send({"type": "lifespan.shutdown.complete"})
                return
