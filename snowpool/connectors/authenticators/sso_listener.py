"""
Local HTTP callback listener for browser-based SSO.

The identity provider redirects the browser to http://<host>:<port>/?token=...
(or posts a SAMLResponse form). The listener hands the first assertion it
sees to a single waiter and answers every request with a small HTML page.

Lifetime is scoped: start(), wait(), close(). close() is safe to call on
every path, including after a failed start().
"""

from __future__ import annotations

import asyncio
import logging
import socket
from typing import Optional

from aiohttp import web

logger = logging.getLogger(__name__)

_ASSERTION_KEYS = ("token", "SAMLResponse")
_MAX_BODY_BYTES = 1 << 20

_SUCCESS_PAGE = (
    "<html><body><h1>Authentication Successful</h1>"
    "<p>You can close this window.</p></body></html>"
)
_MISSING_PAGE = (
    "<html><body><h1>Authentication Incomplete</h1>"
    "<p>No assertion was received.</p></body></html>"
)


class SsoCallbackListener:
    """Short-lived HTTP listener waiting for one SSO assertion."""

    def __init__(self, host: str = "127.0.0.1", port: int = 0):
        self._host = host
        self._requested_port = int(port)
        self._sock: Optional[socket.socket] = None
        self._runner: web.AppRunner | None = None
        self._site: web.SockSite | None = None
        self._assertion: Optional[asyncio.Future[str]] = None

    @property
    def port(self) -> int:
        if self._sock is None:
            return self._requested_port
        return int(self._sock.getsockname()[1])

    async def start(self) -> None:
        """Bind the listener. Raises OSError if the port cannot be bound."""
        self._assertion = asyncio.get_running_loop().create_future()

        # Bound up front so port 0 resolves before the SSO URL request.
        self._sock = socket.create_server((self._host, self._requested_port))
        self._sock.setblocking(False)

        app = web.Application(client_max_size=_MAX_BODY_BYTES)
        app.router.add_route("*", "/{tail:.*}", self._handle_callback)

        self._runner = web.AppRunner(app, access_log=None)
        await self._runner.setup()
        self._site = web.SockSite(self._runner, self._sock)
        await self._site.start()
        logger.debug("SSO callback listener bound on %s:%d", self._host, self.port)

    async def wait(self, timeout: float) -> str:
        """
        Wait for the assertion.

        Raises:
            TimeoutError: If nothing arrives within timeout seconds
        """
        if self._assertion is None:
            raise RuntimeError("SSO callback listener was not started")
        return await asyncio.wait_for(asyncio.shield(self._assertion), timeout=timeout)

    async def close(self) -> None:
        if self._assertion is not None and not self._assertion.done():
            self._assertion.cancel()
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
            self._site = None
            logger.debug("SSO callback listener closed")
        if self._sock is not None:
            self._sock.close()
            self._sock = None

    async def _handle_callback(self, request: web.Request) -> web.Response:
        assertion = await self._read_assertion(request)
        if assertion and self._assertion is not None and not self._assertion.done():
            self._assertion.set_result(assertion)

        response = web.Response(
            text=_SUCCESS_PAGE if assertion else _MISSING_PAGE,
            status=200 if assertion else 400,
            content_type="text/html",
        )
        response.force_close()
        return response

    @staticmethod
    async def _read_assertion(request: web.Request) -> Optional[str]:
        params = dict(request.query)
        if request.method == "POST" and request.can_read_body:
            form = await request.post()
            params.update({k: v for k, v in form.items() if isinstance(v, str)})

        for key in _ASSERTION_KEYS:
            value = params.get(key)
            if value:
                return value
        return None
