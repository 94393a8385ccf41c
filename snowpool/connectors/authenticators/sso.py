"""
SSO / External Browser Authenticator

Two-phase login:
1. Bind a local callback listener, then ask the server for an SSO URL,
   telling it which port to redirect back to.
2. Open the URL in the user's browser and wait (bounded) for the identity
   provider's redirect carrying the signed assertion.
3. Submit the assertion together with the proof key to complete login.

The listener is always closed, whether the login succeeds or not.

Recognised sso_properties:
    redirect_port: Local port for the callback listener (default: any free port)
    timeout: Seconds to wait for the assertion
"""

from __future__ import annotations

import asyncio
import logging
import webbrowser
from typing import Callable, Optional

from snowpool.config import settings
from snowpool.connectors.authenticators.base import (
    AUTHENTICATOR_ENDPOINT,
    BaseAuthenticator,
    account_url,
)
from snowpool.connectors.authenticators.sso_listener import SsoCallbackListener
from snowpool.errors import AuthErrorReason
from snowpool.models.connection import (
    AuthenticationConfig,
    AuthenticationType,
    ConnectionConfig,
)
from snowpool.models.token import AuthenticationToken

logger = logging.getLogger(__name__)


class SsoAuthenticator(BaseAuthenticator):
    """Browser-based SSO login."""

    method = AuthenticationType.EXTERNAL_BROWSER.value

    def __init__(
        self,
        *args,
        browser_opener: Callable[[str], bool] = webbrowser.open,
        callback_host: Optional[str] = None,
        **kwargs,
    ):
        super().__init__(*args, **kwargs)
        self._browser_opener = browser_opener
        self._callback_host = callback_host or settings.SNOWFLAKE_SSO_CALLBACK_HOST

    async def authenticate(
        self,
        account: str,
        user: str,
        auth: AuthenticationConfig,
        target: Optional[ConnectionConfig] = None,
    ) -> AuthenticationToken:
        props = auth.sso_properties
        try:
            port = int(props.get("redirect_port", 0))
            timeout = float(props.get("timeout", settings.SNOWFLAKE_SSO_TIMEOUT_SECONDS))
        except ValueError:
            raise self._error(
                "SSO properties redirect_port/timeout must be numeric",
                AuthErrorReason.INVALID_CREDENTIALS,
                "sso_properties",
            ) from None

        listener = SsoCallbackListener(self._callback_host, port)
        try:
            try:
                await listener.start()
            except OSError as exc:
                raise self._error(
                    f"Could not bind SSO callback listener on {self._callback_host}:{port}"
                ) from exc

            sso_url, proof_key = await self._request_sso_url(account, user, listener.port)
            await self._open_browser(sso_url)

            try:
                assertion = await listener.wait(timeout)
            except TimeoutError:
                raise self._error(
                    f"No SSO assertion received within {timeout:.0f}s",
                    AuthErrorReason.PROTOCOL_FAILURE,
                    "sso_assertion",
                ) from None
        finally:
            await listener.close()

        fields = {"AUTHENTICATOR": "EXTERNALBROWSER", "TOKEN": assertion}
        if proof_key:
            fields["PROOF_KEY"] = proof_key
        return await self._login(account, user, target, field="sso_assertion", **fields)

    async def _request_sso_url(
        self, account: str, user: str, callback_port: int
    ) -> tuple[str, Optional[str]]:
        payload = await self._post(
            f"{account_url(account)}{AUTHENTICATOR_ENDPOINT}",
            json=self._login_body(
                account,
                user,
                AUTHENTICATOR="EXTERNALBROWSER",
                BROWSER_MODE_REDIRECT_PORT=str(callback_port),
            ),
            field=None,
        )
        if not payload.get("success", True):
            message = payload.get("message") or "SSO request rejected."
            raise self._error(
                f"SSO URL request rejected: {message}",
                AuthErrorReason.INVALID_CREDENTIALS,
                "user",
            )

        data = payload.get("data")
        sso_url = data.get("ssoUrl") if isinstance(data, dict) else None
        if not sso_url:
            raise self._error("Failed to retrieve SSO URL from server")
        return str(sso_url), data.get("proofKey")

    async def _open_browser(self, url: str) -> None:
        try:
            opened = await asyncio.to_thread(self._browser_opener, url)
        except Exception as exc:
            raise self._error(
                f"Failed to open browser for SSO authentication: {type(exc).__name__}"
            ) from exc
        if not opened:
            logger.warning(
                "Could not open a browser automatically; visit this URL to authenticate: %s",
                url,
            )
