"""
OAuth Authenticator

Login: submit a bearer access token as the login credential.

Refresh: exchange a refresh token for a new access token using the OAuth2
refresh-token grant against a token endpoint. The token endpoint is
independent of the login endpoint; it defaults to the account's
/oauth/token-request but can point at any external provider.
"""

import logging
from datetime import timedelta
from typing import Any, Optional

from snowpool.connectors.authenticators.base import (
    LOGIN_ENDPOINT,
    TOKEN_ENDPOINT,
    BaseAuthenticator,
    account_url,
)
from snowpool.errors import AuthErrorReason
from snowpool.models.connection import (
    AuthenticationConfig,
    AuthenticationType,
    ConnectionConfig,
)
from snowpool.models.token import AuthenticationToken

logger = logging.getLogger(__name__)

# Used when the token endpoint omits expires_in
_DEFAULT_EXPIRES_IN = 3600


class OAuthAuthenticator(BaseAuthenticator):
    """OAuth bearer-token login plus refresh-token grant."""

    method = AuthenticationType.OAUTH.value

    async def authenticate(
        self,
        account: str,
        user: str,
        auth: AuthenticationConfig,
        target: Optional[ConnectionConfig] = None,
    ) -> AuthenticationToken:
        if not auth.oauth_token:
            raise self._error(
                "OAuth token cannot be empty.",
                AuthErrorReason.INVALID_CREDENTIALS,
                "oauth_token",
            )

        payload = await self._post(
            f"{account_url(account)}{LOGIN_ENDPOINT}",
            json=self._login_body(
                account, user, AUTHENTICATOR="OAUTH", TOKEN=auth.oauth_token
            ),
            params=self._login_params(target),
            field="oauth_token",
        )

        data = payload.get("data")
        refresh_token = None
        if isinstance(data, dict):
            refresh_token = data.get("refreshToken")
        return self._token_from_login(
            payload,
            field="oauth_token",
            refresh_token=refresh_token or auth.oauth_refresh_token,
            token_endpoint=auth.oauth_token_endpoint or f"{account_url(account)}{TOKEN_ENDPOINT}",
        )

    async def refresh(
        self,
        token: AuthenticationToken,
        auth: Optional[AuthenticationConfig] = None,
    ) -> AuthenticationToken:
        """
        Run the refresh-token grant and return a new token.

        Args:
            token: Token carrying refresh_token and token_endpoint
            auth: Optional config supplying client credentials and an
                endpoint override

        Raises:
            AuthError: NOT_REFRESHABLE if the token has no refresh credential
        """
        if not token.refresh_token:
            raise self._error(
                "Token cannot be refreshed. No refresh token available.",
                AuthErrorReason.NOT_REFRESHABLE,
                "oauth_refresh_token",
            )

        endpoint = (auth.oauth_token_endpoint if auth else None) or token.token_endpoint
        if not endpoint:
            raise self._error(
                "Token cannot be refreshed. No token endpoint known.",
                AuthErrorReason.NOT_REFRESHABLE,
                "oauth_token_endpoint",
            )

        client_auth = None
        if auth is not None and auth.oauth_client_id and auth.oauth_client_secret:
            client_auth = (auth.oauth_client_id, auth.oauth_client_secret)

        logger.debug("Refreshing OAuth access token")
        body = await self._post(
            endpoint,
            data={"grant_type": "refresh_token", "refresh_token": token.refresh_token},
            auth=client_auth,
            field="oauth_refresh_token",
        )

        access_token = str(body.get("access_token") or "")
        if not access_token:
            raise self._error("Token refresh returned empty access_token")

        expires_in = self._expires_in(body.get("expires_in"))
        logger.debug("OAuth access token refreshed (expires_in=%d)", expires_in)
        return token.with_refreshed(
            access_token,
            self._clock() + timedelta(seconds=expires_in),
            refresh_token=body.get("refresh_token") or None,
            token_type=str(body.get("token_type") or "Bearer"),
        )

    @staticmethod
    def _expires_in(raw: Any) -> int:
        if isinstance(raw, bool):
            return _DEFAULT_EXPIRES_IN
        if isinstance(raw, int):
            return raw
        if isinstance(raw, (float, str)):
            try:
                return int(float(raw))
            except ValueError:
                return _DEFAULT_EXPIRES_IN
        return _DEFAULT_EXPIRES_IN
