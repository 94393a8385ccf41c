"""
Authentication Service

Single dispatch point from a configured AuthenticationType to its login
protocol, plus refresh and local invalidation bookkeeping for the tokens it
has issued.
"""

from __future__ import annotations

import logging
from typing import Mapping, Optional

from snowpool.connectors.authenticators import (
    BaseAuthenticator,
    OAuthAuthenticator,
)
from snowpool.errors import AuthError, AuthErrorReason, ConfigurationError
from snowpool.models.connection import (
    AuthenticationConfig,
    AuthenticationType,
    ConnectionConfig,
)
from snowpool.models.token import AuthenticationToken

logger = logging.getLogger(__name__)


class AuthenticationService:
    """
    Routes logins to the authenticator for the configured method.

    Attributes:
        _authenticators: AuthenticationType -> authenticator
        _issued: access_token -> token for tokens not yet invalidated
    """

    def __init__(self, authenticators: Mapping[AuthenticationType, BaseAuthenticator]):
        self._authenticators: dict[AuthenticationType, BaseAuthenticator] = dict(authenticators)
        self._issued: dict[str, AuthenticationToken] = {}

    async def authenticate(
        self,
        account: str,
        user: str,
        auth: AuthenticationConfig,
        target: Optional[ConnectionConfig] = None,
    ) -> AuthenticationToken:
        """
        Log in and return a new token.

        Args:
            account: Account identifier
            user: Login name
            auth: Method-specific credentials
            target: Full connection config; supplies warehouse/database/
                schema/role for the login request

        Raises:
            ConfigurationError: If account or user is blank
            AuthError: If the login fails
        """
        if not account or not account.strip():
            raise ConfigurationError("Account cannot be empty.", keys=["account"])
        if not user or not user.strip():
            raise ConfigurationError("User cannot be empty.", keys=["user"])

        errors = auth.validation_errors()
        if errors:
            field, _ = errors[0]
            raise AuthError(
                "Invalid authentication configuration: " + ", ".join(m for _, m in errors),
                AuthErrorReason.INVALID_CREDENTIALS,
                method=auth.type.value,
                field=field,
            )

        authenticator = self._authenticators.get(auth.type)
        if authenticator is None:
            raise ConfigurationError(
                f"Authentication type {auth.type.value} is not supported.",
                keys=["authenticator"],
            )

        token = await authenticator.authenticate(account, user, auth, target)
        self._issued[token.access_token] = token
        logger.debug("Issued %s token for %s@%s", auth.type.value, user, account)
        return token

    async def refresh(
        self,
        token: AuthenticationToken,
        auth: Optional[AuthenticationConfig] = None,
    ) -> AuthenticationToken:
        """
        Exchange the token's refresh credential for a new token.

        The old token is not mutated; it is forgotten and the new one recorded.

        Raises:
            AuthError: NOT_REFRESHABLE if the token carries no refresh token
        """
        if not token.can_refresh:
            raise AuthError(
                "Token cannot be refreshed. No refresh token available.",
                AuthErrorReason.NOT_REFRESHABLE,
                method=token.method,
                field="oauth_refresh_token",
            )

        oauth = self._authenticators.get(AuthenticationType.OAUTH)
        if not isinstance(oauth, OAuthAuthenticator):
            raise AuthError(
                "No OAuth authenticator is configured for token refresh.",
                AuthErrorReason.NOT_REFRESHABLE,
                method=token.method,
            )

        new_token = await oauth.refresh(token, auth)
        self._issued.pop(token.access_token, None)
        self._issued[new_token.access_token] = new_token
        return new_token

    def invalidate(self, token: AuthenticationToken) -> None:
        """Forget a token locally. No network call is made."""
        self._issued.pop(token.access_token, None)

    def issued_token_count(self) -> int:
        return len(self._issued)
