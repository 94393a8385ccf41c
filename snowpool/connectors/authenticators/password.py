"""
Password Authenticator

Single login request carrying account, user and password.
"""

from typing import Optional

from snowpool.connectors.authenticators.base import BaseAuthenticator
from snowpool.errors import AuthErrorReason
from snowpool.models.connection import (
    AuthenticationConfig,
    AuthenticationType,
    ConnectionConfig,
)
from snowpool.models.token import AuthenticationToken


class PasswordAuthenticator(BaseAuthenticator):
    """Username/password login."""

    method = AuthenticationType.PASSWORD.value

    async def authenticate(
        self,
        account: str,
        user: str,
        auth: AuthenticationConfig,
        target: Optional[ConnectionConfig] = None,
    ) -> AuthenticationToken:
        if not auth.password:
            raise self._error(
                "Password cannot be empty.", AuthErrorReason.INVALID_CREDENTIALS, "password"
            )

        return await self._login(
            account,
            user,
            target,
            field="password",
            AUTHENTICATOR="SNOWFLAKE",
            PASSWORD=auth.password,
        )
