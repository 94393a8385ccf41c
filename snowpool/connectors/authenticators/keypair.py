"""
Key-Pair (JWT) Authenticator

Loads an RSA private key, derives the public key fingerprint and submits a
short-lived RS256 JSON Web Token as the login credential.

JWT claims:
    iss: ACCOUNT.USER.SHA256:<base64 sha256 of the DER SubjectPublicKeyInfo>
    sub: ACCOUNT.USER
    iat/exp: issue time and issue time + SNOWFLAKE_JWT_LIFETIME_SECONDS

ACCOUNT is the upper-cased account locator without any region or cloud
suffix (everything before the first dot).
"""

from __future__ import annotations

import asyncio
import base64
import hashlib
import logging
from datetime import datetime, timedelta
from pathlib import Path
from typing import Optional

import jwt
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey

from snowpool.config import settings
from snowpool.connectors.authenticators.base import BaseAuthenticator
from snowpool.errors import AuthError, AuthErrorReason
from snowpool.models.connection import (
    AuthenticationConfig,
    AuthenticationType,
    ConnectionConfig,
)
from snowpool.models.token import AuthenticationToken

logger = logging.getLogger(__name__)

_METHOD = AuthenticationType.KEY_PAIR.value


def load_private_key(path: str, passphrase: Optional[str] = None) -> RSAPrivateKey:
    """
    Load a PEM-encoded RSA private key.

    Raises:
        AuthError: If the file is missing, the key cannot be parsed, the
            passphrase is wrong, or the key is not RSA
    """
    key_path = Path(path).expanduser()
    try:
        pem = key_path.read_bytes()
    except OSError as exc:
        raise AuthError(
            f"Private key file could not be read: {key_path}",
            AuthErrorReason.INVALID_CREDENTIALS,
            method=_METHOD,
            field="private_key_path",
        ) from exc

    password = passphrase.encode("utf-8") if passphrase else None
    try:
        key = serialization.load_pem_private_key(pem, password=password)
    except TypeError as exc:
        # Encrypted key without passphrase, or passphrase for an unencrypted key.
        raise AuthError(
            "Private key passphrase does not match the key's encryption",
            AuthErrorReason.INVALID_CREDENTIALS,
            method=_METHOD,
            field="private_key_passphrase",
        ) from exc
    except ValueError as exc:
        field = "private_key_passphrase" if password else "private_key_path"
        raise AuthError(
            "Private key could not be decoded (bad format or wrong passphrase)",
            AuthErrorReason.INVALID_CREDENTIALS,
            method=_METHOD,
            field=field,
        ) from exc

    if not isinstance(key, RSAPrivateKey):
        raise AuthError(
            "Private key is not an RSA key",
            AuthErrorReason.INVALID_CREDENTIALS,
            method=_METHOD,
            field="private_key_path",
        )
    return key


def public_key_fingerprint(private_key: RSAPrivateKey) -> str:
    der = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    digest = hashlib.sha256(der).digest()
    return "SHA256:" + base64.b64encode(digest).decode("ascii")


def build_login_jwt(
    account: str,
    user: str,
    private_key: RSAPrivateKey,
    *,
    now: datetime,
    lifetime_seconds: int = settings.SNOWFLAKE_JWT_LIFETIME_SECONDS,
) -> str:
    """Build the RS256-signed JWT submitted as the login credential."""
    qualified_user = f"{account.split('.')[0].upper()}.{user.upper()}"
    issued_at = int(now.timestamp())
    payload = {
        "iss": f"{qualified_user}.{public_key_fingerprint(private_key)}",
        "sub": qualified_user,
        "iat": issued_at,
        "exp": issued_at + int(lifetime_seconds),
    }
    return jwt.encode(payload, private_key, algorithm="RS256")


class KeyPairAuthenticator(BaseAuthenticator):
    """RSA key-pair login."""

    method = _METHOD

    def __init__(self, *args, jwt_lifetime: Optional[int] = None, **kwargs):
        super().__init__(*args, **kwargs)
        self._jwt_lifetime = (
            int(jwt_lifetime)
            if jwt_lifetime is not None
            else settings.SNOWFLAKE_JWT_LIFETIME_SECONDS
        )

    async def authenticate(
        self,
        account: str,
        user: str,
        auth: AuthenticationConfig,
        target: Optional[ConnectionConfig] = None,
    ) -> AuthenticationToken:
        if not auth.private_key_path:
            raise self._error(
                "Private key path cannot be empty.",
                AuthErrorReason.INVALID_CREDENTIALS,
                "private_key_path",
            )

        private_key = await asyncio.to_thread(
            load_private_key, auth.private_key_path, auth.private_key_passphrase
        )
        token = build_login_jwt(
            account,
            user,
            private_key,
            now=self._clock(),
            lifetime_seconds=self._jwt_lifetime,
        )
        logger.debug(
            "Built login JWT for %s (valid %s)", user, timedelta(seconds=self._jwt_lifetime)
        )

        return await self._login(
            account,
            user,
            target,
            field="private_key",
            AUTHENTICATOR="SNOWFLAKE_JWT",
            TOKEN=token,
        )
