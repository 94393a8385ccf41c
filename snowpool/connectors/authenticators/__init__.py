"""
Authenticators

Factory and exports for the login protocols.
"""

from datetime import datetime
from typing import Callable, Optional

import httpx

from snowpool.connectors.authenticators.base import BaseAuthenticator, account_url
from snowpool.connectors.authenticators.keypair import KeyPairAuthenticator
from snowpool.connectors.authenticators.oauth import OAuthAuthenticator
from snowpool.connectors.authenticators.password import PasswordAuthenticator
from snowpool.connectors.authenticators.sso import SsoAuthenticator
from snowpool.models.connection import AuthenticationType
from snowpool.models.token import utcnow


def create_authenticators(
    http_client: httpx.AsyncClient,
    *,
    login_timeout: Optional[float] = None,
    clock: Callable[[], datetime] = utcnow,
    browser_opener: Optional[Callable[[str], bool]] = None,
) -> dict[AuthenticationType, BaseAuthenticator]:
    """
    Build one authenticator per AuthenticationType, sharing a single HTTP client.

    Args:
        http_client: Shared httpx.AsyncClient
        login_timeout: Per-request timeout for login calls
        clock: Source of "now" for token expiry
        browser_opener: Override for opening the SSO URL; called in a worker
            thread

    Returns:
        Mapping used by AuthenticationService to dispatch by method
    """
    common = {"login_timeout": login_timeout, "clock": clock}
    sso_kwargs = dict(common)
    if browser_opener is not None:
        sso_kwargs["browser_opener"] = browser_opener

    sso = SsoAuthenticator(http_client, **sso_kwargs)
    return {
        AuthenticationType.PASSWORD: PasswordAuthenticator(http_client, **common),
        AuthenticationType.KEY_PAIR: KeyPairAuthenticator(http_client, **common),
        AuthenticationType.OAUTH: OAuthAuthenticator(http_client, **common),
        AuthenticationType.SSO: sso,
        AuthenticationType.EXTERNAL_BROWSER: sso,
    }


__all__ = [
    "BaseAuthenticator",
    "KeyPairAuthenticator",
    "OAuthAuthenticator",
    "PasswordAuthenticator",
    "SsoAuthenticator",
    "account_url",
    "create_authenticators",
]
