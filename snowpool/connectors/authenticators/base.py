"""
Base Authenticator

Shared login plumbing for every protocol: account URL construction, the
login-request envelope, HTTP error mapping and login-response parsing.
Subclasses only contribute their method-specific request fields.
"""

from __future__ import annotations

import logging
import platform
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Any, Callable, Optional

import httpx

from snowpool.config import settings
from snowpool.errors import AuthError, AuthErrorReason
from snowpool.models.connection import AuthenticationConfig, ConnectionConfig
from snowpool.models.token import AuthenticationToken, utcnow

logger = logging.getLogger(__name__)

LOGIN_ENDPOINT = "/session/v1/login-request"
AUTHENTICATOR_ENDPOINT = "/session/authenticator-request"
TOKEN_ENDPOINT = "/oauth/token-request"


def account_url(account: str) -> str:
    """Base URL for an account (accounts with a dot are already host names)."""
    if "." in account:
        return f"https://{account}"
    return f"https://{account}.{settings.SNOWFLAKE_HOST_SUFFIX}"


def client_environment() -> dict[str, str]:
    return {
        "APPLICATION": settings.SNOWFLAKE_CLIENT_APP_ID,
        "OS": platform.system(),
        "OS_VERSION": platform.platform(),
        "PYTHON_VERSION": platform.python_version(),
        "PYTHON_RUNTIME": platform.python_implementation(),
    }


class BaseAuthenticator(ABC):
    """
    Abstract login protocol.

    Every protocol returns an AuthenticationToken of the same shape so the
    pool never needs to know which method produced a session.
    """

    method: str = ""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        *,
        login_timeout: Optional[float] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._http = http_client
        self._login_timeout = (
            float(login_timeout)
            if login_timeout is not None
            else float(settings.SNOWFLAKE_CONNECT_LOGIN_TIMEOUT)
        )
        self._clock = clock

    def __repr__(self) -> str:
        return f"<{type(self).__name__} method={self.method}>"

    @abstractmethod
    async def authenticate(
        self,
        account: str,
        user: str,
        auth: AuthenticationConfig,
        target: Optional[ConnectionConfig] = None,
    ) -> AuthenticationToken:
        """
        Perform the login handshake.

        Raises:
            AuthError: On rejected credentials, unreachable endpoint or
                malformed response
        """

    # ------------------------------------------------------------------
    # Request helpers
    # ------------------------------------------------------------------

    def _error(
        self,
        message: str,
        reason: AuthErrorReason = AuthErrorReason.PROTOCOL_FAILURE,
        field: Optional[str] = None,
    ) -> AuthError:
        return AuthError(message, reason, method=self.method, field=field)

    @staticmethod
    def _login_params(target: Optional[ConnectionConfig]) -> dict[str, str]:
        params: dict[str, str] = {}
        if target is not None:
            if target.warehouse:
                params["warehouse"] = target.warehouse
            if target.database_name:
                params["databaseName"] = target.database_name
            if target.schema_name:
                params["schemaName"] = target.schema_name
            if target.role:
                params["roleName"] = target.role
        params["requestId"] = str(uuid.uuid4())
        params["request_guid"] = str(uuid.uuid4())
        return params

    @staticmethod
    def _login_body(account: str, user: str, **fields: Any) -> dict[str, Any]:
        data: dict[str, Any] = {
            "CLIENT_APP_ID": settings.SNOWFLAKE_CLIENT_APP_ID,
            "CLIENT_APP_VERSION": settings.SNOWFLAKE_CLIENT_APP_VERSION,
            "ACCOUNT_NAME": account,
            "LOGIN_NAME": user,
            "CLIENT_ENVIRONMENT": client_environment(),
            "SESSION_PARAMETERS": {},
        }
        data.update(fields)
        return {"data": data}

    async def _post(
        self,
        url: str,
        *,
        field: Optional[str],
        json: Optional[dict[str, Any]] = None,
        data: Optional[dict[str, str]] = None,
        params: Optional[dict[str, str]] = None,
        auth: Optional[tuple[str, str]] = None,
    ) -> dict[str, Any]:
        """POST and decode a JSON object, mapping every failure to AuthError."""
        headers = {
            "Accept": "application/json",
            "User-Agent": (
                f"{settings.SNOWFLAKE_CLIENT_APP_ID}/{settings.SNOWFLAKE_CLIENT_APP_VERSION}"
            ),
        }
        try:
            response = await self._http.post(
                url,
                json=json,
                data=data,
                params=params,
                auth=auth,
                headers=headers,
                timeout=self._login_timeout,
            )
        except httpx.TimeoutException as exc:
            raise self._error(
                f"Login endpoint did not respond within {self._login_timeout:.0f}s"
            ) from exc
        except httpx.HTTPError as exc:
            # Sanitize: do not include request details in the message
            raise self._error(f"Failed to reach login endpoint: {type(exc).__name__}") from exc

        if response.status_code in (400, 401, 403):
            raise self._error(
                f"Credentials rejected with HTTP {response.status_code}",
                AuthErrorReason.INVALID_CREDENTIALS,
                field,
            )
        if response.status_code >= 300:
            raise self._error(f"Login endpoint returned HTTP {response.status_code}")

        try:
            payload = response.json()
        except ValueError as exc:
            raise self._error("Login endpoint returned a non-JSON response") from exc

        if not isinstance(payload, dict):
            raise self._error("Login endpoint returned an unexpected JSON document")
        return payload

    async def _login(
        self,
        account: str,
        user: str,
        target: Optional[ConnectionConfig],
        *,
        field: Optional[str],
        **fields: Any,
    ) -> AuthenticationToken:
        payload = await self._post(
            f"{account_url(account)}{LOGIN_ENDPOINT}",
            json=self._login_body(account, user, **fields),
            params=self._login_params(target),
            field=field,
        )
        return self._token_from_login(payload, field=field)

    # ------------------------------------------------------------------
    # Response parsing
    # ------------------------------------------------------------------

    def _validity(self, data: dict[str, Any]) -> int:
        raw = data.get("masterValidityInSeconds", data.get("masterTokenValidityInSeconds"))
        if isinstance(raw, bool):
            raw = None
        if isinstance(raw, int):
            return raw
        if isinstance(raw, (float, str)):
            try:
                return int(float(raw))
            except ValueError:
                pass
        return settings.SNOWFLAKE_DEFAULT_MASTER_VALIDITY_SECONDS

    def _token_from_login(
        self, payload: dict[str, Any], *, field: Optional[str], **extra: Any
    ) -> AuthenticationToken:
        if not payload.get("success", False):
            message = payload.get("message") or "Authentication failed."
            code = payload.get("code")
            if code:
                message = f"{message} (code {code})"
            raise self._error(
                f"Login rejected: {message}", AuthErrorReason.INVALID_CREDENTIALS, field
            )

        data = payload.get("data")
        if not isinstance(data, dict):
            raise self._error("Login response carried no data")

        token = data.get("token")
        if not token:
            raise self._error("No token received from login response")

        session_id = data.get("sessionId")
        expires_at = self._clock() + timedelta(seconds=self._validity(data))

        logger.debug("%s login succeeded (session %s)", self.method, session_id)
        return AuthenticationToken(
            access_token=str(token),
            expires_at=expires_at,
            token_type="Snowflake",
            method=self.method,
            session_token=str(data.get("sessionToken") or token),
            master_token=data.get("masterToken"),
            session_id=str(session_id) if session_id is not None else None,
            **extra,
        )
