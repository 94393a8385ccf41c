"""
Database-level entry point.

SnowflakeDatabase holds database-wide default parameters and owns the
shared HTTP client, the AuthenticationService and one PoolManager.
Connections created from it borrow pooled sessions.

Usage:
    async with SnowflakeDatabase({"account": "xy12345", "user": "APP"}) as db:
        async with db.connect({"password": "${SNOWFLAKE_PASSWORD}"}) as conn:
            token = conn.token.access_token
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Mapping, Optional

import httpx

from snowpool.config import settings
from snowpool.connectors.authenticators import create_authenticators
from snowpool.core.authentication import AuthenticationService
from snowpool.core.config_parser import merge_parameters, parse_parameters
from snowpool.core.pool_entry import LivenessCheck
from snowpool.core.pool_manager import PoolManager
from snowpool.core.session import PooledSession
from snowpool.errors import AuthError, SnowpoolError, TeardownInProgressError
from snowpool.models.connection import ConnectionConfig
from snowpool.models.pool_stats import PoolStatistics
from snowpool.models.token import AuthenticationToken, utcnow

logger = logging.getLogger(__name__)


class SnowflakeDatabase:
    """Owns the session pools for every connection opened through it."""

    def __init__(
        self,
        parameters: Optional[Mapping[str, str]] = None,
        *,
        http_client: Optional[httpx.AsyncClient] = None,
        auth_service: Optional[AuthenticationService] = None,
        clock: Callable[[], datetime] = utcnow,
        liveness_check: Optional[LivenessCheck] = None,
        cleanup_interval: Optional[float] = None,
        browser_opener: Optional[Callable[[str], bool]] = None,
    ):
        self._parameters = merge_parameters(parameters or {})

        self._owns_http_client = http_client is None and auth_service is None
        self._http_client = http_client
        if self._owns_http_client:
            self._http_client = httpx.AsyncClient(
                timeout=float(settings.SNOWFLAKE_CONNECT_LOGIN_TIMEOUT)
            )

        if auth_service is None:
            auth_service = AuthenticationService(
                create_authenticators(
                    self._http_client,
                    clock=clock,
                    browser_opener=browser_opener,
                )
            )
        self.auth_service = auth_service
        self.pool_manager = PoolManager(
            auth_service,
            clock=clock,
            liveness_check=liveness_check,
            cleanup_interval=cleanup_interval,
        )
        self._closed = False

    @property
    def parameters(self) -> dict[str, str]:
        return dict(self._parameters)

    @property
    def closed(self) -> bool:
        return self._closed

    def connect(self, parameters: Optional[Mapping[str, str]] = None) -> "SnowflakeConnection":
        """
        Create a connection handle; parameters override the database defaults.

        Raises:
            ConfigurationError: If the merged parameters are invalid
            TeardownInProgressError: If the database was closed
        """
        if self._closed:
            raise TeardownInProgressError("Database is closed")
        config = parse_parameters(merge_parameters(self._parameters, parameters))
        return SnowflakeConnection(config, self.pool_manager)

    def statistics(self) -> PoolStatistics:
        return self.pool_manager.statistics()

    async def close(self) -> None:
        """Shut the pools down and close the HTTP client if this database created it."""
        if self._closed:
            return
        self._closed = True
        await self.pool_manager.shutdown()
        if self._owns_http_client and self._http_client is not None:
            await self._http_client.aclose()
        logger.info("Database closed")

    async def __aenter__(self) -> "SnowflakeDatabase":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()


class SnowflakeConnection:
    """
    One logical connection backed by a pooled session.

    The session is borrowed on open() and returned on close(); a connection
    can be reopened after it was closed.
    """

    def __init__(self, config: ConnectionConfig, pool_manager: PoolManager):
        self.config = config
        self._pool_manager = pool_manager
        self._session: Optional[PooledSession] = None

    @property
    def is_open(self) -> bool:
        return self._session is not None

    @property
    def session(self) -> PooledSession:
        if self._session is None:
            raise SnowpoolError("Connection is not open")
        return self._session

    @property
    def token(self) -> AuthenticationToken:
        return self.session.token

    async def open(self, timeout: Optional[float] = None) -> "SnowflakeConnection":
        if self._session is None:
            self._session = await self._pool_manager.acquire(self.config, timeout)
        return self

    async def refresh_token(self) -> AuthenticationToken:
        """Refresh the session's token in place (OAuth only)."""
        await self._pool_manager.refresh_session(self.session)
        return self.session.token

    def invalidate(self) -> None:
        """Drop the session instead of returning it to the pool."""
        session, self._session = self._session, None
        if session is not None:
            self._pool_manager.invalidate(session)

    async def close(self) -> None:
        session, self._session = self._session, None
        if session is not None:
            self._pool_manager.release(session)

    async def __aenter__(self) -> "SnowflakeConnection":
        return await self.open()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if exc is not None and isinstance(exc, AuthError):
            self.invalidate()
        else:
            await self.close()
