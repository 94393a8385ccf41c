"""
Session Pool Manager

Maps each target identity to its PoolEntry, creating entries on first use,
and runs the background reclamation sweep. A manager is owned by the
database-level object that constructs it and is torn down with shutdown();
there is no module-level default instance.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Callable, Optional

from snowpool.config import settings
from snowpool.core.authentication import AuthenticationService
from snowpool.core.pool_entry import LivenessCheck, PoolEntry
from snowpool.core.session import PooledSession
from snowpool.errors import AuthError, TeardownInProgressError
from snowpool.models.connection import ConnectionConfig
from snowpool.models.pool_stats import PoolStatistics
from snowpool.models.token import utcnow

logger = logging.getLogger(__name__)


class PoolManager:
    """
    Registry of per-target session pools.

    Usage:
        manager = PoolManager(auth_service)
        async with manager.session(config) as session:
            headers = {"Authorization": f'Snowflake Token="{session.token.access_token}"'}
        await manager.shutdown()
    """

    def __init__(
        self,
        auth_service: AuthenticationService,
        *,
        clock: Callable[[], datetime] = utcnow,
        liveness_check: Optional[LivenessCheck] = None,
        cleanup_interval: Optional[float] = None,
    ):
        self._auth = auth_service
        self._clock = clock
        self._liveness_check = liveness_check
        self._cleanup_override = float(cleanup_interval) if cleanup_interval is not None else None

        self._entries: dict[tuple[str, ...], PoolEntry] = {}
        self._cleanup_task: Optional[asyncio.Task] = None
        self._shutdown = False

    @property
    def is_shutdown(self) -> bool:
        return self._shutdown

    def entry(self, config: ConnectionConfig) -> PoolEntry:
        """Return the PoolEntry for config's target identity, creating it if needed."""
        if self._shutdown:
            raise TeardownInProgressError("Session pool manager is shut down")

        key = config.identity
        entry = self._entries.get(key)
        if entry is None:
            entry = PoolEntry(
                config,
                self._create_session,
                on_dispose=self._on_dispose,
                liveness_check=self._liveness_check,
                clock=self._clock,
            )
            self._entries[key] = entry
            logger.info(
                "[%s] Created session pool (max=%d)", entry.pool_key, entry.max_pool_size
            )
        return entry

    # ------------------------------------------------------------------
    # Checkout
    # ------------------------------------------------------------------

    async def acquire(
        self, config: ConnectionConfig, timeout: Optional[float] = None
    ) -> PooledSession:
        """
        Borrow a session for config's target identity.

        Args:
            config: Target identity, credentials and pool sizing. The first
                config seen for an identity fixes that pool's sizing.
            timeout: Seconds to wait for capacity (defaults to connection_timeout)

        Raises:
            CapacityExhaustedError: Pool full for longer than timeout
            AuthError: Login failed while creating a session
            TeardownInProgressError: Manager was shut down
        """
        entry = self.entry(config)
        self._ensure_cleanup_task()
        session, _ = await entry.acquire(timeout)
        return session

    def release(self, session: PooledSession) -> None:
        entry = self._entries.get(session.identity)
        if entry is None:
            logger.warning(
                "[%s] Ignoring release of session %s with no pool",
                session.pool_key,
                session.session_id,
            )
            return
        entry.release(session)

    def invalidate(self, session: PooledSession) -> None:
        entry = self._entries.get(session.identity)
        if entry is None:
            logger.warning(
                "[%s] Ignoring invalidate of session %s with no pool",
                session.pool_key,
                session.session_id,
            )
            return
        entry.invalidate(session)

    @asynccontextmanager
    async def session(
        self, config: ConnectionConfig, timeout: Optional[float] = None
    ) -> AsyncIterator[PooledSession]:
        """
        Borrow a session for the duration of an async with block.

        The session is invalidated instead of released if the block raises
        AuthError, since the server no longer accepts its token.
        """
        session = await self.acquire(config, timeout)
        try:
            yield session
        except AuthError:
            self.invalidate(session)
            raise
        except BaseException:
            self.release(session)
            raise
        else:
            self.release(session)

    async def refresh_session(self, session: PooledSession) -> PooledSession:
        """
        Swap a refreshed token into a borrowed session.

        Only the current borrower may call this.

        Raises:
            AuthError: NOT_REFRESHABLE if the token has no refresh credential
        """
        old_token = session.token
        new_token = await self._auth.refresh(old_token, session.config.authentication)
        session.replace_token(new_token)
        logger.debug("[%s] Refreshed token for session %s", session.pool_key, session.session_id)
        return session

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------

    def statistics(self) -> PoolStatistics:
        return PoolStatistics.from_entries([e.stats() for e in list(self._entries.values())])

    # ------------------------------------------------------------------
    # Reclamation
    # ------------------------------------------------------------------

    def sweep(self, now: Optional[datetime] = None) -> int:
        """Run one reclamation pass over every entry. Returns sessions evicted."""
        now = now or self._clock()
        evicted = 0
        for entry in list(self._entries.values()):
            try:
                count = entry.sweep(now)
            except Exception as e:
                logger.warning("[%s] Reclamation sweep failed: %s", entry.pool_key, e)
                continue
            if count:
                logger.info("[%s] Evicted %d idle session(s)", entry.pool_key, count)
            evicted += count
        return evicted

    @property
    def cleanup_interval(self) -> float:
        """
        Seconds between reclamation passes.

        An explicit constructor value wins; otherwise the shortest
        cleanup_interval among the pools' configs, or the settings default
        before any pool exists.
        """
        if self._cleanup_override is not None:
            return self._cleanup_override
        intervals = [e.config.pool.cleanup_interval for e in list(self._entries.values())]
        if not intervals:
            return float(settings.SNOWFLAKE_POOL_CLEANUP_INTERVAL)
        return float(min(intervals))

    def _ensure_cleanup_task(self) -> None:
        if self._cleanup_task is None or self._cleanup_task.done():
            self._cleanup_task = asyncio.create_task(self._cleanup_loop())

    async def _cleanup_loop(self) -> None:
        logger.debug("Reclamation loop started (interval=%.2fs)", self.cleanup_interval)
        while not self._shutdown:
            await asyncio.sleep(self.cleanup_interval)
            try:
                self.sweep()
            except Exception as e:
                logger.warning("Reclamation sweep failed: %s", e)

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    async def shutdown(self) -> None:
        """
        Stop the reclamation loop and dispose every session in every pool.

        Safe to call more than once. Borrowed sessions become invalid; their
        borrowers' later release() calls return the capacity.
        """
        if self._shutdown:
            return
        self._shutdown = True

        task = self._cleanup_task
        self._cleanup_task = None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        disposed = 0
        for entry in list(self._entries.values()):
            disposed += entry.close()
        logger.info(
            "Session pool manager shut down (%d pool(s), %d session(s) disposed)",
            len(self._entries),
            disposed,
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _create_session(self, config: ConnectionConfig) -> PooledSession:
        token = await self._auth.authenticate(
            config.account, config.user, config.authentication, config
        )
        return PooledSession(token, config, clock=self._clock)

    def _on_dispose(self, session: PooledSession) -> None:
        self._auth.invalidate(session.token)
        logger.debug("[%s] Disposed session %s", session.pool_key, session.session_id)
