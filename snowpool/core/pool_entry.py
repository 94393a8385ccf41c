"""
Per-target session pool.

One PoolEntry exists per target identity. Admission goes through a FIFO
capacity gate sized to max_pool_size: a unit is taken before any session
occupies a slot and given back only when that session is disposed, so

    active + idle + creating <= max_pool_size

holds at every await point. A caller waiting on the gate is served, oldest
first, either by a freed capacity unit or directly by a released session
(which keeps its unit). The idle stack is a deque used LIFO; pops and
pushes never await, which makes each pop-and-decide step atomic with
respect to other tasks without a pool-wide lock.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from datetime import datetime
from typing import Awaitable, Callable, Optional

from snowpool.core.session import PooledSession
from snowpool.errors import (
    CapacityExhaustedError,
    SessionInvalidError,
    TeardownInProgressError,
)
from snowpool.models.connection import ConnectionConfig, PoolOverflowPolicy
from snowpool.models.pool_stats import PoolEntryStatistics
from snowpool.models.token import utcnow

logger = logging.getLogger(__name__)

SessionFactory = Callable[[ConnectionConfig], Awaitable[PooledSession]]
LivenessCheck = Callable[[PooledSession], bool]


class PoolEntry:
    """
    Capacity gate, idle stack and active accounting for one target identity.

    Attributes:
        pool_key: Target identity string
        config: Connection config the entry was created with
        created/closed/reused: Lifetime counters
    """

    def __init__(
        self,
        config: ConnectionConfig,
        create_session: SessionFactory,
        *,
        on_dispose: Optional[Callable[[PooledSession], None]] = None,
        liveness_check: Optional[LivenessCheck] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.config = config
        self.pool_key = config.pool_key
        self.max_pool_size = int(config.pool.max_pool_size)

        self._create_session = create_session
        self._on_dispose = on_dispose
        self._liveness_check = liveness_check
        self._clock = clock

        # Capacity gate: free units plus FIFO waiters. A waiter's future
        # resolves to None (a unit was handed over) or to a released session.
        self._available = self.max_pool_size
        self._waiters: deque[asyncio.Future] = deque()

        self._idle: deque[PooledSession] = deque()
        self._active: dict[str, PooledSession] = {}
        self._creating = 0
        self._closed = False

        self.created = 0
        self.closed = 0
        self.reused = 0

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def active_count(self) -> int:
        return len(self._active)

    @property
    def idle_count(self) -> int:
        return len(self._idle)

    @property
    def held_units(self) -> int:
        """Capacity units currently taken from the gate."""
        return self.max_pool_size - self._available

    @property
    def waiting_count(self) -> int:
        return sum(1 for w in self._waiters if not w.done())

    @property
    def is_closed(self) -> bool:
        return self._closed

    def stats(self) -> PoolEntryStatistics:
        return PoolEntryStatistics(
            pool_key=self.pool_key,
            max_pool_size=self.max_pool_size,
            total=self.held_units,
            active=len(self._active),
            idle=len(self._idle),
            creating=self._creating,
            waiting=self.waiting_count,
            created=self.created,
            closed=self.closed,
            reused=self.reused,
        )

    # ------------------------------------------------------------------
    # Acquire / release
    # ------------------------------------------------------------------

    async def acquire(self, timeout: Optional[float] = None) -> tuple[PooledSession, bool]:
        """
        Check out a session.

        Args:
            timeout: Max seconds to wait for capacity (defaults to the pool's
                connection_timeout). Cancelling the calling task aborts the wait.

        Returns:
            (session, reused)

        Raises:
            CapacityExhaustedError: No capacity became available in time
            TeardownInProgressError: The entry was closed
            AuthError: Creating a new session failed
        """
        if self._closed:
            raise TeardownInProgressError(f"Pool {self.pool_key} is shut down")

        session = self._pop_reusable()
        if session is not None:
            return self._checkout(session, reused=True), True

        handed = await self._reserve(timeout)
        if handed is not None:
            if self._closed:
                self._dispose(handed)
                self._release_unit()
                raise TeardownInProgressError(f"Pool {self.pool_key} is shut down")
            handed.touch()
            return self._checkout(handed, reused=True), True

        session = self._pop_reusable() if not self._closed else None
        if session is not None:
            # The idle session already owns a slot; give ours back.
            self._release_unit()
            return self._checkout(session, reused=True), True

        try:
            if self._closed:
                raise TeardownInProgressError(f"Pool {self.pool_key} is shut down")
            self._creating += 1
            try:
                session = await self._create_session(self.config)
            finally:
                self._creating -= 1
        except BaseException as e:
            self._release_unit()
            if not isinstance(e, (TeardownInProgressError, asyncio.CancelledError)):
                logger.error("[%s] Failed to create session: %s", self.pool_key, e)
            raise

        self.created += 1
        if self._closed:
            self._dispose(session)
            self._release_unit()
            raise TeardownInProgressError(f"Pool {self.pool_key} is shut down")

        logger.debug("[%s] Created session %s", self.pool_key, session.session_id)
        return self._checkout(session, reused=False), False

    def release(self, session: PooledSession) -> None:
        """Return a borrowed session; it is recycled if still valid, else disposed."""
        if self._active.pop(session.session_id, None) is None:
            logger.warning(
                "[%s] Ignoring release of session %s that is not checked out",
                self.pool_key,
                session.session_id,
            )
            return

        now = self._clock()
        if (
            not self._closed
            and session.is_valid(now)
            and session.age(now) < self.config.pool.max_connection_lifetime
        ):
            session.touch(now)
            self._recycle(session)
            return

        self._dispose(session)
        self._release_unit()

    def invalidate(self, session: PooledSession) -> None:
        """Dispose a borrowed session unconditionally and free its capacity unit."""
        if self._active.pop(session.session_id, None) is None:
            logger.warning(
                "[%s] Ignoring invalidate of session %s that is not checked out",
                self.pool_key,
                session.session_id,
            )
            return

        logger.debug("[%s] Invalidating session %s", self.pool_key, session.session_id)
        self._dispose(session)
        self._release_unit()

    # ------------------------------------------------------------------
    # Reclamation / teardown
    # ------------------------------------------------------------------

    def sweep(self, now: Optional[datetime] = None) -> int:
        """
        Evict idle sessions past idle_timeout or max lifetime, or otherwise invalid.

        Returns:
            Number of sessions evicted
        """
        if not self._idle:
            return 0

        now = now or self._clock()
        idle_timeout = self.config.pool.idle_timeout
        max_lifetime = self.config.pool.max_connection_lifetime

        survivors: list[PooledSession] = []
        evicted = 0
        while self._idle:
            session = self._idle.pop()
            if (
                session.idle_time(now) > idle_timeout
                or session.age(now) > max_lifetime
                or not session.is_valid(now)
            ):
                try:
                    self._dispose(session)
                except Exception as e:
                    logger.warning(
                        "[%s] Error disposing session %s: %s",
                        self.pool_key,
                        session.session_id,
                        e,
                    )
                finally:
                    self._release_unit()
                evicted += 1
            else:
                survivors.append(session)

        # Survivors were popped newest-first; put them back oldest at the bottom.
        self._idle.extendleft(survivors)
        return evicted

    def close(self) -> int:
        """
        Dispose every session and fail pending waiters. Borrowed sessions are
        marked unusable; their capacity units return when the borrower
        releases them.

        Returns:
            Number of sessions disposed
        """
        self._closed = True
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_exception(
                    TeardownInProgressError(f"Pool {self.pool_key} is shut down")
                )

        disposed = 0
        while self._idle:
            session = self._idle.pop()
            if self._dispose(session):
                disposed += 1
            self._release_unit()
        for session in list(self._active.values()):
            if self._dispose(session):
                disposed += 1
        return disposed

    # ------------------------------------------------------------------
    # Capacity gate
    # ------------------------------------------------------------------

    async def _reserve(self, timeout: Optional[float]) -> Optional[PooledSession]:
        """
        Take a capacity unit, waiting in FIFO order if none is free.

        Returns:
            None when a unit was taken, or a released session handed over
            while waiting (the session keeps its own unit)
        """
        if timeout is None:
            timeout = self.config.pool.connection_timeout

        if self._available > 0 and not self._waiters:
            self._available -= 1
            return None

        if self.config.pool.overflow_policy == PoolOverflowPolicy.REJECT or timeout <= 0:
            raise CapacityExhaustedError(self.pool_key, self.max_pool_size, None)

        waiter = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        try:
            return await asyncio.wait_for(waiter, timeout=timeout)
        except (TimeoutError, asyncio.CancelledError) as e:
            if waiter.done() and not waiter.cancelled() and waiter.exception() is None:
                # Served and interrupted in the same step; pass it on.
                self._give_back(waiter.result())
            else:
                waiter.cancel()
                try:
                    self._waiters.remove(waiter)
                except ValueError:
                    pass
            if isinstance(e, TimeoutError):
                logger.debug(
                    "[%s] Timed out after %.1fs waiting for capacity", self.pool_key, timeout
                )
                raise CapacityExhaustedError(
                    self.pool_key, self.max_pool_size, timeout
                ) from None
            raise

    def _release_unit(self) -> None:
        """Return one unit to the gate, handing it to the oldest waiter if any."""
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_result(None)
                return
        self._available += 1

    def _recycle(self, session: PooledSession) -> None:
        """Hand a valid session to the oldest waiter, else push it on the idle stack."""
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_result(session)
                return
        self._idle.append(session)

    def _give_back(self, handed: Optional[PooledSession]) -> None:
        if handed is None:
            self._release_unit()
        elif self._closed or not handed.is_valid():
            self._dispose(handed)
            self._release_unit()
        else:
            self._recycle(handed)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _pop_reusable(self) -> Optional[PooledSession]:
        """Pop idle sessions until one validates; invalid ones are disposed."""
        while self._idle:
            session = self._idle.pop()
            try:
                session.ensure_valid()
                if not self._is_live(session):
                    raise SessionInvalidError(session.session_id, "liveness check failed")
            except SessionInvalidError as e:
                logger.debug("[%s] %s", self.pool_key, e)
                self._dispose(session)
                self._release_unit()
                continue
            session.touch()
            return session
        return None

    def _is_live(self, session: PooledSession) -> bool:
        if self._liveness_check is None:
            return True
        try:
            return bool(self._liveness_check(session))
        except Exception as e:
            logger.warning(
                "[%s] Liveness check raised for session %s: %s",
                self.pool_key,
                session.session_id,
                e,
            )
            return False

    def _checkout(self, session: PooledSession, *, reused: bool) -> PooledSession:
        self._active[session.session_id] = session
        if reused:
            self.reused += 1
            logger.debug("[%s] Reusing session %s", self.pool_key, session.session_id)
        return session

    def _dispose(self, session: PooledSession) -> bool:
        if not session.dispose():
            return False
        self.closed += 1
        if self._on_dispose is not None:
            try:
                self._on_dispose(session)
            except Exception as e:
                logger.warning(
                    "[%s] Dispose hook failed for session %s: %s",
                    self.pool_key,
                    session.session_id,
                    e,
                )
        return True
