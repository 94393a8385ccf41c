"""
Pooled session: one authenticated handle bound to one capacity unit.

A session is owned by exactly one of {the borrowing caller, its pool's idle
stack} at any time. The query layer reads `token` to build request headers
and reports failures back to the pool via release/invalidate.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Callable, Optional

from snowpool.errors import SessionInvalidError
from snowpool.models.connection import ConnectionConfig
from snowpool.models.token import AuthenticationToken, utcnow


class PooledSession:
    """
    Authenticated session tracked by a PoolEntry.

    Attributes:
        session_id: Stable unique identifier
        config: Connection config of the target this session belongs to
        created_at: When the session was authenticated
        last_used_at: Last successful validation (checkout)
    """

    def __init__(
        self,
        token: AuthenticationToken,
        config: ConnectionConfig,
        *,
        session_id: Optional[str] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session_id = session_id or str(uuid.uuid4())
        self.config = config
        self._token = token
        self._clock = clock
        self.created_at = clock()
        self.last_used_at = self.created_at
        self._disposed = False

    def __repr__(self) -> str:
        return (
            f"<PooledSession {self.session_id} pool={self.pool_key} "
            f"disposed={self._disposed}>"
        )

    @property
    def pool_key(self) -> str:
        return self.config.pool_key

    @property
    def identity(self) -> tuple[str, ...]:
        return self.config.identity

    @property
    def token(self) -> AuthenticationToken:
        return self._token

    @property
    def disposed(self) -> bool:
        return self._disposed

    def age(self, now: Optional[datetime] = None) -> float:
        return ((now or self._clock()) - self.created_at).total_seconds()

    def idle_time(self, now: Optional[datetime] = None) -> float:
        return ((now or self._clock()) - self.last_used_at).total_seconds()

    def invalid_reason(self, now: Optional[datetime] = None) -> Optional[str]:
        """Why the session may not be used, or None if it is valid."""
        now = now or self._clock()
        if self._disposed:
            return "disposed"
        if self._token.is_expired(now):
            return "token expired"
        if self.age(now) >= self.config.pool.max_connection_lifetime:
            return "exceeded max lifetime"
        return None

    def is_valid(self, now: Optional[datetime] = None) -> bool:
        return self.invalid_reason(now) is None

    @property
    def valid(self) -> bool:
        return self.is_valid()

    def ensure_valid(self, now: Optional[datetime] = None) -> None:
        """Raise SessionInvalidError unless the session can be handed out."""
        reason = self.invalid_reason(now)
        if reason is not None:
            raise SessionInvalidError(self.session_id, reason)

    def touch(self, now: Optional[datetime] = None) -> None:
        self.last_used_at = now or self._clock()

    def replace_token(self, token: AuthenticationToken) -> None:
        """Swap in a refreshed token; tokens are immutable so no lock is needed."""
        self._token = token

    def dispose(self) -> bool:
        """Mark the session unusable. Returns False if it was already disposed."""
        if self._disposed:
            return False
        self._disposed = True
        return True
