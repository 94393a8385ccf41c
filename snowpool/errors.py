"""
Driver exceptions.

Callers see a usable session, a CapacityExhaustedError, an AuthError or a
TeardownInProgressError. SessionInvalidError never leaves the pool.
"""

from enum import Enum
from typing import Optional


class SnowpoolError(Exception):
    """Base class for all driver errors."""


class ConfigurationError(SnowpoolError, ValueError):
    """Raised when connection parameters are missing or malformed."""

    def __init__(self, message: str, keys: Optional[list[str]] = None):
        super().__init__(message)
        self.keys = list(keys or [])


class CapacityExhaustedError(SnowpoolError):
    """Raised when no idle session and no capacity unit became available in time."""

    def __init__(self, pool_key: str, max_pool_size: int, timeout: Optional[float]):
        if timeout is None or timeout <= 0:
            detail = "no capacity available"
        else:
            detail = f"timed out after {timeout:.1f}s waiting for capacity"
        super().__init__(f"Session pool exhausted (max: {max_pool_size}): {detail}")
        self.pool_key = pool_key
        self.max_pool_size = max_pool_size
        self.timeout = timeout


class AuthErrorReason(str, Enum):
    """Why a login or refresh failed."""

    INVALID_CREDENTIALS = "invalid_credentials"
    NOT_REFRESHABLE = "not_refreshable"
    PROTOCOL_FAILURE = "protocol_failure"


class AuthError(SnowpoolError):
    """
    Raised when a login or token refresh fails.

    Attributes:
        reason: AuthErrorReason classification
        method: Authentication method that failed (e.g. "snowflake_jwt")
        field: Credential field that was rejected, when known
    """

    def __init__(
        self,
        message: str,
        reason: AuthErrorReason = AuthErrorReason.PROTOCOL_FAILURE,
        *,
        method: Optional[str] = None,
        field: Optional[str] = None,
    ):
        super().__init__(message)
        self.reason = reason
        self.method = method
        self.field = field

    def __str__(self) -> str:
        base = super().__str__()
        if self.field:
            return f"{base} (field: {self.field})"
        return base


class SessionInvalidError(SnowpoolError):
    """Raised by PooledSession.ensure_valid(); handled inside the pool during reuse."""

    def __init__(self, session_id: str, reason: str):
        super().__init__(f"Session {session_id} is no longer usable: {reason}")
        self.session_id = session_id
        self.reason = reason


class TeardownInProgressError(SnowpoolError):
    """Raised when a session is requested after the pool manager was shut down."""
