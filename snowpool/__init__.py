"""
snowpool

Pooled, authenticated Snowflake sessions over HTTPS.
"""

from snowpool.config import __version__, configure_logging, settings
from snowpool.core import (
    AuthenticationService,
    PooledSession,
    PoolManager,
    SnowflakeConnection,
    SnowflakeDatabase,
    parse_connection_string,
    parse_parameters,
)
from snowpool.errors import (
    AuthError,
    AuthErrorReason,
    CapacityExhaustedError,
    ConfigurationError,
    SessionInvalidError,
    SnowpoolError,
    TeardownInProgressError,
)
from snowpool.models import (
    AuthenticationConfig,
    AuthenticationToken,
    AuthenticationType,
    ConnectionConfig,
    ConnectionPoolConfig,
    PoolOverflowPolicy,
    PoolStatistics,
)

__all__ = [
    "AuthError",
    "AuthErrorReason",
    "AuthenticationConfig",
    "AuthenticationService",
    "AuthenticationToken",
    "AuthenticationType",
    "CapacityExhaustedError",
    "ConfigurationError",
    "ConnectionConfig",
    "ConnectionPoolConfig",
    "PoolManager",
    "PoolOverflowPolicy",
    "PoolStatistics",
    "PooledSession",
    "SessionInvalidError",
    "SnowflakeConnection",
    "SnowflakeDatabase",
    "SnowpoolError",
    "TeardownInProgressError",
    "__version__",
    "configure_logging",
    "parse_connection_string",
    "parse_parameters",
    "settings",
]
