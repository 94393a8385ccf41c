"""
Models

Configuration, token and statistics types shared across the driver.
"""

from snowpool.models.connection import (
    AuthenticationConfig,
    AuthenticationType,
    ConnectionConfig,
    ConnectionPoolConfig,
    PoolOverflowPolicy,
)
from snowpool.models.pool_stats import PoolEntryStatistics, PoolStatistics
from snowpool.models.token import AuthenticationToken

__all__ = [
    "AuthenticationConfig",
    "AuthenticationToken",
    "AuthenticationType",
    "ConnectionConfig",
    "ConnectionPoolConfig",
    "PoolEntryStatistics",
    "PoolOverflowPolicy",
    "PoolStatistics",
]
