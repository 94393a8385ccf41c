"""
Core

Session pooling, authentication dispatch and the database-level owner.
"""

from snowpool.core.authentication import AuthenticationService
from snowpool.core.config_parser import (
    merge_parameters,
    parse_connection_string,
    parse_parameters,
)
from snowpool.core.database import SnowflakeConnection, SnowflakeDatabase
from snowpool.core.pool_entry import PoolEntry
from snowpool.core.pool_manager import PoolManager
from snowpool.core.session import PooledSession

__all__ = [
    "AuthenticationService",
    "PoolEntry",
    "PoolManager",
    "PooledSession",
    "SnowflakeConnection",
    "SnowflakeDatabase",
    "merge_parameters",
    "parse_connection_string",
    "parse_parameters",
]
