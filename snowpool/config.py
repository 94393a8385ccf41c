"""
Driver Configuration using Pydantic Settings

Loads process-wide defaults from environment variables with sensible defaults.
Per-connection values (account, credentials, pool sizing) live in
snowpool.models.connection and fall back to these defaults.
"""

import logging

from pydantic_settings import BaseSettings, SettingsConfigDict

__version__ = "0.4.0"


class Settings(BaseSettings):
    """
    Driver settings loaded from environment variables.
    """

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=False, extra="ignore"
    )

    # ========================================================================
    # Snowflake Endpoint Settings
    # ========================================================================
    # Accounts without a dot are expanded to <account>.<suffix>.
    SNOWFLAKE_HOST_SUFFIX: str = "snowflakecomputing.com"
    SNOWFLAKE_CLIENT_APP_ID: str = "snowpool"
    SNOWFLAKE_CLIENT_APP_VERSION: str = __version__

    # Login-level timeout (seconds).
    #
    # Bounds every HTTP call made while authenticating. This is independent of
    # the pool timeout, which only bounds how long a caller waits for capacity.
    SNOWFLAKE_CONNECT_LOGIN_TIMEOUT: int = 15

    # ========================================================================
    # Connection Pool Defaults
    # ========================================================================
    SNOWFLAKE_POOL_MAX_SIZE: int = 10
    # Advisory only; the pool does not pre-warm.
    SNOWFLAKE_POOL_MIN_SIZE: int = 0
    SNOWFLAKE_POOL_TIMEOUT: float = 30.0
    SNOWFLAKE_POOL_IDLE_TIMEOUT: float = 600.0
    SNOWFLAKE_POOL_MAX_LIFETIME: float = 3600.0
    SNOWFLAKE_POOL_CLEANUP_INTERVAL: float = 60.0

    # ========================================================================
    # Token Settings
    # ========================================================================
    SNOWFLAKE_TOKEN_EXPIRY_GRACE_SECONDS: int = 300
    # Used when the login response carries no validity window (4 hours).
    SNOWFLAKE_DEFAULT_MASTER_VALIDITY_SECONDS: int = 14400
    SNOWFLAKE_JWT_LIFETIME_SECONDS: int = 3600

    # ========================================================================
    # SSO / External Browser Settings
    # ========================================================================
    SNOWFLAKE_SSO_TIMEOUT_SECONDS: float = 120.0
    SNOWFLAKE_SSO_CALLBACK_HOST: str = "127.0.0.1"

    # ========================================================================
    # Logging Settings
    # ========================================================================
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


# Create global settings instance
settings = Settings()


def configure_logging() -> None:
    """Apply LOG_LEVEL/LOG_FORMAT to the root logger for applications embedding the driver."""
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format=settings.LOG_FORMAT,
    )

    # Suppress per-request transport logging (login handshakes would log URLs).
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
