"""
Pydantic models for per-connection configuration.

These models describe one logical target (account, user, database, schema,
warehouse, role), how to authenticate against it and how its session pool
is sized.

SECURITY NOTE:
- Passwords, passphrases and OAuth secrets are excluded from repr()
- AuthError messages name the rejected field, never its value
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from snowpool.config import settings


class AuthenticationType(str, Enum):
    """Supported login protocols."""

    PASSWORD = "snowflake"
    KEY_PAIR = "snowflake_jwt"
    OAUTH = "oauth"
    SSO = "sso"
    EXTERNAL_BROWSER = "externalbrowser"


class PoolOverflowPolicy(str, Enum):
    """What acquire does when the pool is at capacity."""

    BLOCK = "block"
    REJECT = "reject"


class AuthenticationConfig(BaseModel):
    """Method-specific credentials for a login."""

    type: AuthenticationType = Field(
        AuthenticationType.PASSWORD, description="Login protocol"
    )

    # Password
    password: Optional[str] = Field(None, repr=False, description="Password for basic login")

    # Key pair
    private_key_path: Optional[str] = Field(
        None, description="Path to the PEM-encoded RSA private key"
    )
    private_key_passphrase: Optional[str] = Field(
        None, repr=False, description="Passphrase for an encrypted private key"
    )

    # OAuth
    oauth_token: Optional[str] = Field(None, repr=False, description="OAuth access token")
    oauth_refresh_token: Optional[str] = Field(
        None, repr=False, description="OAuth refresh token"
    )
    oauth_client_id: Optional[str] = Field(None, description="OAuth client ID for refresh grants")
    oauth_client_secret: Optional[str] = Field(
        None, repr=False, description="OAuth client secret for refresh grants"
    )
    oauth_token_endpoint: Optional[str] = Field(
        None, description="Token endpoint for refresh grants (defaults to the account's)"
    )

    # SSO / external browser
    sso_properties: dict[str, str] = Field(
        default_factory=dict, description="Provider properties (redirect_port, timeout, ...)"
    )

    def validation_errors(self) -> list[tuple[str, str]]:
        """
        Check that the fields the selected method needs are present.

        Returns:
            List of (field, message) pairs; empty when the config is usable
        """
        errors: list[tuple[str, str]] = []

        if self.type == AuthenticationType.PASSWORD:
            if not self.password:
                errors.append(
                    ("password", "Password is required for username/password authentication.")
                )
        elif self.type == AuthenticationType.KEY_PAIR:
            if not self.private_key_path:
                errors.append(
                    (
                        "private_key_path",
                        "Private key path is required for key pair authentication.",
                    )
                )
        elif self.type == AuthenticationType.OAUTH:
            if not self.oauth_token:
                errors.append(("oauth_token", "OAuth token is required for OAuth authentication."))

        # SSO and external browser need nothing up front.
        return errors


class ConnectionPoolConfig(BaseModel):
    """Sizing and timing for one target's session pool (seconds)."""

    max_pool_size: int = Field(settings.SNOWFLAKE_POOL_MAX_SIZE, ge=1, le=1000)
    min_pool_size: int = Field(
        settings.SNOWFLAKE_POOL_MIN_SIZE, ge=0, le=100, description="Advisory only"
    )
    connection_timeout: float = Field(
        settings.SNOWFLAKE_POOL_TIMEOUT, ge=0, description="Max wait for a capacity unit"
    )
    idle_timeout: float = Field(settings.SNOWFLAKE_POOL_IDLE_TIMEOUT, gt=0)
    max_connection_lifetime: float = Field(settings.SNOWFLAKE_POOL_MAX_LIFETIME, gt=0)
    cleanup_interval: float = Field(settings.SNOWFLAKE_POOL_CLEANUP_INTERVAL, gt=0)
    overflow_policy: PoolOverflowPolicy = PoolOverflowPolicy.BLOCK

    @model_validator(mode="after")
    def _check_sizes(self) -> "ConnectionPoolConfig":
        if self.min_pool_size > self.max_pool_size:
            raise ValueError("min_pool_size cannot exceed max_pool_size")
        return self


class ConnectionConfig(BaseModel):
    """
    Everything needed to open a session against one logical target.

    The (account, user, database, schema, warehouse, role) tuple is the
    target identity; sessions are pooled per identity.
    """

    account: str = Field(..., min_length=1, max_length=255, description="Account identifier")
    user: str = Field(..., min_length=1, max_length=255, description="Login name")
    database_name: Optional[str] = Field(None, description="Default database")
    schema_name: Optional[str] = Field(None, description="Default schema")
    warehouse: Optional[str] = Field(None, description="Warehouse for query execution")
    role: Optional[str] = Field(None, description="Role to assume after login")

    authentication: AuthenticationConfig = Field(default_factory=AuthenticationConfig)
    pool: ConnectionPoolConfig = Field(default_factory=ConnectionPoolConfig)

    query_timeout: float = Field(300.0, gt=0, description="Statement timeout in seconds")

    @field_validator("account", "user")
    @classmethod
    def _strip_required(cls, v: str) -> str:
        """Ensure identity fields are trimmed and not empty."""
        v = v.strip()
        if not v:
            raise ValueError("value cannot be empty")
        return v

    @property
    def identity(self) -> tuple[str, ...]:
        """Target identity used to select the session pool."""
        return (
            self.account,
            self.user,
            self.database_name or "",
            self.schema_name or "",
            self.warehouse or "",
            self.role or "",
        )

    @property
    def pool_key(self) -> str:
        """Display form of identity for logs and statistics; not unique."""
        return "|".join(self.identity)
