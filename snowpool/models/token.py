"""
Authentication token issued by a successful login.

Tokens are immutable. A refresh produces a new AuthenticationToken; the old
one is left untouched so readers never need a lock around it.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import UTC, datetime, timedelta
from typing import Optional

from snowpool.config import settings

EXPIRY_GRACE = timedelta(seconds=settings.SNOWFLAKE_TOKEN_EXPIRY_GRACE_SECONDS)


def utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True, slots=True, repr=False)
class AuthenticationToken:
    """Credential bundle returned by every login protocol.

    Attributes:
        access_token: Credential sent on subsequent requests
        expires_at: Instant after which the token must not be used (aware UTC)
        token_type: "Snowflake" for session tokens, "Bearer" for OAuth grants
        method: AuthenticationType value that produced the token
        session_token: Session token, when the server returns one
        master_token: Master token used for server-side session renewal
        refresh_token: OAuth refresh credential; absent for other methods
        token_endpoint: Where refresh grants are posted
        session_id: Server-side session identifier
    """

    access_token: str
    expires_at: datetime
    token_type: str = "Snowflake"
    method: str = "snowflake"
    session_token: Optional[str] = None
    master_token: Optional[str] = None
    refresh_token: Optional[str] = None
    token_endpoint: Optional[str] = None
    session_id: Optional[str] = None

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or utcnow()) >= self.expires_at

    def is_expiring_soon(
        self, now: Optional[datetime] = None, grace: timedelta = EXPIRY_GRACE
    ) -> bool:
        return (now or utcnow()) + grace >= self.expires_at

    @property
    def can_refresh(self) -> bool:
        return bool(self.refresh_token)

    def with_refreshed(
        self,
        access_token: str,
        expires_at: datetime,
        *,
        refresh_token: Optional[str] = None,
        token_type: Optional[str] = None,
    ) -> AuthenticationToken:
        """
        Return a new token carrying a refreshed credential.

        The session and master tokens belong to the original login and are
        not carried over.
        """
        return replace(
            self,
            access_token=access_token,
            expires_at=expires_at,
            session_token=None,
            master_token=None,
            refresh_token=refresh_token or self.refresh_token,
            token_type=token_type or self.token_type,
        )

    def __repr__(self) -> str:
        """Mask credentials to prevent accidental exposure in logs."""
        return (
            f"<{type(self).__name__} method={self.method} type={self.token_type} "
            f"expires_at={self.expires_at.isoformat()} refreshable={self.can_refresh}>"
        )
