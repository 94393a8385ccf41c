"""
Pydantic models for session pool statistics.

Snapshots are best-effort: they are read without blocking acquire/release
and may be stale by the time the caller inspects them.
"""

from pydantic import BaseModel, ConfigDict, Field


class PoolEntryStatistics(BaseModel):
    """Snapshot of one target identity's pool."""

    model_config = ConfigDict(frozen=True)

    pool_key: str
    max_pool_size: int
    total: int = Field(0, description="Capacity units held (active + idle + creating)")
    active: int = Field(0, description="Sessions currently borrowed")
    idle: int = Field(0, description="Sessions waiting for reuse")
    creating: int = Field(0, description="Sessions being authenticated")
    waiting: int = Field(0, description="Callers waiting on the capacity gate")
    created: int = 0
    closed: int = 0
    reused: int = 0


class PoolStatistics(BaseModel):
    """Aggregate snapshot across every target identity."""

    model_config = ConfigDict(frozen=True)

    total_connections: int = 0
    active_connections: int = 0
    idle_connections: int = 0
    waiting_requests: int = 0
    total_connections_created: int = 0
    total_connections_closed: int = 0
    total_connection_reuses: int = 0
    pools: list[PoolEntryStatistics] = Field(default_factory=list)

    @classmethod
    def from_entries(cls, entries: list[PoolEntryStatistics]) -> "PoolStatistics":
        return cls(
            total_connections=sum(e.total for e in entries),
            active_connections=sum(e.active for e in entries),
            idle_connections=sum(e.idle for e in entries),
            waiting_requests=sum(e.waiting for e in entries),
            total_connections_created=sum(e.created for e in entries),
            total_connections_closed=sum(e.closed for e in entries),
            total_connection_reuses=sum(e.reused for e in entries),
            pools=entries,
        )
