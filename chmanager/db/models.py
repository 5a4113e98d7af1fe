"""
SQLAlchemy models for the local store.

Holds registered ClickHouse connections, slow query report snapshots,
ad-hoc query history and favorite query comparisons.
"""
from datetime import datetime, timezone

from sqlalchemy import (
    BigInteger,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()

# SQLite only auto-increments INTEGER PRIMARY KEY columns
IdType = BigInteger().with_variant(Integer, "sqlite")

# Counts are stored in signed 64-bit columns
MAX_STORED_COUNT = 2 ** 63 - 1


def utcnow() -> datetime:
    """Naive UTC timestamp, the form stored in every DateTime column."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class ClickHouseConnection(Base):
    """
    A registered ClickHouse server.

    Treated as an immutable bundle by the services: they read it and hand it
    to the remote client, never modify it.
    """
    __tablename__ = 'clickhouse_connections'

    id = Column(IdType, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    host = Column(String(255), nullable=False)
    port = Column(Integer, nullable=False, default=8123)
    protocol = Column(String(16), nullable=False, default="http")  # http or https
    database = Column(String(255), nullable=False, default="default")

    # Auth fields, opaque to everything except the remote client
    username = Column(String(255), nullable=False, default="default")
    password = Column(String(255), nullable=False, default="")

    server_info = Column(Text, nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    def base_url(self) -> str:
        return f"{self.protocol}://{self.host}:{self.port}"

    def __repr__(self):
        return f"<ClickHouseConnection(id={self.id}, {self.host}:{self.port}/{self.database})>"


class SlowQueryReport(Base):
    """
    One row of the top slow queries report.

    All rows of a connection form a snapshot: they are replaced together on
    refresh and share the same last_refresh/created_at/updated_at.
    """
    __tablename__ = 'slow_query_reports'

    id = Column(IdType, primary_key=True, autoincrement=True)
    connection_id = Column(
        BigInteger,
        ForeignKey('clickhouse_connections.id', ondelete='CASCADE'),
        nullable=False,
        index=True,
    )

    executed_by = Column(String(255), nullable=False, default="")
    sample_query = Column(Text, nullable=False, default="")
    query_normalized = Column(Text, nullable=False, default="")

    executions = Column(BigInteger, nullable=False, default=0)
    avg_duration_ms = Column(Float, nullable=False, default=0.0)
    p95_duration_ms = Column(Float, nullable=False, default=0.0)
    max_duration_ms = Column(Float, nullable=False, default=0.0)
    total_rows_read = Column(BigInteger, nullable=False, default=0)
    total_bytes_read = Column(BigInteger, nullable=False, default=0)

    last_refresh = Column(DateTime, nullable=False)
    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=False)

    def grouping_key(self):
        return self.executed_by, self.query_normalized

    def __repr__(self):
        return (
            f"<SlowQueryReport(connection_id={self.connection_id}, "
            f"executed_by={self.executed_by!r}, max={self.max_duration_ms}ms)>"
        )


class QueryHistory(Base):
    """Ad-hoc query executed against a connection."""
    __tablename__ = 'query_histories'

    id = Column(IdType, primary_key=True, autoincrement=True)
    connection_id = Column(
        BigInteger,
        ForeignKey('clickhouse_connections.id', ondelete='CASCADE'),
        nullable=False,
    )
    query = Column(Text, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        Index('idx_history_connection_created', 'connection_id', 'created_at'),
    )


class FavoriteComparison(Base):
    """A saved pair of queries for the compare page."""
    __tablename__ = 'favorite_comparisons'

    id = Column(IdType, primary_key=True, autoincrement=True)
    connection_id = Column(
        BigInteger,
        ForeignKey('clickhouse_connections.id', ondelete='CASCADE'),
        nullable=False,
        index=True,
    )
    title = Column(Text, nullable=False)
    query1 = Column(Text, nullable=False)
    query2 = Column(Text, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)


__all__ = [
    "Base",
    "ClickHouseConnection",
    "SlowQueryReport",
    "QueryHistory",
    "FavoriteComparison",
    "utcnow",
    "MAX_STORED_COUNT",
]
