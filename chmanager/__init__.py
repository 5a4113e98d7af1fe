"""ClickHouse manager console: slow query reports and query comparison."""

__version__ = "1.0.0"
