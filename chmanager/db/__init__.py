"""Local store: SQLAlchemy models, sessions and repositories."""

from .models import (  # noqa: F401
    Base,
    ClickHouseConnection,
    FavoriteComparison,
    QueryHistory,
    SlowQueryReport,
)
