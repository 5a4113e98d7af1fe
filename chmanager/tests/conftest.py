"""
Pytest configuration and fixtures.
"""
import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from chmanager.core.context import RequestContext
from chmanager.db.models import Base, ClickHouseConnection
from chmanager.db.repositories import (
    ConnectionRepository,
    FavoriteRepository,
    QueryHistoryRepository,
    ReportRepository,
)
from chmanager.db.session import make_session_factory
from chmanager.tests.factories import FakeRemoteClient, make_report


# Use in-memory SQLite for testing; StaticPool keeps one connection so every
# session sees the same database
TEST_DATABASE_URL = "sqlite://"


@pytest.fixture(scope="function")
def engine():
    """Create a test database engine."""
    engine = create_engine(
        TEST_DATABASE_URL,
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def ctx():
    return RequestContext.background()


@pytest.fixture
def connection_repo(session_factory):
    return ConnectionRepository(session_factory)


@pytest.fixture
def report_repo(session_factory):
    return ReportRepository(session_factory)


@pytest.fixture
def history_repo(session_factory):
    return QueryHistoryRepository(session_factory)


@pytest.fixture
def favorite_repo(session_factory):
    return FavoriteRepository(session_factory)


@pytest.fixture
def fake_remote():
    return FakeRemoteClient()


@pytest.fixture(scope="function")
def sample_connection(connection_repo, ctx):
    """Create the connection with id 7."""
    connection = ClickHouseConnection(
        id=7,
        name="Analytics",
        host="clickhouse.test.local",
        port=8123,
        protocol="http",
        database="analytics",
        username="console",
        password="secret",
    )
    return connection_repo.create(ctx, connection)


@pytest.fixture
def seeded_reports(report_repo, sample_connection, ctx):
    """Two cached rows for connection 7 built at T0."""
    reports = [
        make_report(executed_by="alice", query_normalized="SELECT a FROM t", max_duration_ms=900.0),
        make_report(executed_by="bob", query_normalized="SELECT b FROM t", max_duration_ms=750.0),
    ]
    report_repo.save_reports(ctx, 7, reports)
    return reports
