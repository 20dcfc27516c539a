import asyncio
import sys
from datetime import date
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def ensure_event_loop() -> asyncio.AbstractEventLoop:
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)

    if loop.is_closed():
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)

    return loop


ensure_event_loop()

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from recurring_bookings.api.routes_recurring import get_today
from recurring_bookings.domain.ops import db_models as ops_db_models  # noqa: F401
from recurring_bookings.domain.recurring_series import db_models as recurring_db_models  # noqa: F401
from recurring_bookings.infra.availability import AvailabilityQuery
from recurring_bookings.infra.db import Base, get_db_session
from recurring_bookings.main import app
from recurring_bookings.services import build_app_services
from recurring_bookings.settings import settings

# Monday; every API test runs as if this were the current business day.
TEST_TODAY = date(2024, 1, 1)


class FakeAvailability:
    """Availability collaborator double that records queries and answers from a set of busy dates."""

    def __init__(self, busy_dates=None, *, error: Exception | None = None, delay: float = 0.0) -> None:
        self.busy_dates = set(busy_dates or ())
        self.error = error
        self.delay = delay
        self.queries: list[AvailabilityQuery] = []

    async def is_available(self, query: AvailabilityQuery) -> bool:
        self.queries.append(query)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return query.target_date not in self.busy_dates


@pytest.fixture(scope="session")
def test_engine():
    db_path = Path("test.db")
    if db_path.exists():
        db_path.unlink()
    engine = create_async_engine(
        "sqlite+aiosqlite:///./test.db",
        connect_args={"check_same_thread": False, "timeout": 30},
        poolclass=StaticPool,
    )

    async def init_models() -> None:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    asyncio.run(init_models())
    yield engine
    asyncio.run(engine.dispose())


@pytest.fixture(scope="session")
def async_session_maker(test_engine):
    return async_sessionmaker(test_engine, expire_on_commit=False)


@pytest.fixture(autouse=True)
def clean_database(test_engine):
    async def truncate_tables() -> None:
        async with test_engine.begin() as conn:
            for table in reversed(Base.metadata.sorted_tables):
                await conn.execute(table.delete())

    asyncio.run(truncate_tables())
    yield


@pytest.fixture(autouse=True)
def restore_settings():
    original_app_env = settings.app_env
    original_metrics = settings.metrics_enabled
    original_metrics_token = settings.metrics_token
    original_job_heartbeat = settings.job_heartbeat_required
    original_job_heartbeat_ttl = settings.job_heartbeat_ttl_seconds
    settings.app_env = "dev"
    yield
    settings.app_env = original_app_env
    settings.metrics_enabled = original_metrics
    settings.metrics_token = original_metrics_token
    settings.job_heartbeat_required = original_job_heartbeat
    settings.job_heartbeat_ttl_seconds = original_job_heartbeat_ttl


@pytest.fixture(autouse=True)
def restore_app_state():
    """Restore app.state after each test to prevent state pollution."""
    original_services = getattr(app.state, "services", None)
    original_metrics = getattr(app.state, "metrics", None)
    original_app_settings = getattr(app.state, "app_settings", None)
    yield
    app.state.services = original_services
    app.state.metrics = original_metrics
    app.state.app_settings = original_app_settings


@pytest.fixture()
def availability_factory():
    return FakeAvailability


@pytest.fixture()
def availability() -> FakeAvailability:
    return FakeAvailability()


@pytest.fixture()
def client(async_session_maker, availability):
    ensure_event_loop()

    async def override_db_session():
        async with async_session_maker() as session:
            yield session

    app.dependency_overrides[get_db_session] = override_db_session
    app.dependency_overrides[get_today] = lambda: TEST_TODAY
    app.state.services = build_app_services(settings, availability=availability)
    original_factory = getattr(app.state, "db_session_factory", None)
    app.state.db_session_factory = async_session_maker
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
    app.state.db_session_factory = original_factory


@pytest.fixture()
def client_no_raise(async_session_maker, availability):
    """Test client that returns HTTP responses instead of raising server exceptions."""

    async def override_db_session():
        async with async_session_maker() as session:
            yield session

    app.dependency_overrides[get_db_session] = override_db_session
    app.dependency_overrides[get_today] = lambda: TEST_TODAY
    app.state.services = build_app_services(settings, availability=availability)
    original_factory = getattr(app.state, "db_session_factory", None)
    app.state.db_session_factory = async_session_maker
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client
    app.dependency_overrides.clear()
    app.state.db_session_factory = original_factory


@pytest.fixture(scope="session")
def anyio_backend():
    return "asyncio"
