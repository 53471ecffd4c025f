"""Shared test fixtures and configuration."""
import os

# Must be set before the application modules read their settings
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("ELECTION_TIMEZONE", "UTC")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from ballotguard.api.deps import get_data_access  # noqa: E402
from ballotguard.core.cache import TTLCache  # noqa: E402
from ballotguard.core.rate_limit import limiter  # noqa: E402
from ballotguard.core.security import create_access_token  # noqa: E402
from ballotguard.db.access import DataAccessLayer  # noqa: E402
from ballotguard.db.base import Base  # noqa: E402
from ballotguard.db.monitor import ConnectionMonitor  # noqa: E402
from ballotguard.main import app  # noqa: E402

# Test database setup
SQLALCHEMY_DATABASE_URL = "sqlite://"


@pytest.fixture(autouse=True)
def disable_rate_limiting_for_tests(request):
    """Disable rate limiting for all tests except rate limiting tests."""
    if "rate_limit" in request.keywords:
        limiter.reset()
        yield
        limiter.reset()
    else:
        limiter.enabled = False
        yield
        limiter.enabled = True


@pytest.fixture(scope="function")
def db_engine():
    """Create a fresh database for each test."""
    engine = create_engine(
        SQLALCHEMY_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db_session(db_engine):
    """Create a new database session for a test."""
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(scope="function")
def dal(db_engine):
    """A started data access layer on the test database, without background threads."""
    layer = DataAccessLayer(
        db_engine,
        cache=TTLCache(max_size=50),
        monitor=ConnectionMonitor(db_engine, base_delay=0.01, max_delay=0.05),
        query_timeout=2.0,
        write_timeout=2.0,
        max_workers=4,
    )
    layer.start(background=False)
    yield layer
    layer.stop()


@pytest.fixture(scope="function")
def client(dal):
    """Create a test client bound to the test data access layer."""
    app.state.data_access = dal
    app.dependency_overrides[get_data_access] = lambda: dal
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
    del app.state.data_access


@pytest.fixture
def admin_token():
    """Generate a valid admin JWT token."""
    return create_access_token({"role": "admin"})


@pytest.fixture
def observer_token():
    return create_access_token({"role": "observer"})


@pytest.fixture
def admin_client(client, admin_token):
    """Create a test client with admin cookie already set."""
    client.cookies.set("admin_token", admin_token)
    return client
