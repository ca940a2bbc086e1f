"""
Pytest configuration for notification tests

Every test gets a fresh in-memory SQLite database. The app's get_db and
sender dependencies are overridden to share the test session and a fake
email transport, so nothing touches the network.
"""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from docket import models  # noqa: F401
from docket.database import (
    OPTIONAL_TABLES,
    Base,
    detect_schema_features,
    enable_sqlite_savepoints,
    get_db,
)
from docket.email_service import NotificationSender, get_notification_sender
from factories import FakeTransport


def _make_engine(include_optional: bool):
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_savepoints(engine)
    if include_optional:
        Base.metadata.create_all(engine)
    else:
        core_tables = [
            table for name, table in Base.metadata.tables.items() if name not in OPTIONAL_TABLES
        ]
        Base.metadata.create_all(engine, tables=core_tables)

    # Probe before any session holds the shared connection
    detect_schema_features.cache_clear()
    detect_schema_features(engine)
    return engine


@pytest.fixture
def engine():
    engine = _make_engine(include_optional=True)
    yield engine
    detect_schema_features.cache_clear()
    engine.dispose()


@pytest.fixture
def bare_engine():
    """Database without any of the optional email tables"""
    engine = _make_engine(include_optional=False)
    yield engine
    detect_schema_features.cache_clear()
    engine.dispose()


def _session(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)()


@pytest.fixture
def db(engine):
    session = _session(engine)
    yield session
    session.close()


@pytest.fixture
def bare_db(bare_engine):
    session = _session(bare_engine)
    yield session
    session.close()


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def sender(transport):
    return NotificationSender(
        transport=transport,
        from_address="Docket <notifications@docketapp.com>",
        reply_domain="docketapp.com",
        send_timeout=1,
    )


def make_client_factory(session):
    def _app_client(sender=None):
        from docket.main import app

        def override_get_db():
            yield session

        app.dependency_overrides[get_db] = override_get_db
        if sender is not None:
            app.dependency_overrides[get_notification_sender] = lambda: sender
        return TestClient(app)

    return _app_client


@pytest.fixture
def app_client(db):
    """TestClient factory bound to the test session"""
    from docket.main import app

    yield make_client_factory(db)
    app.dependency_overrides.clear()


@pytest.fixture
def bare_app_client(bare_db):
    from docket.main import app

    yield make_client_factory(bare_db)
    app.dependency_overrides.clear()


