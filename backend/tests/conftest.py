import os

# Settings are read at import time; point them at SQLite before anything imports app.config
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["PRICE_UPDATE_INTERVAL_MINUTES"] = "0"
os.environ["CRON_SECRET"] = ""
os.environ["REVALIDATE_SECRET"] = ""
os.environ["REVALIDATE_WEBHOOK_URL"] = ""

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.config import Settings
from app.db.base import Base
from app.db.session import get_db
from app.main import app
from app.models import BlobObject, Post, ProviderToken  # noqa: F401
from app.services.blob import MemoryBlobStore
from app.services.container import build_services
from app.services.feed import JsonCache
from app.services.feed.snapshot import SnapshotStore
from tests.fakes import CountingLimiter, FakeClock, FakeFetcher, InlineExecutor


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def blob():
    return MemoryBlobStore()


@pytest.fixture
def store(blob):
    return SnapshotStore(blob)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fetcher():
    return FakeFetcher()


@pytest.fixture
def test_settings():
    return Settings(
        _env_file=None,
        database_url="sqlite://",
        price_update_interval_minutes=0,
        cron_secret="",
        revalidate_secret="",
        revalidate_webhook_url="",
    )


@pytest.fixture
def services(test_settings, session_factory, blob, fetcher, clock):
    svc = build_services(
        test_settings,
        session_factory,
        blob=blob,
        fetcher=fetcher,
        http=httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(200))),
        cache=JsonCache(clock=clock, executor=InlineExecutor()),
        limiter=CountingLimiter(),
    )
    yield svc
    svc.close()


@pytest.fixture
def client(services, session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.state.services = services
    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
    del app.state.services
