"""Shared pytest fixtures for the marketplace API tests."""

from __future__ import annotations

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("DB_SLOW_QUERY_THRESHOLD", "0")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from marketplace import cache as cache_module
from marketplace import database, rate_limiter
from marketplace.database import Base, get_db
from marketplace.main import app
from marketplace.services import socket_service, storage_service, stripe_service
from support import make_property, make_user

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(autouse=True)
def _isolated_services(monkeypatch):
    """Keep every test offline: no Redis, no sockets, no Spaces, no Stripe."""
    monkeypatch.setattr(rate_limiter, "RATE_LIMIT_ENABLED", False)
    monkeypatch.setattr(cache_module.cache, "_get_client", lambda: None)
    monkeypatch.setattr(database, "SessionLocal", TestingSessionLocal)

    emitted: list[tuple] = []

    async def fake_emit(event, data, room, skip_sid=None):
        emitted.append((event, data, room))

    monkeypatch.setattr(socket_service, "emit", fake_emit)

    async def fake_upload(content, key, content_type):
        return f"https://cdn.test/{key}"

    monkeypatch.setattr(storage_service, "upload_file", fake_upload)
    monkeypatch.setattr(stripe_service, "is_stripe_enabled", lambda: False)
    return emitted


@pytest.fixture()
def emitted(_isolated_services):
    return _isolated_services


@pytest.fixture()
def db():
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()

    def override_get_db():
        request_session = TestingSessionLocal()
        try:
            yield request_session
        finally:
            request_session.close()

    app.dependency_overrides[get_db] = override_get_db
    try:
        yield session
    finally:
        session.close()
        app.dependency_overrides.pop(get_db, None)
        Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def client(db):
    return TestClient(app)


@pytest.fixture()
def guest(db):
    return make_user(db, "guest@example.com", first_name="Gina", last_name="Guest")


@pytest.fixture()
def host(db):
    return make_user(db, "host@example.com", first_name="Hamad", last_name="Host", is_host=True)


@pytest.fixture()
def agent(db):
    return make_user(
        db, "agent@example.com", first_name="Aisha", last_name="Agent", is_agent=True, company_name="Gulf Realty"
    )


@pytest.fixture()
def admin(db):
    return make_user(db, "admin@example.com", first_name="Ada", last_name="Admin", is_agent=True)


@pytest.fixture()
def listing(db, host):
    return make_property(db, host)
