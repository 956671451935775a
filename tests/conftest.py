import os
import uuid

# Settings are read at import time, so configure the environment first.
os.environ.setdefault("JWT_SECRET", "test-secret-key-that-is-long-enough-for-hs256")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from todoapi.api import app
from todoapi.auth import get_storage
from todoapi.database import Base
from todoapi.models import todo, user  # noqa: F401
from todoapi.schemas import Role
from todoapi.storage.sql import SqlStorage


@pytest.fixture
def session_local():
    """Provide an isolated in-memory database for each test."""
    engine = create_engine(
        "sqlite://",
        future=True,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
    Base.metadata.create_all(bind=engine)
    yield TestingSessionLocal
    engine.dispose()


@pytest.fixture
def storage(session_local):
    return SqlStorage(session_local)


@pytest.fixture
def client(storage):
    app.dependency_overrides[get_storage] = lambda: storage
    yield TestClient(app)
    app.dependency_overrides.clear()


def unique_email(prefix: str = "user") -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}@example.com"


@pytest.fixture
def register(client):
    """Register a user over HTTP and return ``(headers, user_json)``."""

    def _register(email: str | None = None, password: str = "secret123"):
        resp = client.post(
            "/api/register", json={"email": email or unique_email(), "password": password}
        )
        assert resp.status_code == 201, resp.text
        data = resp.json()
        return {"Authorization": f"Bearer {data['token']}"}, data["user"]

    return _register


@pytest.fixture
def admin(client, storage, register):
    """Register a user, promote it and log in again for an admin token."""
    email = unique_email("admin")
    _, user_json = register(email=email)
    storage.update_user_role(uuid.UUID(user_json["id"]), Role.ADMIN)
    resp = client.post("/api/login", json={"email": email, "password": "secret123"})
    assert resp.status_code == 200
    data = resp.json()
    return {"Authorization": f"Bearer {data['token']}"}, data["user"]
