"""
Pytest configuration and fixtures
"""
import os

# Settings are read at import time; configure them before importing the app
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-for-pytest-only")
os.environ["TRIGGER_MODE"] = "inline"
os.environ["SEED_RBAC_ON_STARTUP"] = "false"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from hr_access.constants import COLLECTION_USERS
from hr_access.core.deps import get_store
from hr_access.core.security import create_access_token
from hr_access.db.base import Base
from hr_access.db.init_db import seed_rbac
from hr_access.main import app
from hr_access.models import DocumentRecord  # noqa: F401
from hr_access.store import InMemoryDocumentStore, SqlDocumentStore, TriggerDispatcher
from hr_access.triggers import register_triggers


# Use in-memory SQLite for testing
SQLALCHEMY_TEST_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def store():
    """SQL-backed store over a fresh database, triggers run inline"""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    sql_store = SqlDocumentStore(TestingSessionLocal, register_triggers(TriggerDispatcher("inline")))
    try:
        yield sql_store
    finally:
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def memory_store():
    """In-memory store with every trigger registered"""
    return InMemoryDocumentStore(register_triggers(TriggerDispatcher("inline")))


@pytest.fixture(scope="function")
def seeded_store(store):
    seed_rbac(store)
    return store


@pytest.fixture(scope="function")
def client(seeded_store):
    """Test client fixture with store override"""
    app.dependency_overrides[get_store] = lambda: seeded_store
    yield TestClient(app)
    app.dependency_overrides.clear()


def make_user(store, user_id, role, email=None, **extra):
    """Create a user document holding ``role`` (system roles use their key as id)"""
    data = {
        "id": user_id,
        "email": email or f"{user_id}@example.com",
        "displayName": user_id.title(),
        "role": role,
        "roleId": role,
        "isActive": True,
        "createdBy": "system",
    }
    data.update(extra)
    store.set(COLLECTION_USERS, user_id, data)
    return store.get(COLLECTION_USERS, user_id)


def auth_headers(user_id, email=None):
    """Bearer header as the identity provider would issue it"""
    claims = {"sub": user_id}
    if email:
        claims["email"] = email
    return {"Authorization": f"Bearer {create_access_token(claims)}"}


@pytest.fixture
def admin_user(seeded_store):
    return make_user(seeded_store, "admin-1", "admin", email="admin@example.com")


@pytest.fixture
def hr_user(seeded_store):
    return make_user(seeded_store, "hr-1", "hr", email="hr@example.com")


@pytest.fixture
def employee_user(seeded_store):
    return make_user(seeded_store, "emp-1", "employee", email="emp@example.com")
