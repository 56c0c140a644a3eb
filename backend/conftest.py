"""
Common test fixtures for the backend test suite.

Provides:
- In-memory SQLite database session
- FastAPI TestClient with DB override
- Users (admin, publisher, system service account) and auth headers
- Redis and Celery replaced with mocks
"""
import os

# Settings are created at import time, so the environment has to be ready
# before anything from app.core.config is imported.
os.environ.setdefault("SECRET_KEY", "a" * 64)
os.environ.setdefault("ADMIN_EMAIL", "admin@example.com")
os.environ.setdefault("ADMIN_PASSWORD", "testpassword1234")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/0")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("LOG_TO_FILE", "false")

import pytest
from unittest.mock import MagicMock, patch
from sqlmodel import Session, SQLModel, create_engine
from sqlmodel.pool import StaticPool
from fastapi.testclient import TestClient

USER_PASSWORD = "correct-horse-battery"


@pytest.fixture
def engine():
    """Create an in-memory SQLite engine with all tables."""
    from app import models  # noqa: F401

    _engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(_engine)
    return _engine


@pytest.fixture
def session(engine):
    with Session(engine) as s:
        yield s


@pytest.fixture(autouse=True)
def fake_redis():
    """Redis backs the token blocklist and throttling counters; never hit a real server."""
    redis_mock = MagicMock()
    redis_mock.get.return_value = None
    redis_mock.exists.return_value = 0
    redis_mock.incr.return_value = 1
    with patch("app.core.security._get_redis", return_value=redis_mock):
        yield redis_mock


@pytest.fixture
def sent_codes():
    """Capture verification emails instead of queueing them on Celery."""
    with patch("app.api.v1.endpoints.login.send_two_factor_code_email") as task:
        yield task


@pytest.fixture
def client(session, sent_codes):
    """
    FastAPI TestClient with the DB session dependency overridden
    to use the in-memory test database.
    """
    from app.main import app
    from app.core.db import get_session

    def _override_get_session():
        yield session

    app.dependency_overrides[get_session] = _override_get_session
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def _make_user(session, email, role, is_superuser=False, is_active=True):
    from app.core.security import get_password_hash
    from app.models.user import User

    user = User(
        email=email,
        first_name=role.capitalize(),
        hashed_password=get_password_hash(USER_PASSWORD),
        role=role,
        is_superuser=is_superuser,
        is_active=is_active,
    )
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


@pytest.fixture
def admin_user(session):
    return _make_user(session, "boss@example.com", "admin", is_superuser=True)


@pytest.fixture
def publisher_user(session):
    return _make_user(session, "publisher@example.com", "publisher")


@pytest.fixture
def inactive_user(session):
    return _make_user(session, "gone@example.com", "advertiser", is_active=False)


@pytest.fixture
def system_user_id(session):
    from app.services.system_config_service import get_system_user_id
    return get_system_user_id(session)


def _auth_headers(user):
    from app.core.security import create_access_token
    return {"Authorization": f"Bearer {create_access_token(subject=user.id)}"}


@pytest.fixture
def admin_headers(admin_user):
    return _auth_headers(admin_user)


@pytest.fixture
def publisher_headers(publisher_user):
    return _auth_headers(publisher_user)


@pytest.fixture
def enable_2fa(session, system_user_id):
    from app.services.system_config_service import set_two_factor_enabled_for_login
    set_two_factor_enabled_for_login(session, True, updated_by=system_user_id)
