import os
import uuid
from pathlib import Path

import pytest

# Settings are read at import time, so point the app at a throwaway
# SQLite file before anything imports `wozamali_office`.
_DB_PATH = Path(__file__).resolve().parents[1] / "test_office.db"
if _DB_PATH.exists():
    _DB_PATH.unlink()
os.environ["DATABASE_URL"] = f"sqlite:///{_DB_PATH}"
os.environ["ENV"] = "dev"
os.environ.setdefault("JWT_SECRET", "test-secret-for-office-tests-0123456789abcdef")
os.environ["LOGIN_RATE_LIMIT_PER_MIN"] = "1000"

from sqlmodel import Session  # noqa: E402

from wozamali_office.main import app  # noqa: E402,F401  (creates tables)
from wozamali_office.database import engine  # noqa: E402
from wozamali_office import models, services  # noqa: E402


def _create_user(role="resident", password=None, status="active", **fields):
    with Session(engine) as session:
        user = models.User(
            email=fields.pop("email", f"{role}-{uuid.uuid4().hex[:10]}@example.com"),
            full_name=fields.pop("full_name", f"Test {role}"),
            role=role,
            status=status,
            is_approved=status == "active",
            password_hash=services.AuthService.hash_password(password) if password else None,
            **fields,
        )
        session.add(user)
        session.commit()
        session.refresh(user)
    return user


def _headers(user):
    return {"Authorization": f"Bearer {services.AuthService.issue_token(user)}"}


@pytest.fixture
def db():
    with Session(engine) as session:
        yield session


@pytest.fixture
def make_user():
    """Factory: `make_user(role='admin', password=None, status='active', **fields)`."""
    return _create_user


@pytest.fixture
def headers_for():
    return _headers


@pytest.fixture
def admin_headers():
    return _headers(_create_user("admin"))


@pytest.fixture
def super_headers():
    return _headers(_create_user("super_admin"))


@pytest.fixture
def collector_headers():
    return _headers(_create_user("collector"))


@pytest.fixture
def resident():
    return _create_user("resident")


@pytest.fixture
def material_factory(db):
    def _make(prefix="Material", rate=2.0):
        material = models.Material(name=f"{prefix} {uuid.uuid4().hex[:8]}", current_rate=rate)
        db.add(material)
        db.commit()
        db.refresh(material)
        return material
    return _make
