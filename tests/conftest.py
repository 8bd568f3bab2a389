"""
Pytest fixtures for the completion API test suite.

Provides:
- An in-memory SQLite database per test (StaticPool, tables from Base.metadata)
- An organization with a crew member, a reviewer and a job
- A FastAPI TestClient with get_db and get_storage overridden
- Fake storage providers for photo removal
"""
import os

# Configure before remedhub.config is imported anywhere
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("AUTO_CREATE_DB", "false")
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("RATE_LIMIT", "10000/minute")
os.environ.setdefault("TZ_DEFAULT", "America/Vancouver")

from datetime import date
from typing import List
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from remedhub.auth.security import create_access_token
from remedhub.db import Base, get_db
from remedhub.main import app
from remedhub.models.models import Job, User
from remedhub.storage.factory import get_storage
from remedhub.storage.provider import StorageProvider


class RecordingStorage(StorageProvider):
    """Remembers every key it was asked to delete."""

    name = "recording"

    def __init__(self) -> None:
        self.deleted: List[str] = []

    def get_download_url(self, key: str, expires_s: int):
        return f"https://storage.test/{key}?se={expires_s}"

    def exists(self, key: str) -> bool:
        return False

    def delete(self, key: str) -> None:
        self.deleted.append(key)


class FailingStorage(StorageProvider):
    name = "failing"

    def __init__(self, message: str = "blob service unavailable") -> None:
        self.message = message
        self.attempts: List[str] = []

    def exists(self, key: str) -> bool:
        raise OSError(self.message)

    def delete(self, key: str) -> None:
        self.attempts.append(key)
        raise OSError(self.message)


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(bind=eng)
    yield eng
    Base.metadata.drop_all(bind=eng)
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


# =============================================================================
# Tenant data
# =============================================================================


@pytest.fixture
def org_id():
    return uuid4()


def _make_user(db, organization_id, name):
    user = User(
        organization_id=organization_id,
        username=f"{name}-{uuid4().hex[:8]}",
        email=f"{name}-{uuid4().hex[:8]}@example.com",
        full_name=name.title(),
        is_active=True,
    )
    db.add(user)
    db.commit()
    return user


@pytest.fixture
def crew(db, org_id):
    return _make_user(db, org_id, "crew")


@pytest.fixture
def reviewer(db, org_id):
    return _make_user(db, org_id, "reviewer")


@pytest.fixture
def outsider(db):
    return _make_user(db, uuid4(), "outsider")


@pytest.fixture
def make_job(db, org_id):
    counter = {"n": 0}

    def _make(**overrides):
        counter["n"] += 1
        values = dict(
            organization_id=org_id,
            job_number=f"J-{1000 + counter['n']}",
            name="Basement abatement",
            customer_name="Acme Property Management",
            hazard_types=["asbestos"],
            status="in_progress",
            estimated_duration_hours=24.0,
            contract_amount=1000.0,
        )
        values.update(overrides)
        job = Job(**values)
        db.add(job)
        db.commit()
        return job

    return _make


@pytest.fixture
def job(make_job):
    return make_job()


@pytest.fixture
def work_day():
    return date(2024, 3, 4)


# =============================================================================
# HTTP
# =============================================================================


@pytest.fixture
def storage():
    return RecordingStorage()


@pytest.fixture
def client(session_factory, storage):
    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_storage] = lambda: storage
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def bearer(user):
    token = create_access_token(str(user.id), str(user.organization_id))
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def crew_headers(crew):
    return bearer(crew)


@pytest.fixture
def reviewer_headers(reviewer):
    return bearer(reviewer)


@pytest.fixture
def headers_for():
    return bearer


@pytest.fixture
def failing_storage():
    return FailingStorage()
