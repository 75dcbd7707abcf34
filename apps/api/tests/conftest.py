from __future__ import annotations

import os
import tempfile
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

# Configure before the app (and its frozen settings) are imported
_DB_DIR = tempfile.mkdtemp(prefix="fellowship-tests-")
os.environ.setdefault("DATABASE_URL", f"sqlite:///{_DB_DIR}/fellowship.db")
os.environ.setdefault("ENV", "local")
os.environ.setdefault("AUTH_MODE", "dev")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("EVENT_SUMMARY_CACHE_ENABLED", "false")
os.environ.setdefault("NOTIFICATIONS_ENABLED", "false")
os.environ.setdefault("RSVP_RETRY_BACKOFF_SECONDS", "0")

from fellowship.db import SessionLocal, engine  # noqa: E402
from fellowship.main import app  # noqa: E402
from fellowship.models import Base, Event, Member, MemberRole  # noqa: E402
from fellowship.services.notifications import get_dispatcher  # noqa: E402


class RecordingDispatcher:
    def __init__(self) -> None:
        self.published: list[tuple[str, dict]] = []

    def publish(self, kind, payload) -> None:
        self.published.append((kind.value, payload))

    def kinds(self) -> list[str]:
        return [kind for kind, _ in self.published]


@pytest.fixture(autouse=True)
def clean_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture
def client(dispatcher: RecordingDispatcher):
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def db_session():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def make_member():
    """Insert a member in its own short transaction and return the detached row."""

    def _make(email: str, role: MemberRole = MemberRole.MEMBER, **fields) -> Member:
        with SessionLocal() as db:
            member = Member(email=email, role=role, **fields)
            db.add(member)
            db.commit()
            return member

    return _make


@pytest.fixture
def make_event(make_member):
    """Insert an event starting tomorrow; keyword overrides win."""

    def _make(created_by: Member | None = None, **overrides) -> Event:
        creator = created_by or make_member(f"staff-{os.urandom(4).hex()}@example.com", MemberRole.STAFF)
        starts_at = datetime.now(timezone.utc) + timedelta(days=1)
        fields = {
            "title": "Community Potluck",
            "location": "Fellowship Hall",
            "starts_at": starts_at,
            "ends_at": starts_at + timedelta(hours=2),
            "max_capacity": None,
        }
        fields.update(overrides)
        with SessionLocal() as db:
            event = Event(created_by_id=creator.id, **fields)
            db.add(event)
            db.commit()
            return event

    return _make


def auth_headers(email: str) -> dict[str, str]:
    return {"Authorization": f"Bearer dev_{email}"}


@pytest.fixture
def headers():
    return auth_headers
