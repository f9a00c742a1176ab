"""
Pytest configuration and fixtures.
"""
import json
import uuid

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from fastapi.testclient import TestClient
from unittest.mock import patch

from app.core.database import Base, get_db
from app.main import app
from app.models import Team, TeamMember

# File-based SQLite (more reliable than in-memory across sessions/threads)
TEST_DATABASE_URL = "sqlite:///./test_fleet_tracker.db"

test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    pool_pre_ping=False,
)

TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


@pytest.fixture(scope="session", autouse=True)
def setup_test_database():
    """
    Create all tables before tests run and drop them after the session.
    """
    Base.metadata.drop_all(bind=test_engine)
    Base.metadata.create_all(bind=test_engine)
    yield
    Base.metadata.drop_all(bind=test_engine)


@pytest.fixture(scope="function", autouse=True)
def disable_api_key():
    """Disable API key authentication: identity comes from X-* headers."""
    with patch("app.core.config.settings.API_KEY", None):
        yield


def _override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture(scope="function")
def client():
    """
    Test client with the database dependency pointed at the test database.

    A new session is created for each request, as FastAPI expects.
    """
    app.dependency_overrides[get_db] = _override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
def client_with_auth():
    """Test client with API key authentication enabled (static key "test-key")."""
    app.dependency_overrides[get_db] = _override_get_db
    with patch("app.core.config.settings.API_KEY", "test-key"):
        yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def session_factory():
    """Session factory bound to the test database, for tests that need several sessions."""
    return TestingSessionLocal


@pytest.fixture(scope="function")
def db_session():
    """Database session for tests that need direct DB access."""
    db = TestingSessionLocal()
    try:
        yield db
        db.rollback()
    finally:
        db.close()


@pytest.fixture
def make_team(db_session):
    """Factory creating a team with a unique name (the test database is shared)."""
    def _make(prefix: str = "team") -> Team:
        team = Team(name=f"{prefix}-{uuid.uuid4().hex[:8]}")
        db_session.add(team)
        db_session.commit()
        db_session.refresh(team)
        return team
    return _make


@pytest.fixture
def team(make_team):
    return make_team()


@pytest.fixture
def make_member(db_session):
    """Factory adding a member with a team role."""
    def _make(team: Team, role: str = "admin", user_id: str = None) -> TeamMember:
        member = TeamMember(team_id=team.id, user_id=user_id or f"user-{uuid.uuid4().hex[:8]}", role=role)
        db_session.add(member)
        db_session.commit()
        db_session.refresh(member)
        return member
    return _make


@pytest.fixture
def team_headers():
    """Identity headers trusted when API_KEY is unset."""
    def _headers(team: Team, role: str = "admin", user_id: str = "alice") -> dict:
        return {"X-Team-Id": str(team.id), "X-Team-Role": role, "X-User-Id": user_id}
    return _headers


@pytest.fixture
def report_payload():
    """
    Factory for flat-shape report JSON.

    Controls are numbered in order: passes first, then fails, then warnings
    (e.g. passes=8, fails=1, warns=1 gives C1..C8 PASS, C9 FAIL, C10 WARN).
    """
    def _payload(passes: int = 0, fails: int = 0, warns: int = 0, as_bytes: bool = True, **extra):
        statuses = ["PASS"] * passes + ["FAIL"] * fails + ["WARN"] * warns
        data = {
            "os": "linux",
            "auditDate": "2026-03-01T10:00:00Z",
            "controls": [
                {"id": f"C{i}", "name": f"Control {i}", "category": "General", "status": status}
                for i, status in enumerate(statuses, start=1)
            ],
        }
        data.update(extra)
        text = json.dumps(data)
        return text.encode() if as_bytes else text
    return _payload


@pytest.fixture
def upload(client, team_headers, report_payload):
    """Upload a report through the API and return the decoded response."""
    def _upload(team: Team, machine_name: str, passes: int = 0, fails: int = 0, warns: int = 0,
                role: str = "admin", expected_status: int = 201, data: dict = None, **extra):
        form = {"machine_name": machine_name}
        if data:
            form.update(data)
        response = client.post(
            "/api/fleet/upload-report",
            files={"file": ("report.json", report_payload(passes, fails, warns, **extra), "application/json")},
            data=form,
            headers=team_headers(team, role=role),
        )
        assert response.status_code == expected_status, response.text
        return response.json()
    return _upload
