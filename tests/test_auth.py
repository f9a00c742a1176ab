"""
Tests for API key authentication and team roles.
"""
from fastapi import status

from app.api.endpoints.api_keys import hash_api_key
from app.core.roles import has_full_access, has_permission, normalize_role
from app.models.api_key import APIKey


def _db_key(db_session, member, raw_key, active=True):
    key = APIKey(key_hash=hash_api_key(raw_key), label="test", member_id=member.id, is_active=active)
    db_session.add(key)
    db_session.commit()
    return key


def test_role_aliases():
    assert normalize_role("viewer") == "member"
    assert normalize_role("read_only") == "member"
    assert normalize_role("team-admin") == "admin"
    assert normalize_role("OWNER") == "owner"
    assert normalize_role("something-else") == "member"


def test_role_hierarchy():
    assert has_permission("owner", "admin")
    assert has_permission("admin", "member")
    assert not has_permission("member", "admin")
    assert has_full_access("admin")
    assert not has_full_access("member")


def test_missing_api_key_rejected(client_with_auth):
    response = client_with_auth.get("/api/fleet/stats")
    assert response.status_code == status.HTTP_401_UNAUTHORIZED
    assert response.json()["detail"] == "Missing API key"


def test_invalid_api_key_rejected(client_with_auth):
    response = client_with_auth.get("/api/fleet/stats", headers={"X-API-Key": "nope"})
    assert response.status_code == status.HTTP_401_UNAUTHORIZED
    assert response.json()["detail"] == "Invalid API key"


def test_static_key_acts_on_team_header(client_with_auth, team):
    response = client_with_auth.get(
        "/api/fleet/stats", headers={"X-API-Key": "test-key", "X-Team-Id": str(team.id)}
    )
    assert response.status_code == status.HTTP_200_OK


def test_db_key_is_bound_to_member_team(client_with_auth, db_session, make_team, make_member, report_payload):
    team = make_team("keyed")
    other = make_team("other")
    member = make_member(team, role="admin")
    _db_key(db_session, member, "ft_admin_key")

    # X-Team-Id cannot redirect a DB key to another team
    response = client_with_auth.post(
        "/api/fleet/upload-report",
        files={"file": ("r.json", report_payload(passes=1), "application/json")},
        data={"machine_name": "keyed-01"},
        headers={"X-API-Key": "ft_admin_key", "X-Team-Id": str(other.id)},
    )
    assert response.status_code == status.HTTP_201_CREATED
    assert response.json()["machine"]["team_id"] == team.id
    assert response.json()["report"]["uploaded_by"] == member.user_id


def test_member_key_is_read_only(client_with_auth, db_session, make_team, make_member, report_payload):
    team = make_team("ro")
    member = make_member(team, role="viewer")
    _db_key(db_session, member, "ft_member_key")

    response = client_with_auth.get("/api/fleet/stats", headers={"X-API-Key": "ft_member_key"})
    assert response.status_code == status.HTTP_200_OK

    response = client_with_auth.post(
        "/api/fleet/upload-report",
        files={"file": ("r.json", report_payload(passes=1), "application/json")},
        data={"machine_name": "ro-01"},
        headers={"X-API-Key": "ft_member_key"},
    )
    assert response.status_code == status.HTTP_403_FORBIDDEN


def test_inactive_key_rejected(client_with_auth, db_session, team, make_member):
    member = make_member(team)
    _db_key(db_session, member, "ft_inactive_key", active=False)

    response = client_with_auth.get("/api/fleet/stats", headers={"X-API-Key": "ft_inactive_key"})
    assert response.status_code == status.HTTP_401_UNAUTHORIZED


def test_db_key_records_last_use(client_with_auth, db_session, team, make_member):
    member = make_member(team, role="member")
    key = _db_key(db_session, member, "ft_used_key")
    assert key.last_used_at is None

    client_with_auth.get("/api/fleet/stats", headers={"X-API-Key": "ft_used_key"})

    db_session.refresh(key)
    assert key.last_used_at is not None


def test_auth_me_reports_caller(client, team, team_headers):
    response = client.get("/api/auth/me", headers=team_headers(team, role="team_admin", user_id="dana"))
    assert response.status_code == status.HTTP_200_OK
    body = response.json()
    assert body["user_id"] == "dana"
    assert body["team_id"] == team.id
    assert body["role"] == "admin"
    assert body["is_team_admin"] is True
