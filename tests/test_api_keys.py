"""
Tests for API key management endpoints.
"""
from fastapi import status

from app.api.endpoints.api_keys import hash_api_key
from app.models.api_key import APIKey


def test_owner_can_create_list_and_deactivate(client, db_session, team, team_headers, make_member):
    owner = team_headers(team, role="owner")
    member = make_member(team, role="admin")

    response = client.post("/api/api-keys/", json={"name": "CI uploader", "member_id": member.id}, headers=owner)
    assert response.status_code == status.HTTP_201_CREATED
    created = response.json()
    assert created["key"].startswith("ft_")
    assert created["role"] == "admin"

    stored = db_session.query(APIKey).filter(APIKey.id == created["id"]).one()
    assert stored.key_hash == hash_api_key(created["key"])
    assert stored.key_hash != created["key"]

    listing = client.get("/api/api-keys/", headers=owner).json()
    assert listing["total"] == 1
    item = listing["items"][0]
    assert item["user_id"] == member.user_id
    assert item["key_masked"].endswith("...")
    assert "key" not in item

    response = client.delete(f"/api/api-keys/{created['id']}", headers=owner)
    assert response.status_code == status.HTTP_200_OK
    db_session.refresh(stored)
    assert stored.is_active is False


def test_admin_cannot_manage_keys(client, team, team_headers):
    response = client.get("/api/api-keys/", headers=team_headers(team, role="admin"))
    assert response.status_code == status.HTTP_403_FORBIDDEN


def test_cannot_create_key_for_other_team_member(client, make_team, make_member, team_headers):
    team_a = make_team("a")
    team_b = make_team("b")
    outsider = make_member(team_b)

    response = client.post(
        "/api/api-keys/",
        json={"name": "sneaky", "member_id": outsider.id},
        headers=team_headers(team_a, role="owner"),
    )
    assert response.status_code == status.HTTP_404_NOT_FOUND


def test_created_key_authenticates(client_with_auth, team, make_member):
    member = make_member(team, role="member")
    created = client_with_auth.post(
        "/api/api-keys/",
        json={"name": "reader", "member_id": member.id},
        headers={"X-API-Key": "test-key", "X-Team-Id": str(team.id)},
    ).json()

    response = client_with_auth.get("/api/fleet/hierarchy", headers={"X-API-Key": created["key"]})
    assert response.status_code == status.HTTP_200_OK

    response = client_with_auth.post("/api/fleet/organizations", json={"name": "x"}, headers={"X-API-Key": created["key"]})
    assert response.status_code == status.HTTP_403_FORBIDDEN
