"""
Tests for the activity log (audit trail).
"""
from fastapi import status


def test_mutations_are_logged_per_team(client, make_team, team_headers, upload):
    team_a = make_team("a")
    team_b = make_team("b")
    body = upload(team_a, "audited-01", passes=1, fails=1)
    client.post(
        f"/api/fleet/reports/{body['report']['id']}/corrections",
        json={"control_id": "C2", "corrected_status": "PASS", "justification": "ok"},
        headers=team_headers(team_a),
    )

    response = client.get("/api/activity/", headers=team_headers(team_a, role="member"))
    assert response.status_code == status.HTTP_200_OK
    actions = [item["action"] for item in response.json()["items"]]
    assert "report_upload" in actions
    assert "control_correction" in actions
    assert all(item["actor_user_id"] == "alice" for item in response.json()["items"])

    other = client.get("/api/activity/", headers=team_headers(team_b)).json()
    assert other["total"] == 0


def test_filter_by_action(client, team, team_headers, upload):
    upload(team, "f-01", passes=1)
    client.post("/api/fleet/organizations", json={"name": "Filtered"}, headers=team_headers(team))

    response = client.get("/api/activity/?action=organization_create", headers=team_headers(team))
    items = response.json()["items"]
    assert len(items) == 1
    assert items[0]["details"] == {"name": "Filtered"}


def test_correction_entries_point_at_the_report(client, team, team_headers, upload):
    report_id = upload(team, "corr-01", passes=1, fails=1)["report"]["id"]
    headers = team_headers(team)
    client.post(
        f"/api/fleet/reports/{report_id}/corrections",
        json={"control_id": "C2", "corrected_status": "PASS", "justification": "ok"},
        headers=headers,
    )
    client.delete(f"/api/fleet/reports/{report_id}/corrections/C2", headers=headers)

    for action in ("control_correction", "correction_revert"):
        items = client.get(f"/api/activity/?action={action}", headers=headers).json()["items"]
        assert len(items) == 1
        assert items[0]["resource_type"] == "report"
        assert items[0]["resource_id"] == report_id
        assert items[0]["details"]["control_id"] == "C2"
