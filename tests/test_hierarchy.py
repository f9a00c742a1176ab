"""
Tests for the Organization -> Site -> Group hierarchy and machine assignment.
"""
import pytest
from fastapi import status

from app.core.exceptions import Conflict, CrossTeamAssignment, NotFound
from app.models import Machine, MachineGroup, Site
from app.services.hierarchy_service import HierarchyService
from app.services.machine_registry import MachineRegistry
from app.services.report_service import ReportService


@pytest.fixture
def tree(db_session, team):
    """One organization with one site and one group."""
    service = HierarchyService(db_session)
    org = service.create_organization(team.id, "Acme")
    site = service.create_site(team.id, org.id, "Paris", location="FR")
    group = service.create_group(team.id, site.id, "Web servers")
    return org, site, group


def test_create_and_view_tree(client, team, team_headers, upload):
    headers = team_headers(team)
    org = client.post("/api/fleet/organizations", json={"name": "Acme"}, headers=headers)
    assert org.status_code == status.HTTP_201_CREATED
    site = client.post(
        "/api/fleet/sites", json={"organization_id": org.json()["id"], "name": "Lyon"}, headers=headers
    )
    assert site.status_code == status.HTTP_201_CREATED
    group = client.post(
        "/api/fleet/groups", json={"site_id": site.json()["id"], "name": "DB"}, headers=headers
    )
    assert group.status_code == status.HTTP_201_CREATED

    upload(team, "db-01", passes=8, fails=2, data={"group_id": str(group.json()["id"])})
    upload(team, "db-02", passes=9, fails=1, data={"group_id": str(group.json()["id"])})
    upload(team, "loose-01", passes=1)

    response = client.get("/api/fleet/hierarchy", headers=team_headers(team, role="member"))
    assert response.status_code == status.HTTP_200_OK
    view = response.json()

    assert len(view["organizations"]) == 1
    org_node = view["organizations"][0]
    assert org_node["name"] == "Acme"
    assert org_node["machine_count"] == 2
    assert org_node["average_score"] == 85
    group_node = org_node["sites"][0]["groups"][0]
    assert [m["hostname"] for m in group_node["machines"]] == ["db-01", "db-02"]
    assert group_node["average_score"] == 85
    assert [m["hostname"] for m in view["unassigned_machines"]] == ["loose-01"]


def test_empty_nodes_have_null_average(db_session, team, tree):
    view = HierarchyService(db_session).build_tree(team.id)
    org = view.organizations[0]
    assert org.machine_count == 0
    assert org.average_score is None
    assert org.sites[0].groups[0].machines == []


def test_duplicate_sibling_names_conflict(db_session, team, tree):
    org, site, group = tree
    service = HierarchyService(db_session)

    with pytest.raises(Conflict):
        service.create_organization(team.id, "Acme")
    with pytest.raises(Conflict):
        service.create_site(team.id, org.id, "Paris")
    with pytest.raises(Conflict):
        service.create_group(team.id, site.id, "Web servers")

    # Same name under another parent is fine
    other_site = service.create_site(team.id, org.id, "Berlin")
    assert service.create_group(team.id, other_site.id, "Web servers").id != group.id


def test_rename_to_sibling_name_conflicts(client, db_session, team, team_headers, tree):
    org, site, group = tree
    service = HierarchyService(db_session)
    service.create_group(team.id, site.id, "Mail")

    response = client.put(f"/api/fleet/groups/{group.id}", json={"name": "Mail"}, headers=team_headers(team))
    assert response.status_code == status.HTTP_409_CONFLICT
    assert response.json()["error"] == "Conflict"

    response = client.put(f"/api/fleet/groups/{group.id}", json={"name": "Frontends"}, headers=team_headers(team))
    assert response.status_code == status.HTTP_200_OK
    assert response.json()["name"] == "Frontends"


def test_delete_organization_unassigns_machines(client, db_session, team, team_headers, tree):
    org, site, group = tree
    registry = MachineRegistry(db_session)
    machine, _ = registry.resolve_machine(team.id, "web-01")
    machine.group_id = group.id
    db_session.commit()
    machine_id = machine.id
    site_id, group_id = site.id, group.id

    response = client.delete(f"/api/fleet/organizations/{org.id}", headers=team_headers(team))
    assert response.status_code == status.HTTP_200_OK
    body = response.json()
    assert body["deleted_groups"] == 1
    assert body["unassigned_machines"] == 1

    db_session.expire_all()
    survivor = db_session.get(Machine, machine_id)
    assert survivor is not None
    assert survivor.group_id is None
    assert db_session.query(Site).filter(Site.id == site_id).count() == 0
    assert db_session.query(MachineGroup).filter(MachineGroup.id == group_id).count() == 0


def test_delete_site_and_group(db_session, team, tree):
    org, site, group = tree
    service = HierarchyService(db_session)
    second = service.create_group(team.id, site.id, "Batch")

    assert service.delete_group(team.id, second.id) == (1, 0)
    assert service.delete_site(team.id, site.id) == (1, 0)
    view = service.build_tree(team.id)
    assert view.organizations[0].sites == []


def test_assign_and_unassign_machine(client, db_session, team, team_headers, tree):
    _, _, group = tree
    machine, _ = MachineRegistry(db_session).resolve_machine(team.id, "app-01")
    db_session.commit()

    response = client.put(
        f"/api/fleet/machines/{machine.id}/assign", json={"group_id": group.id}, headers=team_headers(team)
    )
    assert response.status_code == status.HTTP_200_OK
    assert response.json()["group_id"] == group.id

    response = client.put(
        f"/api/fleet/machines/{machine.id}/assign", json={"group_id": None}, headers=team_headers(team)
    )
    assert response.status_code == status.HTTP_200_OK
    assert response.json()["group_id"] is None


def test_cross_team_assignment_rejected(client, db_session, make_team, team_headers):
    team_a = make_team("a")
    team_b = make_team("b")
    service = HierarchyService(db_session)
    org_b = service.create_organization(team_b.id, "Other")
    site_b = service.create_site(team_b.id, org_b.id, "Remote")
    group_b = service.create_group(team_b.id, site_b.id, "Theirs")
    machine, _ = MachineRegistry(db_session).resolve_machine(team_a.id, "mine-01")
    db_session.commit()

    with pytest.raises(CrossTeamAssignment):
        service.assign_machine(team_a.id, machine.id, group_b.id)

    response = client.put(
        f"/api/fleet/machines/{machine.id}/assign", json={"group_id": group_b.id}, headers=team_headers(team_a)
    )
    assert response.status_code == status.HTTP_403_FORBIDDEN
    assert response.json()["error"] == "CrossTeamAssignment"

    db_session.expire_all()
    assert db_session.get(Machine, machine.id).group_id is None


def test_assign_to_missing_group_not_found(db_session, team):
    machine, _ = MachineRegistry(db_session).resolve_machine(team.id, "x-01")
    db_session.commit()
    with pytest.raises(NotFound):
        HierarchyService(db_session).assign_machine(team.id, machine.id, 987654)


def test_other_team_nodes_are_invisible(client, make_team, team_headers, db_session):
    team_a = make_team("a")
    team_b = make_team("b")
    org = HierarchyService(db_session).create_organization(team_a.id, "Private")

    response = client.delete(f"/api/fleet/organizations/{org.id}", headers=team_headers(team_b))
    assert response.status_code == status.HTTP_404_NOT_FOUND
    view = client.get("/api/fleet/hierarchy", headers=team_headers(team_b)).json()
    assert view["organizations"] == []


def test_member_cannot_mutate_hierarchy(client, team, team_headers):
    response = client.post(
        "/api/fleet/organizations", json={"name": "Nope"}, headers=team_headers(team, role="member")
    )
    assert response.status_code == status.HTTP_403_FORBIDDEN


def test_deleting_populated_group_lists_machine_as_unassigned(db_session, team, tree, report_payload):
    _, _, group = tree
    result = ReportService(db_session).ingest(team.id, report_payload(passes=1), "m1", group_id=group.id)
    assert result.machine.group_id == group.id
    machine_id = result.machine.id

    service = HierarchyService(db_session)
    assert service.delete_group(team.id, group.id) == (1, 1)

    db_session.expire_all()
    assert db_session.get(Machine, machine_id).group_id is None
    view = service.build_tree(team.id)
    assert [m.hostname for m in view.unassigned_machines] == ["m1"]
    assert view.organizations[0].sites[0].groups == []
