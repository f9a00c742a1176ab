"""
Organization -> Site -> Group hierarchy management and its read projection.

Deleting a node removes the groups beneath it; machines in those groups are
moved to "unassigned" (group_id = NULL) and are never deleted here.
"""
import logging
from typing import Dict, List, Optional, Tuple

from sqlalchemy import Integer, String, Text, and_, cast, null, select, union_all
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.exceptions import Conflict, CrossTeamAssignment, NotFound
from app.models.hierarchy import MachineGroup, Organization, Site
from app.models.machine import Machine
from app.schemas.hierarchy import (
    GroupNode,
    HierarchyView,
    MachineNode,
    OrganizationNode,
    SiteNode,
)
from app.utils.scoring import mean_score

logger = logging.getLogger(__name__)

_UNSET = object()


class HierarchyService:
    """CRUD over the containment tree plus machine assignment."""

    def __init__(self, db: Session):
        self.db = db

    # Scoped lookups: nodes of other teams are reported as missing

    def get_organization(self, team_id: int, organization_id: int) -> Organization:
        organization = (
            self.db.query(Organization)
            .filter(Organization.id == organization_id, Organization.team_id == team_id)
            .first()
        )
        if organization is None:
            raise NotFound("Organization", organization_id)
        return organization

    def get_site(self, team_id: int, site_id: int) -> Site:
        site = (
            self.db.query(Site)
            .join(Organization, Site.organization_id == Organization.id)
            .filter(Site.id == site_id, Organization.team_id == team_id)
            .first()
        )
        if site is None:
            raise NotFound("Site", site_id)
        return site

    def get_group(self, team_id: int, group_id: int) -> MachineGroup:
        group = (
            self.db.query(MachineGroup)
            .join(Site, MachineGroup.site_id == Site.id)
            .join(Organization, Site.organization_id == Organization.id)
            .filter(MachineGroup.id == group_id, Organization.team_id == team_id)
            .first()
        )
        if group is None:
            raise NotFound("Group", group_id)
        return group

    def group_team_id(self, group_id: int) -> Optional[int]:
        """Owning team of any group, or None if the group does not exist."""
        return (
            self.db.query(Organization.team_id)
            .join(Site, Site.organization_id == Organization.id)
            .join(MachineGroup, MachineGroup.site_id == Site.id)
            .filter(MachineGroup.id == group_id)
            .scalar()
        )

    def _commit(self, entity, what: str, name: str):
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise Conflict(f"{what} named '{name}' already exists here", {"name": name})
        except Exception:
            self.db.rollback()
            raise
        if entity is not None:
            self.db.refresh(entity)
        return entity

    def _ensure_unique(self, query, what: str, name: str):
        if query.first() is not None:
            raise Conflict(f"{what} named '{name}' already exists here", {"name": name})

    # Create

    def create_organization(self, team_id: int, name: str, description: Optional[str] = None) -> Organization:
        name = name.strip()
        self._ensure_unique(
            self.db.query(Organization).filter(Organization.team_id == team_id, Organization.name == name),
            "Organization", name,
        )
        organization = Organization(team_id=team_id, name=name, description=description)
        self.db.add(organization)
        self._commit(organization, "Organization", name)
        logger.info(f"Created organization: id={organization.id}, team={team_id}, name='{name}'")
        return organization

    def create_site(self, team_id: int, organization_id: int, name: str, location: Optional[str] = None) -> Site:
        organization = self.get_organization(team_id, organization_id)
        name = name.strip()
        self._ensure_unique(
            self.db.query(Site).filter(Site.organization_id == organization.id, Site.name == name),
            "Site", name,
        )
        site = Site(organization_id=organization.id, name=name, location=location)
        self.db.add(site)
        self._commit(site, "Site", name)
        logger.info(f"Created site: id={site.id}, organization={organization.id}, name='{name}'")
        return site

    def create_group(self, team_id: int, site_id: int, name: str, description: Optional[str] = None) -> MachineGroup:
        site = self.get_site(team_id, site_id)
        name = name.strip()
        self._ensure_unique(
            self.db.query(MachineGroup).filter(MachineGroup.site_id == site.id, MachineGroup.name == name),
            "Group", name,
        )
        group = MachineGroup(site_id=site.id, name=name, description=description)
        self.db.add(group)
        self._commit(group, "Group", name)
        logger.info(f"Created group: id={group.id}, site={site.id}, name='{name}'")
        return group

    # Update

    def update_organization(self, team_id: int, organization_id: int, name: Optional[str] = None,
                            description=_UNSET) -> Organization:
        organization = self.get_organization(team_id, organization_id)
        if name is not None and name.strip() != organization.name:
            name = name.strip()
            self._ensure_unique(
                self.db.query(Organization).filter(Organization.team_id == team_id, Organization.name == name, Organization.id != organization.id),
                "Organization", name,
            )
            organization.name = name
        if description is not _UNSET:
            organization.description = description
        return self._commit(organization, "Organization", organization.name)

    def update_site(self, team_id: int, site_id: int, name: Optional[str] = None, location=_UNSET) -> Site:
        site = self.get_site(team_id, site_id)
        if name is not None and name.strip() != site.name:
            name = name.strip()
            self._ensure_unique(
                self.db.query(Site).filter(Site.organization_id == site.organization_id, Site.name == name, Site.id != site.id),
                "Site", name,
            )
            site.name = name
        if location is not _UNSET:
            site.location = location
        return self._commit(site, "Site", site.name)

    def update_group(self, team_id: int, group_id: int, name: Optional[str] = None,
                     description=_UNSET) -> MachineGroup:
        group = self.get_group(team_id, group_id)
        if name is not None and name.strip() != group.name:
            name = name.strip()
            self._ensure_unique(
                self.db.query(MachineGroup).filter(MachineGroup.site_id == group.site_id, MachineGroup.name == name, MachineGroup.id != group.id),
                "Group", name,
            )
            group.name = name
        if description is not _UNSET:
            group.description = description
        return self._commit(group, "Group", group.name)

    # Delete

    def _unassign_groups(self, group_ids: List[int]) -> int:
        if not group_ids:
            return 0
        count = (
            self.db.query(Machine)
            .filter(Machine.group_id.in_(group_ids))
            .update({Machine.group_id: None}, synchronize_session=False)
        )
        self.db.expire_all()
        return count

    def _delete(self, entity, group_ids: List[int], label: str) -> Tuple[int, int]:
        try:
            unassigned = self._unassign_groups(group_ids)
            self.db.delete(entity)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        logger.info(f"Deleted {label}: groups removed={len(group_ids)}, machines unassigned={unassigned}")
        return len(group_ids), unassigned

    def delete_group(self, team_id: int, group_id: int) -> Tuple[int, int]:
        """Delete a group. Returns (deleted groups, machines moved to unassigned)."""
        group = self.get_group(team_id, group_id)
        return self._delete(group, [group.id], f"group id={group_id}")

    def delete_site(self, team_id: int, site_id: int) -> Tuple[int, int]:
        """Delete a site and its groups."""
        site = self.get_site(team_id, site_id)
        group_ids = [gid for (gid,) in self.db.query(MachineGroup.id).filter(MachineGroup.site_id == site.id)]
        return self._delete(site, group_ids, f"site id={site_id}")

    def delete_organization(self, team_id: int, organization_id: int) -> Tuple[int, int]:
        """Delete an organization, its sites and their groups."""
        organization = self.get_organization(team_id, organization_id)
        group_ids = [
            gid for (gid,) in self.db.query(MachineGroup.id)
            .join(Site, MachineGroup.site_id == Site.id)
            .filter(Site.organization_id == organization.id)
        ]
        return self._delete(organization, group_ids, f"organization id={organization_id}")

    # Assignment

    def check_assignable(self, machine: Machine, group_id: Optional[int]) -> None:
        """Raise unless ``group_id`` is None or a group of the machine's own team."""
        if group_id is None:
            return
        owner_team = self.group_team_id(group_id)
        if owner_team is None:
            raise NotFound("Group", group_id)
        if owner_team != machine.team_id:
            logger.warning(
                f"Rejected cross-team assignment: machine={machine.id} (team {machine.team_id}) "
                f"-> group={group_id} (team {owner_team})"
            )
            raise CrossTeamAssignment(machine.id, group_id)

    def assign_machine(self, team_id: int, machine_id: int, group_id: Optional[int]) -> Machine:
        """Place a machine of the team in a group, or make it unassigned with None."""
        machine = (
            self.db.query(Machine)
            .filter(Machine.id == machine_id, Machine.team_id == team_id)
            .first()
        )
        if machine is None:
            raise NotFound("Machine", machine_id)
        self.check_assignable(machine, group_id)

        machine.group_id = group_id
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(machine)
        logger.info(f"Assigned machine {machine_id} to group {group_id}")
        return machine

    # Read projection

    def _tree_statement(self, team_id: int):
        """
        One UNION ALL statement returning every (org, site, group, machine) path
        plus the unassigned machines, so the view comes from a single snapshot.
        """
        org = Organization.__table__
        site = Site.__table__
        grp = MachineGroup.__table__
        m = Machine.__table__

        machine_columns = [
            m.c.id.label("machine_id"),
            m.c.group_id.label("machine_group_id"),
            m.c.hostname,
            m.c.machine_identifier,
            m.c.os,
            m.c.os_version,
            m.c.last_audit_date,
            m.c.last_score,
            m.c.last_grade,
            m.c.original_score,
            m.c.total_audits,
        ]

        tree = (
            select(
                org.c.id.label("org_id"),
                org.c.name.label("org_name"),
                org.c.description.label("org_description"),
                site.c.id.label("site_id"),
                site.c.name.label("site_name"),
                site.c.location.label("site_location"),
                grp.c.id.label("group_id"),
                grp.c.name.label("group_name"),
                grp.c.description.label("group_description"),
                *machine_columns,
            )
            .select_from(
                org.outerjoin(site, site.c.organization_id == org.c.id)
                .outerjoin(grp, grp.c.site_id == site.c.id)
                .outerjoin(m, and_(m.c.group_id == grp.c.id, m.c.team_id == team_id))
            )
            .where(org.c.team_id == team_id)
        )

        unassigned = (
            select(
                cast(null(), Integer).label("org_id"),
                cast(null(), String).label("org_name"),
                cast(null(), Text).label("org_description"),
                cast(null(), Integer).label("site_id"),
                cast(null(), String).label("site_name"),
                cast(null(), String).label("site_location"),
                cast(null(), Integer).label("group_id"),
                cast(null(), String).label("group_name"),
                cast(null(), Text).label("group_description"),
                *machine_columns,
            )
            .where(m.c.team_id == team_id, m.c.group_id.is_(None))
        )
        return union_all(tree, unassigned)

    def build_tree(self, team_id: int) -> HierarchyView:
        """
        Read-only projection of the team's hierarchy with machine counts and
        average last scores rolled up at each level.
        """
        rows = self.db.execute(self._tree_statement(team_id)).mappings().all()

        organizations: Dict[int, dict] = {}
        sites: Dict[int, dict] = {}
        groups: Dict[int, dict] = {}
        unassigned: List[MachineNode] = []

        for row in rows:
            machine = None
            if row["machine_id"] is not None:
                machine = MachineNode(
                    id=row["machine_id"],
                    group_id=row["machine_group_id"],
                    hostname=row["hostname"],
                    machine_identifier=row["machine_identifier"],
                    os=row["os"],
                    os_version=row["os_version"],
                    last_audit_date=row["last_audit_date"],
                    last_score=row["last_score"],
                    last_grade=row["last_grade"],
                    original_score=row["original_score"],
                    total_audits=row["total_audits"] or 0,
                )

            if row["org_id"] is None:
                if machine is not None:
                    unassigned.append(machine)
                continue

            org_node = organizations.setdefault(row["org_id"], {
                "id": row["org_id"], "team_id": team_id, "name": row["org_name"],
                "description": row["org_description"], "sites": {},
            })
            if row["site_id"] is None:
                continue
            site_node = sites.setdefault(row["site_id"], {
                "id": row["site_id"], "organization_id": row["org_id"], "name": row["site_name"],
                "location": row["site_location"], "groups": {},
            })
            org_node["sites"][row["site_id"]] = site_node
            if row["group_id"] is None:
                continue
            group_node = groups.setdefault(row["group_id"], {
                "id": row["group_id"], "site_id": row["site_id"], "name": row["group_name"],
                "description": row["group_description"], "machines": [],
            })
            site_node["groups"][row["group_id"]] = group_node
            if machine is not None:
                group_node["machines"].append(machine)

        def by_name(nodes):
            return sorted(nodes, key=lambda n: (n["name"].lower(), n["id"]))

        def by_hostname(machines):
            return sorted(machines, key=lambda mn: (mn.hostname.lower(), mn.id))

        org_views = []
        for org_node in by_name(organizations.values()):
            site_views = []
            for site_node in by_name(org_node["sites"].values()):
                group_views = []
                for group_node in by_name(site_node["groups"].values()):
                    machines = by_hostname(group_node["machines"])
                    group_views.append(GroupNode(
                        id=group_node["id"],
                        site_id=group_node["site_id"],
                        name=group_node["name"],
                        description=group_node["description"],
                        machine_count=len(machines),
                        average_score=mean_score(mn.last_score for mn in machines),
                        machines=machines,
                    ))
                site_machines = [mn for g in group_views for mn in g.machines]
                site_views.append(SiteNode(
                    id=site_node["id"],
                    organization_id=site_node["organization_id"],
                    name=site_node["name"],
                    location=site_node["location"],
                    machine_count=len(site_machines),
                    average_score=mean_score(mn.last_score for mn in site_machines),
                    groups=group_views,
                ))
            org_machines = [mn for s in site_views for g in s.groups for mn in g.machines]
            org_views.append(OrganizationNode(
                id=org_node["id"],
                team_id=org_node["team_id"],
                name=org_node["name"],
                description=org_node["description"],
                machine_count=len(org_machines),
                average_score=mean_score(mn.last_score for mn in org_machines),
                sites=site_views,
            ))

        return HierarchyView(organizations=org_views, unassigned_machines=by_hostname(unassigned))
