"""
Hierarchy endpoints (router mounted under /api/fleet).

GET /hierarchy returns the whole tree; organizations, sites and groups each
have POST (create), PUT /{id} (rename/update) and DELETE /{id}.
"""
import logging

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from app.core.auth import APIClient, require_role
from app.core.database import get_db
from app.schemas.hierarchy import (
    GroupCreateRequest,
    GroupResponse,
    GroupUpdateRequest,
    HierarchyDeleteResponse,
    HierarchyView,
    OrganizationCreateRequest,
    OrganizationResponse,
    OrganizationUpdateRequest,
    SiteCreateRequest,
    SiteResponse,
    SiteUpdateRequest,
)
from app.services.activity_service import ActivityAction, ResourceType, log_activity
from app.services.hierarchy_service import HierarchyService

logger = logging.getLogger(__name__)

router = APIRouter()


def _update_kwargs(body, *optional_fields):
    """Only fields the caller actually sent; a sent null clears the field."""
    sent = body.model_dump(exclude_unset=True)
    kwargs = {"name": sent.get("name")}
    for field in optional_fields:
        if field in sent:
            kwargs[field] = sent[field]
    return kwargs


@router.get("/hierarchy", response_model=HierarchyView)
async def get_hierarchy(
    client: APIClient = Depends(require_role("member")),
    db: Session = Depends(get_db),
):
    """Organization -> Site -> Group -> Machine tree with counts and average scores."""
    return HierarchyService(db).build_tree(client.team_id)


# Organizations

@router.post("/organizations", response_model=OrganizationResponse, status_code=status.HTTP_201_CREATED)
async def create_organization(
    body: OrganizationCreateRequest,
    request: Request,
    client: APIClient = Depends(require_role("admin")),
    db: Session = Depends(get_db),
):
    organization = HierarchyService(db).create_organization(client.team_id, body.name, body.description)
    response = OrganizationResponse.model_validate(organization)
    log_activity(
        db=db, client=client, action=ActivityAction.ORGANIZATION_CREATE,
        resource_type=ResourceType.ORGANIZATION, resource_id=response.id,
        details={"name": response.name}, request=request,
    )
    return response


@router.put("/organizations/{organization_id}", response_model=OrganizationResponse)
async def update_organization(
    organization_id: int,
    body: OrganizationUpdateRequest,
    request: Request,
    client: APIClient = Depends(require_role("admin")),
    db: Session = Depends(get_db),
):
    organization = HierarchyService(db).update_organization(
        client.team_id, organization_id, **_update_kwargs(body, "description")
    )
    response = OrganizationResponse.model_validate(organization)
    log_activity(
        db=db, client=client, action=ActivityAction.ORGANIZATION_UPDATE,
        resource_type=ResourceType.ORGANIZATION, resource_id=organization_id,
        details=body.model_dump(exclude_unset=True), request=request,
    )
    return response


@router.delete("/organizations/{organization_id}", response_model=HierarchyDeleteResponse)
async def delete_organization(
    organization_id: int,
    request: Request,
    client: APIClient = Depends(require_role("admin")),
    db: Session = Depends(get_db),
):
    """Delete an organization with its sites and groups; their machines become unassigned."""
    deleted_groups, unassigned = HierarchyService(db).delete_organization(client.team_id, organization_id)
    log_activity(
        db=db, client=client, action=ActivityAction.ORGANIZATION_DELETE,
        resource_type=ResourceType.ORGANIZATION, resource_id=organization_id,
        details={"deleted_groups": deleted_groups, "unassigned_machines": unassigned}, request=request,
    )
    return HierarchyDeleteResponse(
        message="Organization deleted successfully",
        id=organization_id,
        deleted_groups=deleted_groups,
        unassigned_machines=unassigned,
    )


# Sites

@router.post("/sites", response_model=SiteResponse, status_code=status.HTTP_201_CREATED)
async def create_site(
    body: SiteCreateRequest,
    request: Request,
    client: APIClient = Depends(require_role("admin")),
    db: Session = Depends(get_db),
):
    site = HierarchyService(db).create_site(client.team_id, body.organization_id, body.name, body.location)
    response = SiteResponse.model_validate(site)
    log_activity(
        db=db, client=client, action=ActivityAction.SITE_CREATE,
        resource_type=ResourceType.SITE, resource_id=response.id,
        details={"name": response.name, "organization_id": response.organization_id}, request=request,
    )
    return response


@router.put("/sites/{site_id}", response_model=SiteResponse)
async def update_site(
    site_id: int,
    body: SiteUpdateRequest,
    request: Request,
    client: APIClient = Depends(require_role("admin")),
    db: Session = Depends(get_db),
):
    site = HierarchyService(db).update_site(client.team_id, site_id, **_update_kwargs(body, "location"))
    response = SiteResponse.model_validate(site)
    log_activity(
        db=db, client=client, action=ActivityAction.SITE_UPDATE,
        resource_type=ResourceType.SITE, resource_id=site_id,
        details=body.model_dump(exclude_unset=True), request=request,
    )
    return response


@router.delete("/sites/{site_id}", response_model=HierarchyDeleteResponse)
async def delete_site(
    site_id: int,
    request: Request,
    client: APIClient = Depends(require_role("admin")),
    db: Session = Depends(get_db),
):
    """Delete a site with its groups; their machines become unassigned."""
    deleted_groups, unassigned = HierarchyService(db).delete_site(client.team_id, site_id)
    log_activity(
        db=db, client=client, action=ActivityAction.SITE_DELETE,
        resource_type=ResourceType.SITE, resource_id=site_id,
        details={"deleted_groups": deleted_groups, "unassigned_machines": unassigned}, request=request,
    )
    return HierarchyDeleteResponse(
        message="Site deleted successfully",
        id=site_id,
        deleted_groups=deleted_groups,
        unassigned_machines=unassigned,
    )


# Groups

@router.post("/groups", response_model=GroupResponse, status_code=status.HTTP_201_CREATED)
async def create_group(
    body: GroupCreateRequest,
    request: Request,
    client: APIClient = Depends(require_role("admin")),
    db: Session = Depends(get_db),
):
    group = HierarchyService(db).create_group(client.team_id, body.site_id, body.name, body.description)
    response = GroupResponse.model_validate(group)
    log_activity(
        db=db, client=client, action=ActivityAction.GROUP_CREATE,
        resource_type=ResourceType.GROUP, resource_id=response.id,
        details={"name": response.name, "site_id": response.site_id}, request=request,
    )
    return response


@router.put("/groups/{group_id}", response_model=GroupResponse)
async def update_group(
    group_id: int,
    body: GroupUpdateRequest,
    request: Request,
    client: APIClient = Depends(require_role("admin")),
    db: Session = Depends(get_db),
):
    group = HierarchyService(db).update_group(client.team_id, group_id, **_update_kwargs(body, "description"))
    response = GroupResponse.model_validate(group)
    log_activity(
        db=db, client=client, action=ActivityAction.GROUP_UPDATE,
        resource_type=ResourceType.GROUP, resource_id=group_id,
        details=body.model_dump(exclude_unset=True), request=request,
    )
    return response


@router.delete("/groups/{group_id}", response_model=HierarchyDeleteResponse)
async def delete_group(
    group_id: int,
    request: Request,
    client: APIClient = Depends(require_role("admin")),
    db: Session = Depends(get_db),
):
    """Delete a group; its machines become unassigned."""
    deleted_groups, unassigned = HierarchyService(db).delete_group(client.team_id, group_id)
    log_activity(
        db=db, client=client, action=ActivityAction.GROUP_DELETE,
        resource_type=ResourceType.GROUP, resource_id=group_id,
        details={"deleted_groups": deleted_groups, "unassigned_machines": unassigned}, request=request,
    )
    return HierarchyDeleteResponse(
        message="Group deleted successfully",
        id=group_id,
        deleted_groups=deleted_groups,
        unassigned_machines=unassigned,
    )
