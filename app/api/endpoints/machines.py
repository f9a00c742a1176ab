"""
Machine endpoints (router mounted under /api/fleet/machines).
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.orm import Session

from app.core.auth import APIClient, require_role
from app.core.database import get_db
from app.core.exceptions import FleetError
from app.schemas.machine import (
    MachineAssignRequest,
    MachineDetailResponse,
    MachineListResponse,
    MachineResponse,
    ScoreHistoryPoint,
)
from app.services.activity_service import ActivityAction, ResourceType, log_activity
from app.services.hierarchy_service import HierarchyService
from app.services.machine_registry import MachineRegistry

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("", response_model=MachineListResponse)
async def list_machines(
    os: Optional[str] = Query(None, description="Filter by OS"),
    group_id: Optional[int] = Query(None, description="Filter by group"),
    unassigned: bool = Query(False, description="Only machines without a group"),
    client: APIClient = Depends(require_role("member")),
    db: Session = Depends(get_db),
):
    """List the team's machines ordered by hostname."""
    machines = MachineRegistry(db).list_machines(client.team_id, os=os, group_id=group_id, unassigned=unassigned)
    return MachineListResponse(
        items=[MachineResponse.model_validate(m) for m in machines],
        total=len(machines),
    )


@router.get("/{machine_id}", response_model=MachineDetailResponse)
async def get_machine(
    machine_id: int,
    client: APIClient = Depends(require_role("member")),
    db: Session = Depends(get_db),
):
    """Machine with its score history (oldest report first)."""
    registry = MachineRegistry(db)
    machine = registry.get_machine(client.team_id, machine_id)
    history = [
        ScoreHistoryPoint(
            report_id=r.id,
            audit_date=r.audit_date,
            score=r.score,
            original_score=r.original_score,
            grade=r.grade,
        )
        for r in registry.score_history(machine)
    ]
    return MachineDetailResponse(**MachineResponse.model_validate(machine).model_dump(), history=history)


@router.put("/{machine_id}/assign", response_model=MachineResponse)
async def assign_machine(
    machine_id: int,
    body: MachineAssignRequest,
    request: Request,
    client: APIClient = Depends(require_role("admin")),
    db: Session = Depends(get_db),
):
    """Move a machine into one of the team's groups, or unassign it with null."""
    machine = HierarchyService(db).assign_machine(client.team_id, machine_id, body.group_id)

    log_activity(
        db=db,
        client=client,
        action=ActivityAction.MACHINE_ASSIGN,
        resource_type=ResourceType.MACHINE,
        resource_id=machine_id,
        details={"group_id": body.group_id},
        request=request,
    )
    return MachineResponse.model_validate(machine)


@router.delete("/{machine_id}", status_code=status.HTTP_200_OK)
async def delete_machine(
    machine_id: int,
    request: Request,
    client: APIClient = Depends(require_role("admin")),
    db: Session = Depends(get_db),
):
    """Delete a machine together with its reports and their corrections."""
    try:
        hostname = MachineRegistry(db).delete_machine(client.team_id, machine_id)
    except (HTTPException, FleetError):
        raise
    except Exception as e:
        logger.error(f"Error deleting machine {machine_id}: {e}", exc_info=True)
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to delete machine",
        )

    log_activity(
        db=db,
        client=client,
        action=ActivityAction.MACHINE_DELETE,
        resource_type=ResourceType.MACHINE,
        resource_id=machine_id,
        details={"hostname": hostname},
        request=request,
    )
    return {"message": "Machine deleted successfully", "id": machine_id}
