"""
Activity log endpoints for the fleet audit trail.
"""
import logging
from typing import Optional
from datetime import datetime
from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.auth import require_role, APIClient
from app.models.activity_log import ActivityLog
from app.schemas.activity import ActivityLogResponse, ActivityLogListResponse

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/", response_model=ActivityLogListResponse)
async def list_activity_logs(
    limit: int = Query(50, ge=1, le=500, description="Maximum number of logs to return"),
    offset: int = Query(0, ge=0, description="Number of logs to skip"),
    start_date: Optional[datetime] = Query(None, description="Filter logs from this date"),
    end_date: Optional[datetime] = Query(None, description="Filter logs until this date"),
    actor_user_id: Optional[str] = Query(None, description="Filter by acting user"),
    action: Optional[str] = Query(None, description="Filter by action type"),
    resource_type: Optional[str] = Query(None, description="Filter by resource type"),
    client: APIClient = Depends(require_role("member")),
    db: Session = Depends(get_db),
):
    """
    List the team's activity, newest first.

    Every team member can read the audit trail of their own team.
    """
    try:
        query = db.query(ActivityLog).filter(ActivityLog.team_id == client.team_id)

        if start_date:
            query = query.filter(ActivityLog.timestamp >= start_date)
        if end_date:
            query = query.filter(ActivityLog.timestamp <= end_date)
        if actor_user_id:
            query = query.filter(ActivityLog.actor_user_id == actor_user_id)
        if action:
            query = query.filter(ActivityLog.action == action)
        if resource_type:
            query = query.filter(ActivityLog.resource_type == resource_type)

        total = query.count()
        logs = (
            query.order_by(ActivityLog.timestamp.desc(), ActivityLog.id.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )

        return ActivityLogListResponse(
            items=[ActivityLogResponse.model_validate(log) for log in logs],
            total=total,
            limit=limit,
            offset=offset,
        )
    except Exception as e:
        logger.error(f"Error listing activity logs: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve activity logs"
        )


@router.get("/{log_id}", response_model=ActivityLogResponse)
async def get_activity_log(
    log_id: int,
    client: APIClient = Depends(require_role("member")),
    db: Session = Depends(get_db),
):
    """Get one activity log entry of the caller's team."""
    log = (
        db.query(ActivityLog)
        .filter(ActivityLog.id == log_id, ActivityLog.team_id == client.team_id)
        .first()
    )
    if not log:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Activity log with id {log_id} not found"
        )
    return ActivityLogResponse.model_validate(log)
