"""
Activity logging service for the fleet audit trail.
"""
import logging
from typing import Optional, Dict, Any
from sqlalchemy.orm import Session
from fastapi import Request

from app.models.activity_log import ActivityLog
from app.core.auth import APIClient

logger = logging.getLogger(__name__)


def log_activity(
    db: Session,
    client: APIClient,
    action: str,
    resource_type: Optional[str] = None,
    resource_id: Optional[int] = None,
    details: Optional[Dict[str, Any]] = None,
    request: Optional[Request] = None,
) -> Optional[ActivityLog]:
    """
    Log an activity to the audit trail.

    Activity logging is non-critical: failures are logged and swallowed so the
    business operation that already committed is never reported as failed.

    Args:
        db: Database session
        client: Authenticated caller
        action: Action name (see ActivityAction)
        resource_type: Type of resource affected (see ResourceType)
        resource_id: ID of the affected resource
        details: Additional JSON details about the action
        request: FastAPI request object (for IP/user agent extraction)

    Returns:
        Created ActivityLog record, or None if it could not be written
    """
    ip_address = None
    user_agent = None
    if request:
        if request.client:
            ip_address = request.client.host
        forwarded_for = request.headers.get("X-Forwarded-For")
        if forwarded_for:
            ip_address = forwarded_for.split(",")[0].strip()
        user_agent = request.headers.get("User-Agent")
        if user_agent:
            user_agent = user_agent[:255]

    activity = ActivityLog(
        team_id=client.team_id,
        actor_user_id=client.user_id,
        actor_source=client.source,
        actor_role=client.role,
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
        details=details,
        ip_address=ip_address,
        user_agent=user_agent,
    )

    try:
        db.add(activity)
        db.commit()
        db.refresh(activity)
    except Exception as e:
        db.rollback()
        logger.warning(f"Failed to log activity '{action}' for {resource_type}={resource_id}: {e}")
        return None

    logger.debug(f"Logged activity: {action} by {client.user_id} ({client.role}, {client.source})")
    return activity


class ActivityAction:
    """Constants for activity actions."""
    REPORT_UPLOAD = "report_upload"
    REPORT_DELETE = "report_delete"
    MACHINE_DELETE = "machine_delete"
    MACHINE_ASSIGN = "machine_assign"
    CONTROL_CORRECTION = "control_correction"
    CORRECTION_REVERT = "correction_revert"
    ORGANIZATION_CREATE = "organization_create"
    ORGANIZATION_UPDATE = "organization_update"
    ORGANIZATION_DELETE = "organization_delete"
    SITE_CREATE = "site_create"
    SITE_UPDATE = "site_update"
    SITE_DELETE = "site_delete"
    GROUP_CREATE = "group_create"
    GROUP_UPDATE = "group_update"
    GROUP_DELETE = "group_delete"
    TEAM_CREATE = "team_create"
    MEMBER_ADD = "member_add"
    API_KEY_CREATE = "api_key_create"
    API_KEY_DEACTIVATE = "api_key_deactivate"


class ResourceType:
    """Constants for resource types."""
    MACHINE = "machine"
    REPORT = "report"
    ORGANIZATION = "organization"
    SITE = "site"
    GROUP = "group"
    TEAM = "team"
    MEMBER = "member"
    API_KEY = "api_key"
