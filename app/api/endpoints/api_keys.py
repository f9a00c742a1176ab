"""
API key management endpoints (team owners).

A key is bound to one member of the caller's team and acts with that
member's role. Only the salted hash is stored.
"""
import logging
import secrets
import hashlib
from fastapi import APIRouter, Depends, HTTPException, status, Request
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.database import get_db
from app.core.auth import require_role, get_current_api_client, APIClient
from app.core.exceptions import NotFound
from app.core.roles import has_full_access
from app.models.api_key import APIKey
from app.models.team import TeamMember
from app.services.activity_service import log_activity, ActivityAction, ResourceType
from app.schemas.api_key import (
    APIKeyCreateRequest,
    APIKeyResponse,
    APIKeyCreateResponse,
    APIKeyListResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def generate_api_key() -> str:
    """Generate a secure random API key."""
    return f"ft_{secrets.token_urlsafe(32)}"


def hash_api_key(key: str) -> str:
    """Hash an API key using SHA-256 with the configured salt."""
    return hashlib.sha256(f"{settings.API_KEY_SALT}{key}".encode()).hexdigest()


def _mask(key_hash: str) -> str:
    return f"{key_hash[:8]}..." if len(key_hash) > 8 else "***"


def _team_key(db: Session, team_id: int, key_id: int) -> APIKey:
    db_key = (
        db.query(APIKey)
        .join(TeamMember, APIKey.member_id == TeamMember.id)
        .filter(APIKey.id == key_id, TeamMember.team_id == team_id)
        .first()
    )
    if db_key is None:
        raise NotFound("API key", key_id)
    return db_key


@router.get("/", response_model=APIKeyListResponse)
async def list_api_keys(
    client: APIClient = Depends(require_role("owner")),
    db: Session = Depends(get_db),
):
    """
    List the team's API keys (owner only).

    Returns safe fields only (masked key).
    """
    keys = (
        db.query(APIKey)
        .join(TeamMember, APIKey.member_id == TeamMember.id)
        .filter(TeamMember.team_id == client.team_id)
        .order_by(APIKey.created_at.desc(), APIKey.id.desc())
        .all()
    )
    items = [
        APIKeyResponse(
            id=key.id,
            name=key.label,
            member_id=key.member_id,
            user_id=key.member.user_id,
            role=key.member.role,
            is_active=key.is_active,
            created_at=key.created_at,
            last_used_at=key.last_used_at,
            key_masked=_mask(key.key_hash),
        )
        for key in keys
    ]
    logger.info(f"Listed {len(items)} API keys for team {client.team_id}")
    return APIKeyListResponse(items=items, total=len(items))


@router.post("/", response_model=APIKeyCreateResponse, status_code=status.HTTP_201_CREATED)
async def create_api_key(
    body: APIKeyCreateRequest,
    request: Request,
    client: APIClient = Depends(require_role("owner")),
    db: Session = Depends(get_db),
):
    """
    Create an API key for a member of the caller's team (owner only).

    Returns the full key once in the response. Only the hash is stored.
    """
    member = (
        db.query(TeamMember)
        .filter(TeamMember.id == body.member_id, TeamMember.team_id == client.team_id)
        .first()
    )
    if member is None:
        raise NotFound("Team member", body.member_id)

    try:
        new_key = generate_api_key()
        key_hash = hash_api_key(new_key)
        if db.query(APIKey).filter(APIKey.key_hash == key_hash).first():
            # Retry once
            new_key = generate_api_key()
            key_hash = hash_api_key(new_key)

        db_key = APIKey(key_hash=key_hash, label=body.name, member_id=member.id, is_active=True)
        db.add(db_key)
        db.commit()
        db.refresh(db_key)
    except Exception as e:
        logger.error(f"Error creating API key: {e}", exc_info=True)
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create API key"
        )

    logger.info(f"Created API key: id={db_key.id}, label={body.name}, member={member.id}")
    response = APIKeyCreateResponse(
        id=db_key.id,
        name=db_key.label,
        member_id=member.id,
        role=member.role,
        is_active=db_key.is_active,
        created_at=db_key.created_at,
        key=new_key,  # Returned once, never stored
    )

    log_activity(
        db=db,
        client=client,
        action=ActivityAction.API_KEY_CREATE,
        resource_type=ResourceType.API_KEY,
        resource_id=response.id,
        details={"label": body.name, "member_id": body.member_id},
        request=request,
    )
    return response


@router.delete("/{key_id}", status_code=status.HTTP_200_OK)
async def delete_api_key(
    key_id: int,
    request: Request,
    client: APIClient = Depends(require_role("owner")),
    db: Session = Depends(get_db),
):
    """
    Soft-delete an API key (owner only).

    Sets is_active=False. The key can no longer be used for authentication.
    """
    db_key = _team_key(db, client.team_id, key_id)
    try:
        db_key.is_active = False
        db.commit()
    except Exception as e:
        logger.error(f"Error deleting API key: {e}", exc_info=True)
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to delete API key"
        )

    logger.info(f"Deleted (deactivated) API key: id={key_id}")
    log_activity(
        db=db,
        client=client,
        action=ActivityAction.API_KEY_DEACTIVATE,
        resource_type=ResourceType.API_KEY,
        resource_id=key_id,
        details={},
        request=request,
    )
    return {"message": "API key deleted successfully", "id": key_id, "is_active": False}


# Separate router for caller introspection
auth_router = APIRouter()


@auth_router.get("/me")
async def get_current_user_info(
    client: APIClient = Depends(get_current_api_client),
):
    """
    Current caller: user, team, team role and source.

    Useful for a frontend to decide which actions to offer.
    """
    return {
        "user_id": client.user_id,
        "team_id": client.team_id,
        "role": client.role,
        "source": client.source,
        "is_team_admin": has_full_access(client.role),
        "api_key_id": client.api_key_id,
    }
