"""
Caller identity and team-role checks for fleet endpoints.

The external auth layer is trusted: it either hands out API keys bound to a
team member, or (dev/test, API_KEY unset) forwards identity headers.
"""
import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import Depends, Header, HTTPException, Security, status
from fastapi.security import APIKeyHeader
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.database import get_db
from app.core.exceptions import FleetError, Forbidden, NotFound
from app.core.roles import Role, normalize_role, has_permission
from app.models.api_key import APIKey
from app.models.team import Team

logger = logging.getLogger(__name__)

api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


class APIClient:
    """Authenticated caller: who they are, which team they act on, and their role there."""
    def __init__(
        self,
        source: str,
        role: str,
        user_id: Optional[str] = None,
        team_id: Optional[int] = None,
        api_key_id: Optional[int] = None,
    ):
        self.source = source  # "static", "db" or "header"
        self.role = normalize_role(role)
        self.user_id = user_id
        self.team_id = team_id
        self.api_key_id = api_key_id

    @property
    def is_platform_admin(self) -> bool:
        return self.source in ("static", "header")


def get_current_api_client(
    api_key: Optional[str] = Security(api_key_header),
    x_team_id: Optional[int] = Header(None, alias="X-Team-Id"),
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
    x_team_role: Optional[str] = Header(None, alias="X-Team-Role"),
    db: Session = Depends(get_db),
) -> APIClient:
    """
    Dependency resolving the caller.

    Supports three modes:
    1. API_KEY not configured: identity headers are trusted (dev/test)
    2. Static API key: platform admin acting on the team in X-Team-Id
    3. Database-backed API key: bound to one team member

    Raises:
        HTTPException: If API key is missing or invalid
    """
    if not settings.is_auth_enabled():
        logger.debug("API_KEY not configured - trusting identity headers (TESTING mode)")
        return APIClient(
            source="header",
            role=x_team_role or Role.OWNER.value,
            user_id=x_user_id or "dev-user",
            team_id=x_team_id,
        )

    if not api_key:
        logger.warning("API key missing from request")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing API key",
            headers={"WWW-Authenticate": "ApiKey"},
        )

    if api_key == settings.API_KEY:
        logger.debug("Authenticated with static API key")
        return APIClient(source="static", role=Role.OWNER.value, user_id="platform-admin", team_id=x_team_id)

    from app.api.endpoints.api_keys import hash_api_key

    db_key = (
        db.query(APIKey)
        .filter(APIKey.key_hash == hash_api_key(api_key), APIKey.is_active == True)  # noqa: E712
        .first()
    )
    if db_key:
        db_key.last_used_at = datetime.now(timezone.utc)
        db.commit()

        member = db_key.member
        logger.debug(f"Authenticated with DB API key: {db_key.label or db_key.id} (team={member.team_id}, role={member.role})")
        return APIClient(
            source="db",
            role=member.role,
            user_id=member.user_id,
            team_id=member.team_id,
            api_key_id=db_key.id,
        )

    logger.warning(f"Invalid API key attempted: {api_key[:4]}...")
    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid API key",
        headers={"WWW-Authenticate": "ApiKey"},
    )


def require_role(min_role: str = "member"):
    """
    Dependency factory for team-scoped role checks.

    The returned dependency guarantees the caller acts on an existing team
    and holds at least ``min_role`` there.
    """
    def check_role(
        client: APIClient = Depends(get_current_api_client),
        db: Session = Depends(get_db),
    ) -> APIClient:
        if client.team_id is None:
            raise FleetError("Team context required: send the X-Team-Id header")

        if db.get(Team, client.team_id) is None:
            raise NotFound("Team", client.team_id)

        if not has_permission(client.role, min_role):
            normalized_min = normalize_role(min_role)
            logger.warning(
                f"Access denied: role '{client.role}' on team {client.team_id} "
                f"does not meet minimum requirement '{normalized_min}'"
            )
            raise Forbidden(
                f"Insufficient permissions. Required role: {normalized_min}",
                {"required_role": normalized_min, "role": client.role},
            )

        return client

    return check_role


def require_platform_admin(client: APIClient = Depends(get_current_api_client)) -> APIClient:
    """Dependency for team provisioning, reserved to the static key (or dev mode)."""
    if not client.is_platform_admin:
        logger.warning(f"Access denied: platform admin required (source={client.source})")
        raise Forbidden("Platform administrator access required")
    return client
