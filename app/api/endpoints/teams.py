"""
Team provisioning endpoints (platform admin).

Teams and their members mirror the external auth layer; this service only
keeps what it needs to scope data and check team roles.
"""
import logging
from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.auth import APIClient, require_platform_admin
from app.core.database import get_db
from app.core.exceptions import Conflict, NotFound
from app.models.team import Team, TeamMember
from app.schemas.team import (
    MemberCreateRequest,
    MemberResponse,
    TeamCreateRequest,
    TeamDetailResponse,
    TeamResponse,
)
from app.services.activity_service import log_activity, ActivityAction, ResourceType

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/", response_model=TeamResponse, status_code=status.HTTP_201_CREATED)
async def create_team(
    body: TeamCreateRequest,
    request: Request,
    client: APIClient = Depends(require_platform_admin),
    db: Session = Depends(get_db),
):
    """Create a team."""
    name = body.name.strip()
    if db.query(Team).filter(Team.name == name).first():
        raise Conflict(f"Team named '{name}' already exists", {"name": name})

    team = Team(name=name)
    db.add(team)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise Conflict(f"Team named '{name}' already exists", {"name": name})
    db.refresh(team)
    logger.info(f"Created team: id={team.id}, name='{name}'")

    response = TeamResponse.model_validate(team)
    client.team_id = team.id
    log_activity(
        db=db,
        client=client,
        action=ActivityAction.TEAM_CREATE,
        resource_type=ResourceType.TEAM,
        resource_id=team.id,
        details={"name": name},
        request=request,
    )
    return response


@router.get("/", response_model=list[TeamResponse])
async def list_teams(
    _client: APIClient = Depends(require_platform_admin),
    db: Session = Depends(get_db),
):
    return [TeamResponse.model_validate(t) for t in db.query(Team).order_by(Team.name.asc()).all()]


@router.get("/{team_id}", response_model=TeamDetailResponse)
async def get_team(
    team_id: int,
    _client: APIClient = Depends(require_platform_admin),
    db: Session = Depends(get_db),
):
    """Team with its members."""
    team = db.get(Team, team_id)
    if team is None:
        raise NotFound("Team", team_id)
    return TeamDetailResponse(
        id=team.id,
        name=team.name,
        created_at=team.created_at,
        members=[MemberResponse.model_validate(m) for m in team.members],
    )


@router.post("/{team_id}/members", response_model=MemberResponse, status_code=status.HTTP_201_CREATED)
async def add_member(
    team_id: int,
    body: MemberCreateRequest,
    request: Request,
    client: APIClient = Depends(require_platform_admin),
    db: Session = Depends(get_db),
):
    """Add a user to a team with a team role (member, admin or owner)."""
    if db.get(Team, team_id) is None:
        raise NotFound("Team", team_id)

    member = TeamMember(team_id=team_id, user_id=body.user_id, email=body.email, role=body.role)
    db.add(member)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise Conflict(
            f"User '{body.user_id}' is already a member of team {team_id}",
            {"user_id": body.user_id, "team_id": team_id},
        )
    except Exception as e:
        db.rollback()
        logger.error(f"Error adding member to team {team_id}: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to add team member",
        )
    db.refresh(member)
    logger.info(f"Added member: team={team_id}, user='{body.user_id}', role={body.role}")

    response = MemberResponse.model_validate(member)
    client.team_id = team_id
    log_activity(
        db=db,
        client=client,
        action=ActivityAction.MEMBER_ADD,
        resource_type=ResourceType.MEMBER,
        resource_id=member.id,
        details={"user_id": body.user_id, "role": body.role},
        request=request,
    )
    return response
