"""Schemas for teams and team members."""
from datetime import datetime
from typing import Optional, List
from pydantic import BaseModel, Field, field_validator

from app.core.roles import normalize_role


class TeamCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)


class TeamResponse(BaseModel):
    id: int
    name: str
    created_at: datetime

    model_config = {"from_attributes": True}


class MemberCreateRequest(BaseModel):
    """Add a user of the auth layer to a team."""
    user_id: str = Field(..., min_length=1, max_length=255)
    email: Optional[str] = Field(None, max_length=255)
    role: str = Field("member", description="member, admin or owner")

    @field_validator("role")
    @classmethod
    def validate_role(cls, v: str) -> str:
        """Normalize role aliases."""
        return normalize_role(v)


class MemberResponse(BaseModel):
    id: int
    team_id: int
    user_id: str
    email: Optional[str] = None
    role: str
    created_at: datetime

    model_config = {"from_attributes": True}


class TeamDetailResponse(TeamResponse):
    members: List[MemberResponse] = Field(default_factory=list)
