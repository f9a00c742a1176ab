"""Schemas for fleet machines."""
from datetime import datetime
from typing import Optional, List
from pydantic import BaseModel, Field


class MachineResponse(BaseModel):
    """Response schema for machine."""
    id: int
    team_id: int
    group_id: Optional[int] = None
    hostname: str
    machine_identifier: Optional[str] = None
    os: Optional[str] = None
    os_version: Optional[str] = None
    last_audit_date: Optional[datetime] = None
    last_score: Optional[int] = None
    last_grade: Optional[str] = None
    original_score: Optional[int] = None
    total_audits: int
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class ScoreHistoryPoint(BaseModel):
    """One report in a machine's score history."""
    report_id: int
    audit_date: datetime
    score: int
    original_score: int
    grade: str


class MachineDetailResponse(MachineResponse):
    """Machine with its score history, oldest report first."""
    history: List[ScoreHistoryPoint] = Field(default_factory=list)


class MachineListResponse(BaseModel):
    """Response schema for machine list."""
    items: List[MachineResponse]
    total: int


class MachineAssignRequest(BaseModel):
    """Move a machine into a group, or out of any group with null."""
    group_id: Optional[int] = Field(None, description="Target group id, null for unassigned")
