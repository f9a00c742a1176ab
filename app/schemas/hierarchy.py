"""Schemas for the organization / site / group hierarchy."""
from datetime import datetime
from typing import Optional, List
from pydantic import BaseModel, Field


class OrganizationCreateRequest(BaseModel):
    """Request schema for creating an organization."""
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None


class OrganizationUpdateRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None


class SiteCreateRequest(BaseModel):
    """Request schema for creating a site under an organization."""
    organization_id: int
    name: str = Field(..., min_length=1, max_length=255)
    location: Optional[str] = Field(None, max_length=255)


class SiteUpdateRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    location: Optional[str] = Field(None, max_length=255)


class GroupCreateRequest(BaseModel):
    """Request schema for creating a machine group under a site."""
    site_id: int
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None


class GroupUpdateRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None


class OrganizationResponse(BaseModel):
    id: int
    team_id: int
    name: str
    description: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class SiteResponse(BaseModel):
    id: int
    organization_id: int
    name: str
    location: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class GroupResponse(BaseModel):
    id: int
    site_id: int
    name: str
    description: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class HierarchyDeleteResponse(BaseModel):
    """Result of deleting an organization, site or group."""
    message: str
    id: int
    deleted_groups: int
    unassigned_machines: int


# Read projection

class MachineNode(BaseModel):
    """Machine as shown in the hierarchy tree."""
    id: int
    group_id: Optional[int] = None
    hostname: str
    machine_identifier: Optional[str] = None
    os: Optional[str] = None
    os_version: Optional[str] = None
    last_audit_date: Optional[datetime] = None
    last_score: Optional[int] = None
    last_grade: Optional[str] = None
    original_score: Optional[int] = None
    total_audits: int = 0


class GroupNode(BaseModel):
    id: int
    site_id: int
    name: str
    description: Optional[str] = None
    machine_count: int = 0
    average_score: Optional[int] = None
    machines: List[MachineNode] = Field(default_factory=list)


class SiteNode(BaseModel):
    id: int
    organization_id: int
    name: str
    location: Optional[str] = None
    machine_count: int = 0
    average_score: Optional[int] = None
    groups: List[GroupNode] = Field(default_factory=list)


class OrganizationNode(BaseModel):
    id: int
    team_id: int
    name: str
    description: Optional[str] = None
    machine_count: int = 0
    average_score: Optional[int] = None
    sites: List[SiteNode] = Field(default_factory=list)


class HierarchyView(BaseModel):
    """Full Organization -> Site -> Group -> Machine tree plus unassigned machines."""
    organizations: List[OrganizationNode] = Field(default_factory=list)
    unassigned_machines: List[MachineNode] = Field(default_factory=list)
