"""Schemas for API key management."""
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field


class APIKeyCreateRequest(BaseModel):
    """Request schema for creating a new API key for a team member."""
    name: str = Field(..., min_length=1, max_length=255, description="Label/name for the API key")
    member_id: int = Field(..., description="Team member the key acts as")


class APIKeyResponse(BaseModel):
    """Response schema for API key (safe fields only)."""
    id: int
    name: Optional[str] = None
    member_id: int
    user_id: str
    role: str
    is_active: bool
    created_at: datetime
    last_used_at: Optional[datetime] = None
    key_masked: Optional[str] = None  # First 8 chars of the hash + "..."


class APIKeyCreateResponse(BaseModel):
    """Response schema for API key creation (includes full key once)."""
    id: int
    name: Optional[str] = None
    member_id: int
    role: str
    is_active: bool
    created_at: datetime
    key: str  # Full key - only returned once on creation


class APIKeyListResponse(BaseModel):
    """Response schema for listing API keys."""
    items: list[APIKeyResponse]
    total: int
