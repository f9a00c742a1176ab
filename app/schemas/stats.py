"""Schemas for fleet-wide statistics."""
from datetime import datetime
from typing import Optional, Dict
from pydantic import BaseModel


class FleetStatsResponse(BaseModel):
    """Dashboard statistics for one team."""
    total_machines: int
    total_reports: int
    average_score: Optional[int] = None  # Mean of machines' last_score, null if none scored
    last_audit_date: Optional[datetime] = None
    os_counts: Dict[str, int]  # OS value as stored -> machine count
