"""
Fleet statistics endpoint (GET /api/fleet/stats).
"""
import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.auth import APIClient, require_role
from app.core.database import get_db
from app.schemas.stats import FleetStatsResponse
from app.services.fleet_stats import fleet_stats

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/stats", response_model=FleetStatsResponse)
async def get_fleet_stats(
    client: APIClient = Depends(require_role("member")),
    db: Session = Depends(get_db),
):
    """Dashboard numbers for the caller's team."""
    return FleetStatsResponse(**fleet_stats(db, client.team_id))
