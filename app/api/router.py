"""
API router, mounted under /api by app.main.
"""
from fastapi import APIRouter

from app.api.endpoints import activity, api_keys, health, hierarchy, machines, reports, stats, teams
from app.api.endpoints.api_keys import auth_router

api_router = APIRouter()

# Health check endpoint (no prefix, so it's /api/health)
api_router.include_router(health.router, tags=["health"])

# Fleet tracking core: /api/fleet/...
api_router.include_router(reports.router, prefix="/fleet", tags=["reports"])
api_router.include_router(machines.router, prefix="/fleet/machines", tags=["machines"])
api_router.include_router(hierarchy.router, prefix="/fleet", tags=["hierarchy"])
api_router.include_router(stats.router, prefix="/fleet", tags=["stats"])

api_router.include_router(teams.router, prefix="/teams", tags=["teams"])
api_router.include_router(api_keys.router, prefix="/api-keys", tags=["api-keys"])
api_router.include_router(auth_router, prefix="/auth", tags=["auth"])
api_router.include_router(activity.router, prefix="/activity", tags=["activity"])
