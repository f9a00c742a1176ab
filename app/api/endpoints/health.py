"""
Health check endpoint for monitoring and diagnostics.
"""
import logging
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.config import settings

logger = logging.getLogger(__name__)

router = APIRouter()


def check_database(db: Session) -> bool:
    """Run SELECT 1; False on any database error."""
    try:
        db.execute(text("SELECT 1")).fetchone()
        return True
    except SQLAlchemyError as e:
        logger.error(f"Database health check failed: {e}", exc_info=True)
        return False


@router.get("/health")
async def health_check(db: Session = Depends(get_db)):
    """
    Liveness plus database connectivity.

    Returns 503 when the database does not answer.
    """
    if not check_database(db):
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database connection failed",
        )
    return {
        "ok": True,
        "db": True,
        "environment": settings.APP_ENV,
    }
