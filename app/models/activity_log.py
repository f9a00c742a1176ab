"""
Activity log model for audit trail.
"""
from sqlalchemy import Column, Integer, String, DateTime, JSON, ForeignKey
from sqlalchemy.sql import func

from app.core.database import Base


class ActivityLog(Base):
    """Activity log model for tracking fleet mutations."""
    __tablename__ = "activity_logs"

    id = Column(Integer, primary_key=True, index=True)
    timestamp = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)
    team_id = Column(Integer, ForeignKey("teams.id", ondelete="CASCADE"), nullable=True, index=True)

    # Actor information
    actor_user_id = Column(String(255), nullable=True, index=True)
    actor_source = Column(String(50), nullable=False)  # "static", "db" or "header"
    actor_role = Column(String(50), nullable=False)  # Role at time of action

    # Action details
    action = Column(String(100), nullable=False, index=True)  # e.g., "report_upload", "control_correction"
    resource_type = Column(String(50), nullable=True, index=True)  # e.g., "machine", "report", "group"
    resource_id = Column(Integer, nullable=True, index=True)
    details = Column(JSON, nullable=True)

    # Request metadata
    ip_address = Column(String(45), nullable=True)  # IPv4 or IPv6
    user_agent = Column(String(255), nullable=True)
