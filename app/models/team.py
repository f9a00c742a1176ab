"""
Team and team membership models.

A team owns machines, organizations and (through machines) all reports.
Members come from the external auth layer; only their id and role are kept.
"""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from app.core.database import Base


class Team(Base):
    """Team owning a fleet."""
    __tablename__ = "teams"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False, unique=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    members = relationship("TeamMember", back_populates="team", cascade="all, delete-orphan")
    machines = relationship("Machine", back_populates="team", cascade="all, delete-orphan")
    organizations = relationship("Organization", back_populates="team", cascade="all, delete-orphan")


class TeamMember(Base):
    """Membership of an external user in a team, with a team role."""
    __tablename__ = "team_members"
    __table_args__ = (
        UniqueConstraint("team_id", "user_id", name="uq_team_members_team_user"),
    )

    id = Column(Integer, primary_key=True, index=True)
    team_id = Column(Integer, ForeignKey("teams.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(255), nullable=False, index=True)  # Identifier issued by the auth layer
    email = Column(String(255), nullable=True)
    role = Column(String(20), nullable=False, default="member")  # member, admin, owner
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    team = relationship("Team", back_populates="members")
    api_keys = relationship("APIKey", back_populates="member", cascade="all, delete-orphan")
