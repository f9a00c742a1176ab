"""
Organization -> Site -> Group containment tree.

Machines hang off groups through a nullable foreign key; a machine without a
group is "unassigned" and is never removed by a hierarchy deletion.
"""
from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from app.core.database import Base


class Organization(Base):
    """Top level of a team's hierarchy."""
    __tablename__ = "organizations"
    __table_args__ = (
        UniqueConstraint("team_id", "name", name="uq_organizations_team_name"),
    )

    id = Column(Integer, primary_key=True, index=True)
    team_id = Column(Integer, ForeignKey("teams.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    team = relationship("Team", back_populates="organizations")
    sites = relationship("Site", back_populates="organization", cascade="all, delete-orphan", order_by="Site.name")


class Site(Base):
    """Physical or logical site of an organization."""
    __tablename__ = "sites"
    __table_args__ = (
        UniqueConstraint("organization_id", "name", name="uq_sites_organization_name"),
    )

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    location = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    organization = relationship("Organization", back_populates="sites")
    groups = relationship("MachineGroup", back_populates="site", cascade="all, delete-orphan", order_by="MachineGroup.name")


class MachineGroup(Base):
    """Group of machines within a site."""
    __tablename__ = "machine_groups"
    __table_args__ = (
        UniqueConstraint("site_id", "name", name="uq_machine_groups_site_name"),
    )

    id = Column(Integer, primary_key=True, index=True)
    site_id = Column(Integer, ForeignKey("sites.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    site = relationship("Site", back_populates="groups")
    machines = relationship("Machine", back_populates="group")
