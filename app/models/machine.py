"""
Machine model for the team's fleet inventory.
"""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from app.core.database import Base


class Machine(Base):
    """
    Audited machine, identified inside its team by the hostname given at upload.

    The rolling statistics (last_*, original_score, total_audits) are written
    only by app.services.machine_registry.
    """
    __tablename__ = "machines"
    __table_args__ = (
        UniqueConstraint("team_id", "hostname", name="uq_machines_team_hostname"),
    )

    id = Column(Integer, primary_key=True, index=True)
    team_id = Column(Integer, ForeignKey("teams.id", ondelete="CASCADE"), nullable=False, index=True)
    group_id = Column(Integer, ForeignKey("machine_groups.id", ondelete="SET NULL"), nullable=True, index=True)

    # Identity
    hostname = Column(String(255), nullable=False, index=True)
    machine_identifier = Column(String(255), nullable=True)  # Optional external id
    os = Column(String(50), nullable=True, index=True)  # windows, linux, vmware, docker, netapp, web...
    os_version = Column(String(255), nullable=True)

    # Rolling audit statistics
    last_audit_date = Column(DateTime(timezone=True), nullable=True)
    last_score = Column(Integer, nullable=True)
    last_grade = Column(String(2), nullable=True)
    original_score = Column(Integer, nullable=True)  # Latched on the first report
    total_audits = Column(Integer, nullable=False, default=0, server_default="0")

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    team = relationship("Team", back_populates="machines")
    group = relationship("MachineGroup", back_populates="machines")
    reports = relationship(
        "AuditReport",
        back_populates="machine",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="AuditReport.id",
    )
