"""Audit report database model."""
from sqlalchemy import Column, Integer, String, Text, ForeignKey, DateTime
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from app.core.database import Base


class AuditReport(Base):
    """
    One uploaded audit report.

    raw_json is the source of truth for the control list; corrections are an
    overlay keyed by control id. Only score and grade change after upload.
    """
    __tablename__ = "audit_reports"

    id = Column(Integer, primary_key=True, index=True)
    machine_id = Column(Integer, ForeignKey("machines.id", ondelete="CASCADE"), nullable=False, index=True)
    uploaded_by = Column(String(255), nullable=True)

    audit_date = Column(DateTime(timezone=True), nullable=False, index=True)
    script_name = Column(String(255), nullable=True)
    script_version = Column(String(50), nullable=True)
    file_name = Column(String(255), nullable=True)

    score = Column(Integer, nullable=False)  # Current, after corrections
    original_score = Column(Integer, nullable=False)  # As computed at upload
    grade = Column(String(2), nullable=False)

    total_controls = Column(Integer, nullable=False, default=0)
    passed_controls = Column(Integer, nullable=False, default=0)
    failed_controls = Column(Integer, nullable=False, default=0)
    warning_controls = Column(Integer, nullable=False, default=0)

    raw_json = Column(Text, nullable=False)
    html_content = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    machine = relationship("Machine", back_populates="reports")
    corrections = relationship(
        "ControlCorrection",
        back_populates="report",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
