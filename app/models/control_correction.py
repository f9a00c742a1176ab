"""Control status and manual correction model."""
import enum

from sqlalchemy import Column, Integer, String, Text, ForeignKey, DateTime, UniqueConstraint
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from app.core.database import Base


class ControlStatus(str, enum.Enum):
    """Outcome of one control."""
    PASS = "PASS"
    FAIL = "FAIL"
    WARN = "WARN"


class ControlCorrection(Base):
    """Active manual override of one control's status within one report."""
    __tablename__ = "control_corrections"
    __table_args__ = (
        UniqueConstraint("report_id", "control_id", name="uq_control_corrections_report_control"),
    )

    id = Column(Integer, primary_key=True, index=True)
    report_id = Column(Integer, ForeignKey("audit_reports.id", ondelete="CASCADE"), nullable=False, index=True)
    control_id = Column(String(255), nullable=False)

    original_status = Column(String(10), nullable=False)  # As scanned, never a previous correction
    corrected_status = Column(String(10), nullable=False)
    justification = Column(Text, nullable=False)
    corrected_by = Column(String(255), nullable=False)
    corrected_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    report = relationship("AuditReport", back_populates="corrections")
