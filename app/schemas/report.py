"""Schemas for audit reports, their controls and corrections."""
from datetime import datetime
from typing import Optional, List, Dict
from pydantic import BaseModel, Field, field_validator

from app.models.control_correction import ControlStatus
from app.schemas.machine import MachineResponse


class ReportResponse(BaseModel):
    """Report metadata and scores (payloads excluded)."""
    id: int
    machine_id: int
    hostname: Optional[str] = None
    os: Optional[str] = None
    uploaded_by: Optional[str] = None
    audit_date: datetime
    script_name: Optional[str] = None
    script_version: Optional[str] = None
    file_name: Optional[str] = None
    score: int
    original_score: int
    grade: str
    total_controls: int
    passed_controls: int
    failed_controls: int
    warning_controls: int
    has_html: bool = False
    correction_count: int = 0
    created_at: datetime


class ReportListResponse(BaseModel):
    items: List[ReportResponse]
    total: int
    limit: int
    offset: int


class ReportUploadResponse(BaseModel):
    """Result of ingesting one report."""
    report: ReportResponse
    machine: MachineResponse
    machine_created: bool
    reported_score: Optional[int] = None
    warnings: List[str] = Field(default_factory=list)


class CorrectionRequest(BaseModel):
    """Manual override of one control's status."""
    control_id: str = Field(..., min_length=1, max_length=255)
    corrected_status: str = Field(..., description="PASS, WARN or FAIL (case-insensitive)")
    justification: str = Field(..., description="Why the scanned status is overridden")

    @field_validator("corrected_status")
    @classmethod
    def normalize_status(cls, v: str) -> str:
        status = v.strip().upper()
        if status not in {s.value for s in ControlStatus}:
            raise ValueError("corrected_status must be one of PASS, WARN, FAIL")
        return status


class CorrectionResponse(BaseModel):
    id: int
    report_id: int
    control_id: str
    original_status: str
    corrected_status: str
    justification: str
    corrected_by: str
    corrected_at: datetime

    model_config = {"from_attributes": True}


class CorrectionResultResponse(BaseModel):
    """Correction (or revert) outcome with the recomputed scores."""
    correction: Optional[CorrectionResponse] = None
    report_id: int
    score: int
    grade: str
    original_score: int
    machine_id: int
    machine_last_score: Optional[int] = None
    machine_last_grade: Optional[str] = None
    machine_updated: bool


class ControlResponse(BaseModel):
    """Control extracted from the stored payload, merged with its correction."""
    id: str
    category: Optional[str] = None
    title: Optional[str] = None
    status: str
    effective_status: str
    severity: Optional[str] = None
    description: Optional[str] = None
    remediation: Optional[str] = None
    reference: Optional[str] = None
    correction: Optional[CorrectionResponse] = None


class ReportControlsResponse(BaseModel):
    report_id: int
    score: int
    grade: str
    original_score: int
    status_counts: Dict[str, int]  # Effective statuses
    controls: List[ControlResponse]
