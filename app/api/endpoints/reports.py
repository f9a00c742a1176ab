"""
Report endpoints: upload, listing, controls and corrections.

Full paths (router mounted under /api/fleet):
- POST   /api/fleet/upload-report
- GET    /api/fleet/reports, /api/fleet/reports/{id}, /api/fleet/reports/{id}/html
- DELETE /api/fleet/reports/{id}
- GET    /api/fleet/reports/{id}/controls
- POST   /api/fleet/reports/{id}/corrections
- DELETE /api/fleet/reports/{id}/corrections/{control_id}
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, Request, UploadFile, status
from fastapi.responses import HTMLResponse
from sqlalchemy.orm import Session

from app.core.auth import APIClient, require_role
from app.core.config import settings
from app.core.database import get_db
from app.core.exceptions import FleetError
from app.models.audit_report import AuditReport
from app.schemas.machine import MachineResponse
from app.schemas.report import (
    ControlResponse,
    CorrectionRequest,
    CorrectionResponse,
    CorrectionResultResponse,
    ReportControlsResponse,
    ReportListResponse,
    ReportResponse,
    ReportUploadResponse,
)
from app.services.activity_service import ActivityAction, ResourceType, log_activity
from app.services.correction_ledger import CorrectionLedger, CorrectionOutcome
from app.services.report_service import ReportService

logger = logging.getLogger(__name__)

router = APIRouter()


def report_to_response(report: AuditReport) -> ReportResponse:
    machine = report.machine
    return ReportResponse(
        id=report.id,
        machine_id=report.machine_id,
        hostname=machine.hostname if machine else None,
        os=machine.os if machine else None,
        uploaded_by=report.uploaded_by,
        audit_date=report.audit_date,
        script_name=report.script_name,
        script_version=report.script_version,
        file_name=report.file_name,
        score=report.score,
        original_score=report.original_score,
        grade=report.grade,
        total_controls=report.total_controls,
        passed_controls=report.passed_controls,
        failed_controls=report.failed_controls,
        warning_controls=report.warning_controls,
        has_html=bool(report.html_content),
        correction_count=len(report.corrections),
        created_at=report.created_at,
    )


def _correction_result(outcome: CorrectionOutcome) -> CorrectionResultResponse:
    report = outcome.report
    machine = report.machine
    return CorrectionResultResponse(
        correction=CorrectionResponse.model_validate(outcome.correction) if outcome.correction else None,
        report_id=report.id,
        score=report.score,
        grade=report.grade,
        original_score=report.original_score,
        machine_id=machine.id,
        machine_last_score=machine.last_score,
        machine_last_grade=machine.last_grade,
        machine_updated=outcome.machine_updated,
    )


async def _read_limited(upload: UploadFile, label: str) -> bytes:
    content = await upload.read()
    if len(content) > settings.MAX_UPLOAD_SIZE:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"{label} exceeds maximum allowed size of {settings.MAX_UPLOAD_SIZE} bytes",
        )
    return content


@router.post("/upload-report", response_model=ReportUploadResponse, status_code=status.HTTP_201_CREATED)
async def upload_report(
    request: Request,
    file: UploadFile = File(..., description="JSON audit report"),
    machine_name: str = Form(..., description="Machine identity within the team"),
    os: Optional[str] = Form(None, description="OS family override (e.g. windows, linux)"),
    group_id: Optional[int] = Form(None, description="Assign the machine to this group"),
    html_file: Optional[UploadFile] = File(None, description="Companion HTML report"),
    client: APIClient = Depends(require_role("admin")),
    db: Session = Depends(get_db),
):
    """
    Upload one JSON audit report for a machine.

    The machine is matched (or created) by ``machine_name`` within the
    caller's team. The stored score is computed from the controls.
    """
    try:
        content = await _read_limited(file, "Report file")
        html_content = None
        if html_file is not None and html_file.filename:
            html_bytes = await _read_limited(html_file, "HTML report")
            html_content = html_bytes.decode("utf-8", errors="replace")

        result = ReportService(db).ingest(
            team_id=client.team_id,
            content=content,
            machine_name=machine_name,
            uploaded_by=client.user_id,
            file_name=file.filename,
            os=os,
            html_content=html_content,
            group_id=group_id,
        )
    except (HTTPException, FleetError):
        raise
    except Exception as e:
        logger.error(f"Error uploading report for '{machine_name}': {e}", exc_info=True)
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to ingest report",
        )

    log_activity(
        db=db,
        client=client,
        action=ActivityAction.REPORT_UPLOAD,
        resource_type=ResourceType.REPORT,
        resource_id=result.report.id,
        details={
            "machine_id": result.machine.id,
            "hostname": result.machine.hostname,
            "score": result.report.score,
            "grade": result.report.grade,
            "machine_created": result.machine_created,
        },
        request=request,
    )

    return ReportUploadResponse(
        report=report_to_response(result.report),
        machine=MachineResponse.model_validate(result.machine),
        machine_created=result.machine_created,
        reported_score=result.parsed.reported_score,
        warnings=result.parsed.warnings,
    )


@router.get("/reports", response_model=ReportListResponse)
async def list_reports(
    machine_id: Optional[int] = Query(None, description="Only reports of this machine"),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    client: APIClient = Depends(require_role("member")),
    db: Session = Depends(get_db),
):
    """List the team's reports, newest upload first."""
    items, total = ReportService(db).list_reports(client.team_id, machine_id=machine_id, limit=limit, offset=offset)
    return ReportListResponse(
        items=[report_to_response(r) for r in items],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/reports/{report_id}", response_model=ReportResponse)
async def get_report(
    report_id: int,
    client: APIClient = Depends(require_role("member")),
    db: Session = Depends(get_db),
):
    return report_to_response(ReportService(db).get_report(client.team_id, report_id))


@router.get("/reports/{report_id}/html", response_class=HTMLResponse)
async def get_report_html(
    report_id: int,
    client: APIClient = Depends(require_role("member")),
    db: Session = Depends(get_db),
):
    """Companion HTML report as uploaded."""
    report = ReportService(db).get_report(client.team_id, report_id)
    if not report.html_content:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Report {report_id} has no HTML content",
        )
    return HTMLResponse(content=report.html_content)


@router.delete("/reports/{report_id}", status_code=status.HTTP_200_OK)
async def delete_report(
    report_id: int,
    request: Request,
    client: APIClient = Depends(require_role("admin")),
    db: Session = Depends(get_db),
):
    """Delete a report and its corrections; the machine's last score is re-derived."""
    try:
        machine = ReportService(db).delete_report(client.team_id, report_id)
    except (HTTPException, FleetError):
        raise
    except Exception as e:
        logger.error(f"Error deleting report {report_id}: {e}", exc_info=True)
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to delete report",
        )

    log_activity(
        db=db,
        client=client,
        action=ActivityAction.REPORT_DELETE,
        resource_type=ResourceType.REPORT,
        resource_id=report_id,
        details={"machine_id": machine.id},
        request=request,
    )
    return {
        "message": "Report deleted successfully",
        "id": report_id,
        "machine": MachineResponse.model_validate(machine).model_dump(mode="json"),
    }


@router.get("/reports/{report_id}/controls", response_model=ReportControlsResponse)
async def get_report_controls(
    report_id: int,
    client: APIClient = Depends(require_role("member")),
    db: Session = Depends(get_db),
):
    """Controls of a report with the active correction of each, if any."""
    view = ReportService(db).get_controls(client.team_id, report_id)
    controls = []
    for control in view["controls"]:
        correction = control.pop("correction")
        controls.append(ControlResponse(
            **control,
            correction=CorrectionResponse.model_validate(correction) if correction else None,
        ))
    view["controls"] = controls
    return ReportControlsResponse(**view)


@router.post("/reports/{report_id}/corrections", response_model=CorrectionResultResponse)
async def correct_control(
    report_id: int,
    body: CorrectionRequest,
    request: Request,
    client: APIClient = Depends(require_role("member")),
    db: Session = Depends(get_db),
):
    """
    Override the status of one control and rescore the report.

    Team admins only; the ledger rejects other roles with 403.
    """
    outcome = CorrectionLedger(db).apply_correction(
        team_id=client.team_id,
        report_id=report_id,
        control_id=body.control_id,
        corrected_status=body.corrected_status,
        justification=body.justification,
        corrected_by=client.user_id or client.source,
        role=client.role,
    )
    response = _correction_result(outcome)

    log_activity(
        db=db,
        client=client,
        action=ActivityAction.CONTROL_CORRECTION,
        resource_type=ResourceType.REPORT,
        resource_id=report_id,
        details={
            "control_id": body.control_id,
            "original_status": outcome.correction.original_status,
            "corrected_status": body.corrected_status,
            "score": response.score,
        },
        request=request,
    )
    return response


@router.delete("/reports/{report_id}/corrections/{control_id}", response_model=CorrectionResultResponse)
async def revert_correction(
    report_id: int,
    control_id: str,
    request: Request,
    client: APIClient = Depends(require_role("member")),
    db: Session = Depends(get_db),
):
    """Remove a control correction and rescore the report."""
    outcome = CorrectionLedger(db).revert_correction(
        team_id=client.team_id,
        report_id=report_id,
        control_id=control_id,
        role=client.role,
    )
    response = _correction_result(outcome)

    log_activity(
        db=db,
        client=client,
        action=ActivityAction.CORRECTION_REVERT,
        resource_type=ResourceType.REPORT,
        resource_id=report_id,
        details={"control_id": control_id, "score": response.score},
        request=request,
    )
    return response
