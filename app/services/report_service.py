"""
Report ingestion and report-level reads.

Ingestion parses first and persists nothing on a malformed payload. The
machine upsert, the report row, the machine's rolling statistics and an
optional group assignment then commit as one transaction.
"""
import logging
from collections import Counter
from typing import Any, Dict, List, NamedTuple, Optional, Tuple, Union

from sqlalchemy.orm import Session

from app.core.exceptions import NotFound
from app.models.audit_report import AuditReport
from app.models.control_correction import ControlCorrection
from app.models.machine import Machine
from app.services.hierarchy_service import HierarchyService
from app.services.machine_registry import MachineRegistry
from app.utils.report_parser import ParsedReport, extract_controls, parse_report
from app.utils.scoring import effective_status

logger = logging.getLogger(__name__)


class IngestResult(NamedTuple):
    report: AuditReport
    machine: Machine
    machine_created: bool
    parsed: ParsedReport


def get_team_report(db: Session, team_id: int, report_id: int) -> AuditReport:
    """Report owned by one of the team's machines, or NotFound."""
    report = (
        db.query(AuditReport)
        .join(Machine, AuditReport.machine_id == Machine.id)
        .filter(AuditReport.id == report_id, Machine.team_id == team_id)
        .first()
    )
    if report is None:
        raise NotFound("Report", report_id)
    return report


class ReportService:
    """Upload, list, inspect and delete audit reports of a team."""

    def __init__(self, db: Session):
        self.db = db
        self.registry = MachineRegistry(db)
        self.hierarchy = HierarchyService(db)

    def ingest(
        self,
        team_id: int,
        content: Union[str, bytes],
        machine_name: str,
        uploaded_by: Optional[str] = None,
        file_name: Optional[str] = None,
        os: Optional[str] = None,
        html_content: Optional[str] = None,
        group_id: Optional[int] = None,
    ) -> IngestResult:
        """
        Ingest one uploaded audit report.

        The machine is resolved by its upload name (never by the hostname
        inside the payload). The stored score is always the one computed from
        the controls; a score carried by the payload only produces a warning.

        Raises:
            MalformedReport: payload unparseable or missing a required field
            NotFound / CrossTeamAssignment: bad group_id
        """
        parsed = parse_report(content, machine_name, os_override=os)
        raw_json = content.decode("utf-8-sig") if isinstance(content, bytes) else content

        try:
            machine, created = self.registry.resolve_machine(
                team_id, parsed.machine_name, os=parsed.os, os_version=parsed.os_version
            )
            # resolve_machine leaves the machine row locked until commit
            self.hierarchy.check_assignable(machine, group_id)

            report = AuditReport(
                machine_id=machine.id,
                uploaded_by=uploaded_by,
                audit_date=parsed.audit_date,
                script_name=parsed.script_name,
                script_version=parsed.script_version,
                file_name=file_name,
                score=parsed.score,
                original_score=parsed.score,
                grade=parsed.grade,
                total_controls=parsed.total_controls,
                passed_controls=parsed.passed_controls,
                failed_controls=parsed.failed_controls,
                warning_controls=parsed.warning_controls,
                raw_json=raw_json,
                html_content=html_content,
            )
            self.db.add(report)
            self.db.flush()

            self.registry.record_report(machine, report)
            if group_id is not None:
                machine.group_id = group_id
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(report)
        self.db.refresh(machine)
        logger.info(
            f"Report ingested: id={report.id}, machine={machine.id} ('{machine.hostname}'), "
            f"score={report.score} ({report.grade}), controls={report.total_controls}, new_machine={created}"
        )
        for warning in parsed.warnings:
            logger.warning(f"Report {report.id}: {warning}")
        return IngestResult(report=report, machine=machine, machine_created=created, parsed=parsed)

    def list_reports(
        self,
        team_id: int,
        machine_id: Optional[int] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[AuditReport], int]:
        """Reports of the team, newest upload first."""
        query = (
            self.db.query(AuditReport)
            .join(Machine, AuditReport.machine_id == Machine.id)
            .filter(Machine.team_id == team_id)
        )
        if machine_id is not None:
            query = query.filter(AuditReport.machine_id == machine_id)
        total = query.count()
        items = query.order_by(AuditReport.id.desc()).offset(offset).limit(limit).all()
        return items, total

    def get_report(self, team_id: int, report_id: int) -> AuditReport:
        return get_team_report(self.db, team_id, report_id)

    def get_controls(self, team_id: int, report_id: int) -> Dict[str, Any]:
        """Controls of a report from its stored payload, each merged with its active correction."""
        report = get_team_report(self.db, team_id, report_id)
        corrections = {
            c.control_id: c
            for c in self.db.query(ControlCorrection).filter(ControlCorrection.report_id == report.id)
        }

        controls = []
        counts: Counter = Counter()
        for control in extract_controls(report.raw_json):
            correction = corrections.get(control.id)
            status = effective_status(control.status, correction.corrected_status if correction else None)
            counts[status] += 1
            controls.append({
                **control.model_dump(),
                "effective_status": status,
                "correction": correction,
            })

        return {
            "report_id": report.id,
            "score": report.score,
            "grade": report.grade,
            "original_score": report.original_score,
            "status_counts": {s: counts.get(s, 0) for s in ("PASS", "WARN", "FAIL")},
            "controls": controls,
        }

    def delete_report(self, team_id: int, report_id: int) -> Machine:
        """
        Delete one report and its corrections.

        The machine's last_* fields are re-derived from its latest remaining
        report; original_score and total_audits are left as they were.
        """
        report = get_team_report(self.db, team_id, report_id)
        try:
            machine = self.registry.lock_machine(report.machine_id)
            self.db.delete(report)
            self.db.flush()
            self.registry.refresh_from_latest(machine)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(machine)
        logger.info(f"Deleted report: id={report_id}, machine={machine.id}")
        return machine
