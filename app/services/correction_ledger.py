"""
Correction ledger: manual overrides of control statuses within a report.

A report keeps at most one active correction per control id. Applying a
correction upserts that row, rescores the report from its stored payload with
every correction overlaid, and lets the machine registry propagate the new
score when the report is the machine's latest. All of it commits together.
"""
import logging
from typing import Dict, NamedTuple, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.database import dialect_insert
from app.core.exceptions import Forbidden, InvalidCorrection, NotFound, UnknownControl
from app.core.roles import has_full_access
from app.models.audit_report import AuditReport
from app.models.control_correction import ControlCorrection, ControlStatus
from app.services.machine_registry import MachineRegistry
from app.services.report_service import get_team_report
from app.utils.report_parser import extract_controls
from app.utils.scoring import ScoreResult, score_controls

logger = logging.getLogger(__name__)


class CorrectionOutcome(NamedTuple):
    """Result of applying or reverting a correction."""
    correction: Optional[ControlCorrection]
    report: AuditReport
    machine_updated: bool


def corrections_by_control(db: Session, report_id: int) -> Dict[str, ControlCorrection]:
    """Active corrections of a report keyed by control id."""
    rows = (
        db.query(ControlCorrection)
        .filter(ControlCorrection.report_id == report_id)
        .populate_existing()
        .all()
    )
    return {row.control_id: row for row in rows}


def rescore_report(db: Session, report: AuditReport) -> ScoreResult:
    """Recompute score and grade of a report from its payload and current corrections."""
    overlay = {
        control_id: correction.corrected_status
        for control_id, correction in corrections_by_control(db, report.id).items()
    }
    result = score_controls(extract_controls(report.raw_json), overlay)
    report.score = result.score
    report.grade = result.grade
    return result


class CorrectionLedger:
    """Apply and revert control corrections for one team."""

    def __init__(self, db: Session, max_retries: Optional[int] = None):
        self.db = db
        self.registry = MachineRegistry(db)
        self.max_retries = max_retries or settings.CORRECTION_MAX_RETRIES

    def _check_role(self, role: str) -> None:
        if not has_full_access(role):
            raise Forbidden("Team admin role required to correct controls", {"role": role})

    def _upsert(self, report_id: int, control_id: str, original_status: str,
                corrected_status: str, justification: str, corrected_by: str) -> None:
        values = {
            "report_id": report_id,
            "control_id": control_id,
            "original_status": original_status,
            "corrected_status": corrected_status,
            "justification": justification,
            "corrected_by": corrected_by,
        }
        insert = dialect_insert(self.db)
        if insert is not None:
            stmt = insert(ControlCorrection).values(**values)
            stmt = stmt.on_conflict_do_update(
                index_elements=["report_id", "control_id"],
                set_={
                    # original_status stays the scanned status set on first insert
                    "corrected_status": stmt.excluded.corrected_status,
                    "justification": stmt.excluded.justification,
                    "corrected_by": stmt.excluded.corrected_by,
                    "corrected_at": func.now(),
                },
            )
            self.db.execute(stmt)
            return

        existing = (
            self.db.query(ControlCorrection)
            .filter(ControlCorrection.report_id == report_id, ControlCorrection.control_id == control_id)
            .first()
        )
        if existing is not None:
            existing.corrected_status = corrected_status
            existing.justification = justification
            existing.corrected_by = corrected_by
            existing.corrected_at = func.now()
            self.db.flush()
            return
        try:
            with self.db.begin_nested():
                self.db.add(ControlCorrection(**values))
        except IntegrityError:
            # Lost the race for the first insert; the row now exists
            self.db.query(ControlCorrection).filter(
                ControlCorrection.report_id == report_id,
                ControlCorrection.control_id == control_id,
            ).update(
                {
                    ControlCorrection.corrected_status: corrected_status,
                    ControlCorrection.justification: justification,
                    ControlCorrection.corrected_by: corrected_by,
                    ControlCorrection.corrected_at: func.now(),
                },
                synchronize_session=False,
            )

    def _run(self, operation, label: str):
        """Run ``operation`` in its own transaction, retrying transient write conflicts."""
        attempt = 0
        while True:
            attempt += 1
            try:
                outcome = operation()
                self.db.commit()
                return outcome
            except OperationalError as e:
                self.db.rollback()
                if attempt >= self.max_retries:
                    logger.error(f"{label} failed after {attempt} attempts: {e}")
                    raise
                logger.warning(f"{label} conflicted (attempt {attempt}/{self.max_retries}), retrying")
            except Exception:
                self.db.rollback()
                raise

    def apply_correction(
        self,
        team_id: int,
        report_id: int,
        control_id: str,
        corrected_status: str,
        justification: str,
        corrected_by: str,
        role: str,
    ) -> CorrectionOutcome:
        """
        Override the status of one control in a report.

        Re-applying a correction to the same control replaces the previous one;
        original_status always records the scanned status.

        Raises:
            Forbidden: caller is not a team admin
            InvalidCorrection: empty justification or unknown status
            NotFound: report does not exist for the team
            UnknownControl: control id absent from the report payload
        """
        self._check_role(role)
        justification = (justification or "").strip()
        if not justification:
            raise InvalidCorrection("Justification must not be empty", {"field": "justification"})
        status = (corrected_status or "").strip().upper()
        if status not in {s.value for s in ControlStatus}:
            raise InvalidCorrection(
                f"Invalid corrected status '{corrected_status}'; expected PASS, WARN or FAIL",
                {"field": "corrected_status"},
            )

        def operation() -> CorrectionOutcome:
            report = get_team_report(self.db, team_id, report_id)
            self.registry.lock_machine(report.machine_id)
            scanned = {c.id: c.status for c in extract_controls(report.raw_json)}
            if control_id not in scanned:
                raise UnknownControl(report_id, control_id)

            self._upsert(report.id, control_id, scanned[control_id], status, justification, corrected_by)
            self.db.flush()
            result = rescore_report(self.db, report)
            self.db.flush()
            machine_updated = self.registry.record_correction(report.machine, report)

            correction = corrections_by_control(self.db, report.id)[control_id]
            logger.info(
                f"Correction applied: report={report.id}, control='{control_id}', "
                f"{scanned[control_id]} -> {status}, score={result.score} ({result.grade}), by={corrected_by}"
            )
            return CorrectionOutcome(correction=correction, report=report, machine_updated=machine_updated)

        return self._run(operation, f"Correction of report {report_id} control '{control_id}'")

    def revert_correction(self, team_id: int, report_id: int, control_id: str, role: str) -> CorrectionOutcome:
        """Remove the active correction of a control and rescore the report."""
        self._check_role(role)

        def operation() -> CorrectionOutcome:
            report = get_team_report(self.db, team_id, report_id)
            self.registry.lock_machine(report.machine_id)
            deleted = (
                self.db.query(ControlCorrection)
                .filter(ControlCorrection.report_id == report.id, ControlCorrection.control_id == control_id)
                .delete(synchronize_session=False)
            )
            if not deleted:
                raise NotFound("Correction", control_id)
            result = rescore_report(self.db, report)
            self.db.flush()
            machine_updated = self.registry.record_correction(report.machine, report)
            logger.info(
                f"Correction reverted: report={report.id}, control='{control_id}', "
                f"score={result.score} ({result.grade})"
            )
            return CorrectionOutcome(correction=None, report=report, machine_updated=machine_updated)

        return self._run(operation, f"Revert of report {report_id} control '{control_id}'")
