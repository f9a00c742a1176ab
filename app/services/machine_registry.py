"""
Machine registry: the single writer of a machine's rolling audit statistics.

Other components (report ingestion, correction ledger, report deletion) call
into this module instead of writing Machine.last_*, original_score or
total_audits themselves. Methods named record_* / refresh_* join the caller's
transaction and never commit.
"""
import logging
from typing import List, Optional, Tuple

from sqlalchemy import case, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.database import dialect_insert
from app.core.exceptions import NotFound
from app.models.audit_report import AuditReport
from app.models.machine import Machine

logger = logging.getLogger(__name__)


class MachineRegistry:
    """Resolve machines and maintain their rolling statistics."""

    def __init__(self, db: Session):
        self.db = db

    def get_machine(self, team_id: int, machine_id: int) -> Machine:
        """Machine of the team, or NotFound (machines of other teams are invisible)."""
        machine = (
            self.db.query(Machine)
            .filter(Machine.id == machine_id, Machine.team_id == team_id)
            .first()
        )
        if machine is None:
            raise NotFound("Machine", machine_id)
        return machine

    def list_machines(
        self,
        team_id: int,
        os: Optional[str] = None,
        group_id: Optional[int] = None,
        unassigned: bool = False,
    ) -> List[Machine]:
        query = self.db.query(Machine).filter(Machine.team_id == team_id)
        if os:
            query = query.filter(Machine.os == os)
        if unassigned:
            query = query.filter(Machine.group_id.is_(None))
        elif group_id is not None:
            query = query.filter(Machine.group_id == group_id)
        return query.order_by(Machine.hostname.asc()).all()

    def resolve_machine(
        self,
        team_id: int,
        hostname: str,
        os: Optional[str] = None,
        os_version: Optional[str] = None,
    ) -> Tuple[Machine, bool]:
        """
        Find the team's machine named ``hostname`` (exact, case-sensitive) or create it.

        Creation is an INSERT ... ON CONFLICT DO NOTHING against the
        (team_id, hostname) unique constraint followed by a locking read, so
        two concurrent first uploads end up on the same row and the caller
        holds the machine lock (see lock_machine) for the rest of its
        transaction.

        Returns:
            (machine, created)
        """
        hostname = hostname.strip()
        values = {
            "team_id": team_id,
            "hostname": hostname,
            "os": os,
            "os_version": os_version,
            "total_audits": 0,
        }

        insert = dialect_insert(self.db)
        if insert is not None:
            stmt = insert(Machine).values(**values).on_conflict_do_nothing(
                index_elements=["team_id", "hostname"]
            )
            created = self.db.execute(stmt).rowcount == 1
        else:
            try:
                with self.db.begin_nested():
                    self.db.add(Machine(**values))
                created = True
            except IntegrityError:
                created = False

        machine = (
            self.db.query(Machine)
            .filter(Machine.team_id == team_id, Machine.hostname == hostname)
            .with_for_update()
            .populate_existing()
            .one()
        )

        if created:
            logger.info(f"Registered machine: id={machine.id}, team={team_id}, hostname='{hostname}'")
        else:
            # Latest report's OS descriptors win
            if os and machine.os != os:
                machine.os = os
            if os_version and machine.os_version != os_version:
                machine.os_version = os_version
        return machine, created

    def lock_machine(self, machine_id: int) -> Machine:
        """
        Lock the machine row until the end of the transaction and reload it.

        Every path that writes last_* takes this lock before reading which
        report is the latest, so uploads and corrections of one machine
        apply in commit order. SQLite ignores FOR UPDATE and serializes
        writers on its own.
        """
        return (
            self.db.query(Machine)
            .filter(Machine.id == machine_id)
            .with_for_update()
            .populate_existing()
            .one()
        )

    def record_report(self, machine: Machine, report: AuditReport) -> Machine:
        """
        Account for a newly uploaded report.

        Increments total_audits, sets last score/grade from the report,
        moves last_audit_date forward only (a backfilled older report keeps
        the later date) and latches original_score on the machine's first
        report. Callers hold the lock from lock_machine().
        """
        audit_date = report.audit_date
        self.db.query(Machine).filter(Machine.id == machine.id).update(
            {
                Machine.total_audits: Machine.total_audits + 1,
                Machine.last_score: report.score,
                Machine.last_grade: report.grade,
                Machine.last_audit_date: case(
                    (Machine.last_audit_date.is_(None), audit_date),
                    (Machine.last_audit_date < audit_date, audit_date),
                    else_=Machine.last_audit_date,
                ),
                Machine.original_score: func.coalesce(Machine.original_score, report.original_score),
            },
            synchronize_session=False,
        )
        self.db.expire(machine)
        return machine

    def latest_report_id(self, machine_id: int) -> Optional[int]:
        """Most recently uploaded report of the machine."""
        return (
            self.db.query(func.max(AuditReport.id))
            .filter(AuditReport.machine_id == machine_id)
            .scalar()
        )

    def record_correction(self, machine: Machine, report: AuditReport) -> bool:
        """
        Propagate a recomputed report score to the machine.

        Only the machine's most recent report drives last_score/last_grade;
        original_score and total_audits are never touched here. Callers hold
        the lock from lock_machine().

        Returns:
            True if the machine was updated
        """
        if self.latest_report_id(machine.id) != report.id:
            return False
        self.db.query(Machine).filter(Machine.id == machine.id).update(
            {Machine.last_score: report.score, Machine.last_grade: report.grade},
            synchronize_session=False,
        )
        self.db.expire(machine)
        return True

    def refresh_from_latest(self, machine: Machine) -> Machine:
        """
        Re-derive last_* after a report deletion: score and grade from the
        latest remaining upload, date from the latest remaining audit.
        """
        latest_id = self.latest_report_id(machine.id)
        latest = self.db.get(AuditReport, latest_id) if latest_id is not None else None
        last_audit_date = (
            self.db.query(func.max(AuditReport.audit_date))
            .filter(AuditReport.machine_id == machine.id)
            .scalar()
        )
        self.db.query(Machine).filter(Machine.id == machine.id).update(
            {
                Machine.last_score: latest.score if latest else None,
                Machine.last_grade: latest.grade if latest else None,
                Machine.last_audit_date: last_audit_date,
            },
            synchronize_session=False,
        )
        self.db.expire(machine)
        return machine

    def score_history(self, machine: Machine) -> List[AuditReport]:
        """Reports of the machine, oldest first."""
        return (
            self.db.query(AuditReport)
            .filter(AuditReport.machine_id == machine.id)
            .order_by(AuditReport.audit_date.asc(), AuditReport.id.asc())
            .all()
        )

    def delete_machine(self, team_id: int, machine_id: int) -> str:
        """
        Hard-delete a machine with its reports and their corrections.

        Explicit user action only; hierarchy deletions never call this.
        Returns the deleted machine's hostname.
        """
        machine = self.get_machine(team_id, machine_id)
        hostname = machine.hostname
        try:
            self.db.delete(machine)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        logger.info(f"Deleted machine: id={machine_id}, team={team_id}")
        return hostname
