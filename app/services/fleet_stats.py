"""Fleet-wide dashboard statistics for one team."""
import logging
from typing import Any, Dict

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.models.audit_report import AuditReport
from app.models.machine import Machine
from app.utils.scoring import mean_score

logger = logging.getLogger(__name__)

UNKNOWN_OS = "unknown"


def fleet_stats(db: Session, team_id: int) -> Dict[str, Any]:
    """
    Machine and report totals, average of last scores, latest audit date and
    machine count per OS.

    The average only covers machines that have a score; machines that were
    never scored are left out instead of counting as zero.
    """
    machines = db.query(Machine.last_score, Machine.last_audit_date, Machine.os).filter(
        Machine.team_id == team_id
    ).all()

    total_reports = (
        db.query(func.count(AuditReport.id))
        .join(Machine, AuditReport.machine_id == Machine.id)
        .filter(Machine.team_id == team_id)
        .scalar()
    ) or 0

    os_counts: Dict[str, int] = {}
    last_audit_date = None
    for last_score, audit_date, os in machines:
        key = os or UNKNOWN_OS
        os_counts[key] = os_counts.get(key, 0) + 1
        if audit_date is not None and (last_audit_date is None or audit_date > last_audit_date):
            last_audit_date = audit_date

    stats = {
        "total_machines": len(machines),
        "total_reports": total_reports,
        "average_score": mean_score(row[0] for row in machines),
        "last_audit_date": last_audit_date,
        "os_counts": os_counts,
    }
    logger.debug(f"Fleet stats for team {team_id}: {stats}")
    return stats
