"""
Tests for machine resolution and rolling statistics.
"""
import threading
from datetime import datetime

import pytest

from app.core.exceptions import NotFound
from app.models import AuditReport, Machine
from app.services.machine_registry import MachineRegistry
from app.services.report_service import ReportService


def test_resolve_creates_then_reuses(db_session, team):
    registry = MachineRegistry(db_session)

    machine, created = registry.resolve_machine(team.id, "srv-01", os="linux")
    db_session.commit()
    again, created_again = registry.resolve_machine(team.id, "srv-01")
    db_session.commit()

    assert created is True
    assert created_again is False
    assert again.id == machine.id
    assert again.total_audits == 0


def test_resolve_from_two_sessions_yields_one_row(db_session, session_factory, team):
    first = session_factory()
    second = session_factory()
    try:
        m1, c1 = MachineRegistry(first).resolve_machine(team.id, "race-host")
        first.commit()
        id1 = m1.id
        m2, c2 = MachineRegistry(second).resolve_machine(team.id, "race-host")
        second.commit()
        id2 = m2.id
    finally:
        first.close()
        second.close()

    assert (c1, c2) == (True, False)
    assert id1 == id2
    count = db_session.query(Machine).filter(Machine.team_id == team.id, Machine.hostname == "race-host").count()
    assert count == 1


def test_hostname_is_scoped_per_team_and_case_sensitive(db_session, make_team):
    team_a = make_team("a")
    team_b = make_team("b")
    registry = MachineRegistry(db_session)

    a, _ = registry.resolve_machine(team_a.id, "srv-01")
    b, _ = registry.resolve_machine(team_b.id, "srv-01")
    upper, created = registry.resolve_machine(team_a.id, "SRV-01")
    db_session.commit()

    assert a.id != b.id
    assert created is True
    assert upper.id != a.id


def test_get_machine_of_other_team_not_found(db_session, make_team):
    team_a = make_team("a")
    team_b = make_team("b")
    registry = MachineRegistry(db_session)
    machine, _ = registry.resolve_machine(team_a.id, "srv-01")
    db_session.commit()

    with pytest.raises(NotFound):
        registry.get_machine(team_b.id, machine.id)


def test_original_score_latched_on_first_report(db_session, team, report_payload):
    service = ReportService(db_session)

    first = service.ingest(team.id, report_payload(passes=8, fails=2), "srv-01")
    assert first.machine_created is True
    second = service.ingest(team.id, report_payload(passes=5, fails=5), "srv-01")
    assert second.machine_created is False

    machine = db_session.get(Machine, first.machine.id)
    db_session.refresh(machine)
    assert machine.total_audits == 2
    assert machine.original_score == 80
    assert machine.last_score == 50
    assert machine.last_grade == "F"
    assert machine.os == "linux"


def test_score_history_oldest_first(db_session, team, report_payload):
    service = ReportService(db_session)
    service.ingest(team.id, report_payload(passes=1, fails=1, auditDate="2026-01-01T00:00:00Z"), "hist-01")
    result = service.ingest(team.id, report_payload(passes=1, auditDate="2026-02-01T00:00:00Z"), "hist-01")

    history = MachineRegistry(db_session).score_history(result.machine)
    assert [r.score for r in history] == [50, 100]


def test_delete_report_rederives_last_fields_only(db_session, team, report_payload):
    service = ReportService(db_session)
    first = service.ingest(team.id, report_payload(passes=7, fails=3), "srv-del")
    second = service.ingest(team.id, report_payload(passes=9, fails=1), "srv-del")

    machine = service.delete_report(team.id, second.report.id)

    assert machine.last_score == 70
    assert machine.last_grade == "C"
    assert machine.total_audits == 2
    assert machine.original_score == 70
    assert db_session.get(AuditReport, first.report.id) is not None


def test_delete_last_remaining_report_clears_last_fields(db_session, team, report_payload):
    service = ReportService(db_session)
    only = service.ingest(team.id, report_payload(passes=1), "srv-single")

    machine = service.delete_report(team.id, only.report.id)

    assert machine.last_score is None
    assert machine.last_grade is None
    assert machine.last_audit_date is None
    assert machine.original_score == 100


def test_delete_machine_cascades_reports(db_session, team, report_payload):
    service = ReportService(db_session)
    result = service.ingest(team.id, report_payload(passes=2), "srv-gone")
    report_id = result.report.id

    hostname = MachineRegistry(db_session).delete_machine(team.id, result.machine.id)

    assert hostname == "srv-gone"
    assert db_session.query(AuditReport).filter(AuditReport.id == report_id).count() == 0


def test_concurrent_first_uploads_share_one_machine(db_session, session_factory, team, report_payload):
    workers = 4
    team_id = team.id
    payload = report_payload(passes=3, fails=1)
    barrier = threading.Barrier(workers)
    errors = []

    def ingest():
        session = session_factory()
        try:
            barrier.wait()
            ReportService(session).ingest(team_id, payload, "race-01")
        except Exception as e:
            errors.append(e)
        finally:
            session.close()

    threads = [threading.Thread(target=ingest) for _ in range(workers)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
    machines = db_session.query(Machine).filter(Machine.team_id == team_id, Machine.hostname == "race-01").all()
    assert len(machines) == 1
    assert machines[0].total_audits == workers
    assert machines[0].original_score == 75
    assert db_session.query(AuditReport).filter(AuditReport.machine_id == machines[0].id).count() == workers


def test_backfilled_report_keeps_latest_audit_date(db_session, team, report_payload):
    service = ReportService(db_session)
    service.ingest(team.id, report_payload(passes=1, auditDate="2026-03-05T10:00:00Z"), "backfill-01")
    older = service.ingest(team.id, report_payload(passes=1, fails=1, auditDate="2026-02-01T10:00:00Z"), "backfill-01")

    machine = db_session.get(Machine, older.machine.id)
    db_session.refresh(machine)
    assert machine.last_audit_date.replace(tzinfo=None) == datetime(2026, 3, 5, 10, 0)
    # Score follows upload order
    assert machine.last_score == 50

    machine = service.delete_report(team.id, older.report.id)
    assert machine.last_audit_date.replace(tzinfo=None) == datetime(2026, 3, 5, 10, 0)
    assert machine.last_score == 100
