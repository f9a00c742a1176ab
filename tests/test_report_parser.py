"""
Tests for the JSON audit report parser.
"""
import json
import pytest
from datetime import timezone

from app.core.exceptions import MalformedReport
from app.utils.report_parser import ReportParser, extract_controls, parse_report


FLAT_REPORT = {
    "os": "windows",
    "osVersion": "Windows Server 2022",
    "auditDate": "2026-02-10T08:30:00Z",
    "scriptName": "windows-cis-audit",
    "scriptVersion": "2.1.0",
    "hostname": "SHOULD-NOT-BE-USED",
    "controls": [
        {"id": "1.1", "category": "Accounts", "title": "Password history", "status": "PASS"},
        {"id": "1.2", "category": "Accounts", "name": "Lockout", "status": "fail", "remediation": "Set lockout"},
        {"id": "2.1", "category": "Services", "title": "SMBv1 disabled", "status": "WARN"},
    ],
}

SCRIPT_REPORT = {
    "report_type": "linux_security_audit",
    "system_info": {"hostname": "ignored-host", "os": "Ubuntu 22.04", "audit_date": "2026-01-05T12:00:00"},
    "metadata": {"version": "1.4", "standards": ["CIS", "ANSSI"]},
    "summary": {"score": 50, "total_checks": 2},
    "results": [
        {"id": "SSH-01", "category": "SSH", "name": "Root login disabled", "status": "PASS", "details": "ok"},
        {"id": "SSH-02", "category": "SSH", "name": "Protocol 2", "status": "FAIL"},
    ],
}


def test_parse_flat_report():
    parsed = parse_report(json.dumps(FLAT_REPORT), "srv-01")

    assert parsed.machine_name == "srv-01"
    assert parsed.os == "windows"
    assert parsed.os_version == "Windows Server 2022"
    assert parsed.script_name == "windows-cis-audit"
    assert parsed.script_version == "2.1.0"
    assert parsed.total_controls == 3
    assert parsed.passed_controls == 1
    assert parsed.failed_controls == 1
    assert parsed.warning_controls == 1
    assert parsed.score == 33
    assert parsed.grade == "F"
    assert parsed.audit_date.tzinfo is not None
    assert parsed.audit_date.year == 2026 and parsed.audit_date.month == 2


def test_status_is_case_insensitive_and_titles_fall_back_to_name():
    parsed = parse_report(json.dumps(FLAT_REPORT), "srv-01")
    lockout = next(c for c in parsed.controls if c.id == "1.2")
    assert lockout.status == "FAIL"
    assert lockout.title == "Lockout"
    assert lockout.remediation == "Set lockout"


def test_parse_script_shape():
    parsed = parse_report(json.dumps(SCRIPT_REPORT), "web-01")

    assert parsed.os == "linux"  # Derived from report_type
    assert parsed.os_version == "Ubuntu 22.04"
    assert parsed.script_name == "linux_security_audit"
    assert parsed.script_version == "1.4"
    assert parsed.framework == "CIS, ANSSI"
    assert parsed.score == 50
    assert parsed.reported_score == 50
    assert parsed.warnings == []
    # Naive timestamps are taken as UTC
    assert parsed.audit_date.tzinfo == timezone.utc
    assert parsed.controls[0].description == "ok"


def test_machine_identity_comes_from_upload_name_only():
    parsed = parse_report(json.dumps(SCRIPT_REPORT), "  my-machine  ")
    assert parsed.machine_name == "my-machine"


def test_os_override_wins():
    parsed = parse_report(json.dumps(FLAT_REPORT), "srv-01", os_override="linux")
    assert parsed.os == "linux"


def test_reported_score_mismatch_keeps_computed_score():
    payload = dict(FLAT_REPORT, score=95)
    parsed = parse_report(json.dumps(payload), "srv-01")

    assert parsed.score == 33
    assert parsed.reported_score == 95
    assert any("differs from computed score" in w for w in parsed.warnings)


def test_invalid_json_rejected():
    with pytest.raises(MalformedReport):
        parse_report("{not json", "srv-01")


def test_non_object_rejected():
    with pytest.raises(MalformedReport):
        parse_report("[1, 2, 3]", "srv-01")


def test_missing_controls_rejected():
    with pytest.raises(MalformedReport) as exc_info:
        parse_report(json.dumps({"os": "linux"}), "srv-01")
    assert exc_info.value.field == "controls"


def test_controls_must_be_array():
    with pytest.raises(MalformedReport):
        parse_report(json.dumps({"controls": {"id": "x"}}), "srv-01")


def test_control_without_status_rejected():
    payload = {"controls": [{"id": "A", "status": "PASS"}, {"id": "B"}]}
    with pytest.raises(MalformedReport) as exc_info:
        parse_report(json.dumps(payload), "srv-01")
    assert exc_info.value.field == "controls[1].status"


def test_control_without_id_rejected():
    payload = {"controls": [{"status": "PASS"}]}
    with pytest.raises(MalformedReport) as exc_info:
        parse_report(json.dumps(payload), "srv-01")
    assert exc_info.value.field == "controls[0].id"


def test_out_of_range_score_rejected():
    payload = {"score": 150, "controls": [{"id": "A", "status": "PASS"}]}
    with pytest.raises(MalformedReport) as exc_info:
        parse_report(json.dumps(payload), "srv-01")
    assert exc_info.value.field == "score"


def test_non_numeric_score_rejected():
    payload = {"score": "high", "controls": [{"id": "A", "status": "PASS"}]}
    with pytest.raises(MalformedReport):
        parse_report(json.dumps(payload), "srv-01")


def test_empty_machine_name_rejected():
    with pytest.raises(MalformedReport) as exc_info:
        parse_report(json.dumps(FLAT_REPORT), "   ")
    assert exc_info.value.field == "machineName"


def test_unknown_status_dropped_with_warning():
    payload = {"controls": [{"id": "A", "status": "PASS"}, {"id": "B", "status": "SKIPPED"}]}
    parsed = parse_report(json.dumps(payload), "srv-01")

    assert [c.id for c in parsed.controls] == ["A"]
    assert parsed.score == 100
    assert any("'B' dropped" in w for w in parsed.warnings)


def test_duplicate_control_id_keeps_first():
    payload = {"controls": [
        {"id": "A", "status": "PASS"},
        {"id": "A", "status": "FAIL"},
        {"id": "B", "status": "FAIL"},
    ]}
    parsed = parse_report(json.dumps(payload), "srv-01")

    assert [(c.id, c.status) for c in parsed.controls] == [("A", "PASS"), ("B", "FAIL")]
    assert parsed.score == 50
    assert any("duplicate id" in w for w in parsed.warnings)


def test_empty_controls_score_zero():
    parsed = parse_report(json.dumps({"controls": []}), "srv-01")
    assert parsed.total_controls == 0
    assert parsed.score == 0
    assert parsed.grade == "F"


def test_missing_audit_date_falls_back_to_now():
    parsed = parse_report(json.dumps({"controls": []}), "srv-01")
    assert parsed.audit_date.tzinfo is not None
    assert any("auditDate missing" in w for w in parsed.warnings)


def test_bytes_with_bom_accepted():
    content = b"\xef\xbb\xbf" + json.dumps(FLAT_REPORT).encode("utf-8")
    parser = ReportParser(content)
    assert len(parser.parse_controls()) == 3


def test_extract_controls_matches_upload_filtering():
    payload = {"controls": [
        {"id": "A", "status": "PASS"},
        {"id": "A", "status": "FAIL"},
        {"id": "B", "status": "n/a"},
    ]}
    controls = extract_controls(json.dumps(payload))
    assert [(c.id, c.status) for c in controls] == [("A", "PASS")]
