"""
Parser for JSON audit reports produced by the audit scripts.

Two payload shapes are accepted:

- flat: ``{"os", "auditDate", "score", "controls": [{"id", "name", "status", ...}]}``
- script: ``{"report_type", "system_info" | "metadata", "summary": {...}, "results": [...]}``

Machine identity (hostname, IP, serial...) embedded in the payload is never
read; the caller-supplied machine name is the only identity.
"""
import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field

from app.core.exceptions import MalformedReport
from app.models.control_correction import ControlStatus
from app.utils.scoring import score_controls

logger = logging.getLogger(__name__)

VALID_STATUSES = {s.value for s in ControlStatus}

# report_type / script name fragments -> OS family
OS_FAMILY_HINTS = (
    ("windows", "windows"),
    ("linux", "linux"),
    ("vmware", "vmware"),
    ("esxi", "vmware"),
    ("container", "docker"),
    ("docker", "docker"),
    ("netapp", "netapp"),
    ("web", "web"),
    ("owasp", "web"),
)


class ParsedControl(BaseModel):
    """One control extracted from a report payload."""
    id: str
    status: str  # PASS, FAIL or WARN
    category: Optional[str] = None
    title: Optional[str] = None
    severity: Optional[str] = None
    description: Optional[str] = None
    remediation: Optional[str] = None
    reference: Optional[str] = None


class ParsedReport(BaseModel):
    """Normalized report, ready to be persisted."""
    machine_name: str
    os: Optional[str] = None
    os_version: Optional[str] = None
    audit_date: datetime
    script_name: Optional[str] = None
    script_version: Optional[str] = None
    framework: Optional[str] = None
    reported_score: Optional[int] = None  # Score claimed by the script, informational
    score: int
    grade: str
    total_controls: int
    passed_controls: int
    failed_controls: int
    warning_controls: int
    controls: List[ParsedControl]
    warnings: List[str] = Field(default_factory=list)


def _text(value: Any) -> Optional[str]:
    """Strip strings, stringify scalars, drop empties."""
    if value is None or isinstance(value, (dict, list)):
        return None
    text = str(value).strip()
    return text or None


def _first(*values: Any) -> Optional[str]:
    for value in values:
        text = _text(value)
        if text:
            return text
    return None


class ReportParser:
    """Parser for one uploaded report payload."""

    def __init__(self, content: Union[str, bytes]):
        """
        Initialize parser with raw report content.

        Args:
            content: JSON text (bytes are decoded as UTF-8, BOM tolerated)
        """
        if isinstance(content, bytes):
            try:
                content = content.decode("utf-8-sig")
            except UnicodeDecodeError as e:
                raise MalformedReport(f"Report is not valid UTF-8 text: {e}")
        self.content = content
        self.warnings: List[str] = []
        self._payload: Optional[Dict[str, Any]] = None

    @property
    def payload(self) -> Dict[str, Any]:
        """Decoded JSON object; raises MalformedReport on anything else."""
        if self._payload is None:
            try:
                data = json.loads(self.content)
            except (json.JSONDecodeError, TypeError) as e:
                raise MalformedReport(f"Invalid JSON: {e}")
            if not isinstance(data, dict):
                raise MalformedReport("Report must be a JSON object")
            self._payload = data
        return self._payload

    def _section(self, name: str) -> Dict[str, Any]:
        section = self.payload.get(name)
        return section if isinstance(section, dict) else {}

    def parse_controls(self) -> List[ParsedControl]:
        """
        Extract controls from ``controls`` (flat shape) or ``results`` (script shape).

        Entries lacking ``id`` or ``status`` fail the whole report; entries with
        a status outside PASS/FAIL/WARN, or repeating an id, are dropped with
        a warning.
        """
        if "controls" in self.payload:
            field, raw_controls = "controls", self.payload["controls"]
        elif "results" in self.payload:
            field, raw_controls = "results", self.payload["results"]
        else:
            raise MalformedReport("Missing required field: controls", field="controls")

        if not isinstance(raw_controls, list):
            raise MalformedReport(f"Field '{field}' must be an array", field=field)

        controls: List[ParsedControl] = []
        seen = set()
        for index, entry in enumerate(raw_controls):
            location = f"{field}[{index}]"
            if not isinstance(entry, dict):
                raise MalformedReport(f"{location} must be an object", field=location)

            control_id = _text(entry.get("id"))
            if not control_id:
                raise MalformedReport(f"Missing required field: {location}.id", field=f"{location}.id")
            if entry.get("status") is None:
                raise MalformedReport(f"Missing required field: {location}.status", field=f"{location}.status")

            status = str(entry["status"]).strip().upper()
            if status not in VALID_STATUSES:
                self.warnings.append(
                    f"Control '{control_id}' dropped: status '{entry['status']}' is not one of PASS, FAIL, WARN"
                )
                continue
            if control_id in seen:
                self.warnings.append(f"Control '{control_id}' dropped: duplicate id")
                continue
            seen.add(control_id)

            controls.append(ParsedControl(
                id=control_id,
                status=status,
                category=_text(entry.get("category")),
                title=_first(entry.get("title"), entry.get("name")),
                severity=_text(entry.get("severity")),
                description=_first(entry.get("description"), entry.get("details")),
                remediation=_text(entry.get("remediation")),
                reference=_text(entry.get("reference")),
            ))
        return controls

    def parse_reported_score(self) -> Optional[int]:
        """Score claimed by the payload (top level or ``summary``), validated to 0-100."""
        summary = self._section("summary")
        if "score" in self.payload:
            raw = self.payload["score"]
        elif "score" in summary:
            raw = summary["score"]
        else:
            return None

        if raw is None:
            return None
        if isinstance(raw, bool) or not isinstance(raw, (int, float)):
            raise MalformedReport("Field 'score' must be a number between 0 and 100", field="score")
        if not 0 <= raw <= 100:
            raise MalformedReport(f"Field 'score' out of range (0-100): {raw}", field="score")
        return int(raw)

    def parse_audit_date(self) -> datetime:
        """Audit timestamp as an aware datetime; falls back to now with a warning."""
        system_info = self._section("system_info")
        metadata = self._section("metadata")
        raw = _first(
            self.payload.get("auditDate"),
            self.payload.get("audit_date"),
            system_info.get("audit_date"),
            metadata.get("date"),
        )
        now = datetime.now(timezone.utc)
        if not raw:
            self.warnings.append("auditDate missing: upload time used")
            return now
        try:
            parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
        except ValueError:
            self.warnings.append(f"auditDate '{raw}' is not ISO-8601: upload time used")
            return now
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed

    def parse_metadata(self) -> Dict[str, Optional[str]]:
        """Script and OS descriptors. Hostname, IP and serial fields are ignored."""
        system_info = self._section("system_info")
        metadata = self._section("metadata")
        report_type = _text(self.payload.get("report_type"))

        script_name = _first(self.payload.get("scriptName"), metadata.get("script"), report_type)
        standards = metadata.get("standards")
        framework = _first(
            self.payload.get("framework"),
            ", ".join(str(s) for s in standards) if isinstance(standards, list) else None,
        )

        os_family = _text(self.payload.get("os"))
        if not os_family:
            hint_source = " ".join(filter(None, [report_type, script_name])).lower()
            os_family = next((family for hint, family in OS_FAMILY_HINTS if hint in hint_source), None)

        return {
            "os": os_family[:50] if os_family else None,
            "os_version": _first(
                self.payload.get("osVersion"),
                self.payload.get("os_version"),
                system_info.get("os"),
            ),
            "script_name": script_name,
            "script_version": _first(
                self.payload.get("scriptVersion"),
                metadata.get("version"),
                system_info.get("script_version"),
            ),
            "framework": framework,
        }

    def parse(self, machine_name: str, os_override: Optional[str] = None) -> ParsedReport:
        """
        Parse the full report.

        Args:
            machine_name: Display name given by the uploader (sole machine identity)
            os_override: OS family chosen at upload, wins over the payload

        Returns:
            ParsedReport with engine-computed score and grade
        """
        name = (machine_name or "").strip()
        if not name:
            raise MalformedReport("Machine name is required", field="machineName")

        controls = self.parse_controls()
        reported_score = self.parse_reported_score()
        audit_date = self.parse_audit_date()
        meta = self.parse_metadata()
        if os_override and os_override.strip():
            meta["os"] = os_override.strip()[:50]

        result = score_controls(controls)
        if reported_score is not None and reported_score != result.score:
            self.warnings.append(
                f"Reported score {reported_score} differs from computed score {result.score}; computed score kept"
            )

        passed = sum(1 for c in controls if c.status == ControlStatus.PASS.value)
        failed = sum(1 for c in controls if c.status == ControlStatus.FAIL.value)
        warned = sum(1 for c in controls if c.status == ControlStatus.WARN.value)

        if self.warnings:
            logger.info(f"Report for '{name}' parsed with {len(self.warnings)} warning(s)")

        return ParsedReport(
            machine_name=name,
            audit_date=audit_date,
            reported_score=reported_score,
            score=result.score,
            grade=result.grade,
            total_controls=len(controls),
            passed_controls=passed,
            failed_controls=failed,
            warning_controls=warned,
            controls=controls,
            warnings=list(self.warnings),
            **meta,
        )


def parse_report(content: Union[str, bytes], machine_name: str, os_override: Optional[str] = None) -> ParsedReport:
    """Parse an uploaded report; raises MalformedReport."""
    return ReportParser(content).parse(machine_name, os_override=os_override)


def extract_controls(stored_payload: str) -> List[ParsedControl]:
    """Control list of a stored report payload, with the same filtering as at upload."""
    return ReportParser(stored_payload).parse_controls()
