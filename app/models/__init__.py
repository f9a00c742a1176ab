"""Database models."""
from app.models.team import Team, TeamMember
from app.models.api_key import APIKey
from app.models.hierarchy import Organization, Site, MachineGroup
from app.models.machine import Machine
from app.models.audit_report import AuditReport
from app.models.control_correction import ControlCorrection, ControlStatus
from app.models.activity_log import ActivityLog

__all__ = [
    "Team",
    "TeamMember",
    "APIKey",
    "Organization",
    "Site",
    "MachineGroup",
    "Machine",
    "AuditReport",
    "ControlCorrection",
    "ControlStatus",
    "ActivityLog",
]
