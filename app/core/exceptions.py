"""
Exception hierarchy for the fleet tracking core.

Services raise these; the API layer renders them through a single exception
handler (see app.main) so every error carries a status code, a message the
caller can act on, and structured details.
"""
from typing import Any, Dict, Optional

from fastapi import status


class FleetError(Exception):
    """Base exception for all fleet tracking errors."""

    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class MalformedReport(FleetError):
    """Raised when an uploaded audit report cannot be parsed or lacks a required field."""

    def __init__(self, message: str, field: Optional[str] = None) -> None:
        super().__init__(message, {"field": field} if field else None)
        self.field = field


class UnknownControl(FleetError):
    """Raised when a correction targets a control id absent from the report."""

    def __init__(self, report_id: int, control_id: str) -> None:
        super().__init__(
            f"Control '{control_id}' not found in report {report_id}",
            {"report_id": report_id, "control_id": control_id},
        )
        self.control_id = control_id


class InvalidCorrection(FleetError):
    """Raised when a correction request has an empty justification or a bad status."""


class Forbidden(FleetError):
    """Raised when the caller's team role does not allow the operation."""

    status_code = status.HTTP_403_FORBIDDEN


class CrossTeamAssignment(Forbidden):
    """Raised when a machine would be placed in a group owned by another team."""

    def __init__(self, machine_id: int, group_id: int) -> None:
        super().__init__(
            f"Group {group_id} does not belong to the team that owns machine {machine_id}",
            {"machine_id": machine_id, "group_id": group_id},
        )


class NotFound(FleetError):
    """Raised when a machine, report, organization, site or group does not exist for the team."""

    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, resource: str, resource_id: Any) -> None:
        super().__init__(
            f"{resource} with id {resource_id} not found",
            {"resource": resource, "id": resource_id},
        )


class Conflict(FleetError):
    """Raised when a name is already taken among siblings."""

    status_code = status.HTTP_409_CONFLICT
