"""
Team role definitions and permission checks.

Roles in hierarchy (lowest to highest):
- member: Read-only access to the team's fleet (machines, reports, stats, hierarchy)
- admin: Team-admin, full access (upload reports, correct controls, manage hierarchy)
- owner: Team owner, additionally manages API keys for the team's members

The static platform API key is treated as owner of whichever team it acts on.
"""
from enum import Enum
from typing import Dict, Set


class Role(str, Enum):
    """Team roles with hierarchy."""
    MEMBER = "member"
    ADMIN = "admin"
    OWNER = "owner"


ROLE_HIERARCHY: Dict[str, int] = {
    Role.MEMBER.value: 1,
    Role.ADMIN.value: 2,
    Role.OWNER.value: 3,
}

# Aliases used by the auth layer
LEGACY_ROLE_MAP: Dict[str, str] = {
    "viewer": Role.MEMBER.value,
    "read_only": Role.MEMBER.value,
    "team_admin": Role.ADMIN.value,
    "team-admin": Role.ADMIN.value,
}

VALID_ROLES: Set[str] = {r.value for r in Role}

# Minimum role for "full team access" (uploads, corrections, hierarchy changes)
FULL_ACCESS_ROLE = Role.ADMIN.value


def normalize_role(role: str) -> str:
    """
    Normalize role string, handling aliases.

    Unknown roles fall back to member (read-only).
    """
    role_lower = (role or "").lower().strip()

    if role_lower in LEGACY_ROLE_MAP:
        return LEGACY_ROLE_MAP[role_lower]

    if role_lower in VALID_ROLES:
        return role_lower

    return Role.MEMBER.value


def has_permission(user_role: str, required_role: str) -> bool:
    """Check if user role has permission for required role."""
    user_level = ROLE_HIERARCHY.get(normalize_role(user_role), 0)
    required_level = ROLE_HIERARCHY.get(normalize_role(required_role), 0)
    return user_level >= required_level


def has_full_access(user_role: str) -> bool:
    """True for owner and team-admin roles."""
    return has_permission(user_role, FULL_ACCESS_ROLE)
