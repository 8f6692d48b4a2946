"""
Workspace Role-Based Access Control (RBAC) definitions and helpers.
"""
from __future__ import annotations

from enum import Enum


class WorkspaceRole(str, Enum):
    """
    Roles a user can hold inside one workspace.
    """

    MEMBER = "member"
    ADMIN = "admin"
    OWNER = "owner"


ROLE_ORDER: tuple[WorkspaceRole, ...] = (
    WorkspaceRole.MEMBER,
    WorkspaceRole.ADMIN,
    WorkspaceRole.OWNER,
)
ROLE_RANK: dict[WorkspaceRole, int] = {role: rank for rank, role in enumerate(ROLE_ORDER)}


class Permission(str, Enum):
    """
    Workspace actions mapped to a minimum role.
    """

    VIEW_DASHBOARD = "view-dashboard"
    MANAGE_PROFILE = "manage-profile"
    VIEW_BILLING = "view-billing"
    VIEW_ANALYTICS = "view-analytics"
    ACCESS_API = "access-api"
    MANAGE_USERS = "manage-users"
    MANAGE_SETTINGS = "manage-settings"
    MANAGE_BILLING = "manage-billing"
    EXPORT_DATA = "export-data"


PERMISSION_REQUIRED_ROLE: dict[Permission, WorkspaceRole] = {
    Permission.VIEW_DASHBOARD: WorkspaceRole.MEMBER,
    Permission.MANAGE_PROFILE: WorkspaceRole.MEMBER,
    Permission.VIEW_BILLING: WorkspaceRole.MEMBER,
    Permission.VIEW_ANALYTICS: WorkspaceRole.MEMBER,
    Permission.ACCESS_API: WorkspaceRole.MEMBER,
    Permission.MANAGE_USERS: WorkspaceRole.ADMIN,
    Permission.MANAGE_SETTINGS: WorkspaceRole.ADMIN,
    Permission.MANAGE_BILLING: WorkspaceRole.OWNER,
    Permission.EXPORT_DATA: WorkspaceRole.OWNER,
}

PERMISSION_DESCRIPTIONS: dict[Permission, str] = {
    Permission.VIEW_DASHBOARD: "View the workspace dashboard",
    Permission.MANAGE_PROFILE: "Edit your own profile",
    Permission.VIEW_BILLING: "View billing information",
    Permission.VIEW_ANALYTICS: "View analytics",
    Permission.ACCESS_API: "Use the API",
    Permission.MANAGE_USERS: "Invite, remove and list members",
    Permission.MANAGE_SETTINGS: "Change workspace settings",
    Permission.MANAGE_BILLING: "Manage subscription and payment methods",
    Permission.EXPORT_DATA: "Export workspace data",
}


def _inherited_permissions() -> dict[WorkspaceRole, frozenset[Permission]]:
    granted: set[Permission] = set()
    result: dict[WorkspaceRole, frozenset[Permission]] = {}
    for role in ROLE_ORDER:
        granted |= {
            permission
            for permission, required in PERMISSION_REQUIRED_ROLE.items()
            if required == role
        }
        result[role] = frozenset(granted)
    return result


ROLE_PERMISSIONS: dict[WorkspaceRole, frozenset[Permission]] = _inherited_permissions()

# Roles que podem ser atribuidos por convite ou troca de role.
ASSIGNABLE_ROLES: frozenset[WorkspaceRole] = frozenset(
    {
        WorkspaceRole.ADMIN,
        WorkspaceRole.MEMBER,
    }
)


def parse_role(role: str | WorkspaceRole | None) -> WorkspaceRole | None:
    """
    Parse a role value case-insensitively, ``None`` when invalid.
    """

    if isinstance(role, WorkspaceRole):
        return role
    if role is None:
        return None
    try:
        return WorkspaceRole(str(role).strip().lower())
    except ValueError:
        return None


def normalize_role(role: str | WorkspaceRole | None) -> WorkspaceRole:
    """
    Normalize string/enum role values to a valid ``WorkspaceRole``.

    Args:
        role: Raw role value from DB/request input.

    Returns:
        Normalized role. Falls back to ``WorkspaceRole.MEMBER`` for unknown values.
    """

    return parse_role(role) or WorkspaceRole.MEMBER


def parse_permission(permission: str | Permission | None) -> Permission | None:
    if isinstance(permission, Permission):
        return permission
    if permission is None:
        return None
    try:
        return Permission(str(permission).strip().lower())
    except ValueError:
        return None


def get_role_permissions(role: str | WorkspaceRole | None) -> frozenset[Permission]:
    """
    Resolve the permission set for a role.

    Args:
        role: Role value.

    Returns:
        Immutable set with granted permissions for the given role.
    """

    return ROLE_PERMISSIONS[normalize_role(role)]


def role_has_permission(role: str | WorkspaceRole | None, permission: str | Permission | None) -> bool:
    """
    Check if role grants the required permission.

    Unknown permissions are never granted.
    """

    parsed = parse_permission(permission)
    if parsed is None:
        return False
    return parsed in get_role_permissions(role)


def required_role_for(permission: str | Permission | None) -> WorkspaceRole:
    """Minimum role for ``permission``; unknown permissions map to ``OWNER``."""

    parsed = parse_permission(permission)
    if parsed is None:
        return WorkspaceRole.OWNER
    return PERMISSION_REQUIRED_ROLE[parsed]


def role_at_least(role: str | WorkspaceRole | None, minimum: str | WorkspaceRole) -> bool:
    """
    Compare roles. An unparseable ``minimum`` is treated as ``OWNER``.
    """

    minimum_role = parse_role(minimum) or WorkspaceRole.OWNER
    return ROLE_RANK[normalize_role(role)] >= ROLE_RANK[minimum_role]
