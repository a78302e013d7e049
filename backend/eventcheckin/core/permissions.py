"""
Role-based gating for staff actions.

A closed set of roles mapped to a closed set of actions; checking a
permission is a table lookup.
"""
import enum
from typing import FrozenSet


class Role(str, enum.Enum):
    SUPER_ADMIN = "super_admin"
    ADMIN = "admin"
    USER = "user"


class Action(str, enum.Enum):
    SCAN = "scan"
    VIEW_ATTENDEES = "view_attendees"
    ADD_ATTENDEES = "add_attendees"
    SEND_QR = "send_qr"
    VIEW_REPORTS = "view_reports"
    VIEW_LOGS = "view_logs"
    DELETE_ATTENDEES = "delete_attendees"
    MANAGE_TOKENS = "manage_tokens"
    INVITE_STAFF = "invite_staff"
    EXPORT_REPORTS = "export_reports"
    REPAIR_CHECKINS = "repair_checkins"
    MANAGE_ROLES = "manage_roles"


_USER_ACTIONS = frozenset({
    Action.SCAN,
    Action.VIEW_ATTENDEES,
    Action.ADD_ATTENDEES,
    Action.SEND_QR,
    Action.VIEW_REPORTS,
    Action.VIEW_LOGS,
})

_ADMIN_ACTIONS = _USER_ACTIONS | {
    Action.DELETE_ATTENDEES,
    Action.MANAGE_TOKENS,
    Action.INVITE_STAFF,
    Action.EXPORT_REPORTS,
    Action.REPAIR_CHECKINS,
}

ROLE_PERMISSIONS = {
    Role.USER: _USER_ACTIONS,
    Role.ADMIN: _ADMIN_ACTIONS,
    Role.SUPER_ADMIN: _ADMIN_ACTIONS | {Action.MANAGE_ROLES},
}


def allowed_actions(role: Role) -> FrozenSet[Action]:
    return ROLE_PERMISSIONS.get(Role(role), frozenset())


def has_permission(role: Role, action: Action) -> bool:
    """Check whether ``role`` may perform ``action``"""
    try:
        return Action(action) in allowed_actions(role)
    except ValueError:
        # Unknown role or action string
        return False


def is_admin(role: Role) -> bool:
    return Role(role) in (Role.ADMIN, Role.SUPER_ADMIN)
