# demarcation/permissions.py
"""
Roles and the capabilities each role grants.

Endpoints declare the capability they need; no endpoint checks a role name
directly, so adding a role only means extending ROLE_CAPABILITIES.
"""

import enum
from typing import Dict, FrozenSet


class Role(str, enum.Enum):
    CITIZEN = "citizen"
    OFFICER = "officer"
    SUPERVISOR = "supervisor"  # ADC
    ADMINISTRATOR = "administrator"


class Capability(str, enum.Enum):
    SUBMIT_REQUEST = "submit_request"
    VIEW_PLOTS = "view_plots"
    UPDATE_STATUS = "update_status"
    RECORD_ACTIVITY = "record_activity"
    ASSIGN_OFFICER = "assign_officer"
    RETRACT_LOG = "retract_log"
    VIEW_REPORTS = "view_reports"
    MANAGE_GEOGRAPHY = "manage_geography"
    MANAGE_USERS = "manage_users"
    UPLOAD_DOCUMENTS = "upload_documents"
    VERIFY_DOCUMENTS = "verify_documents"
    CROSS_CIRCLE = "cross_circle"


_STAFF = frozenset({
    Capability.SUBMIT_REQUEST,
    Capability.VIEW_PLOTS,
    Capability.UPDATE_STATUS,
    Capability.RECORD_ACTIVITY,
    Capability.UPLOAD_DOCUMENTS,
    Capability.VERIFY_DOCUMENTS,
})

ROLE_CAPABILITIES: Dict[Role, FrozenSet[Capability]] = {
    Role.CITIZEN: frozenset({
        Capability.SUBMIT_REQUEST,
        Capability.VIEW_PLOTS,
        Capability.UPLOAD_DOCUMENTS,
    }),
    Role.OFFICER: _STAFF,
    Role.SUPERVISOR: _STAFF | {
        Capability.ASSIGN_OFFICER,
        Capability.VIEW_REPORTS,
        Capability.CROSS_CIRCLE,
    },
    Role.ADMINISTRATOR: _STAFF | {
        Capability.ASSIGN_OFFICER,
        Capability.VIEW_REPORTS,
        Capability.CROSS_CIRCLE,
        Capability.RETRACT_LOG,
        Capability.MANAGE_GEOGRAPHY,
        Capability.MANAGE_USERS,
    },
}


def as_role(value) -> Role:
    return value if isinstance(value, Role) else Role(value)


def has_capability(role, capability: Capability) -> bool:
    try:
        return capability in ROLE_CAPABILITIES[as_role(role)]
    except ValueError:
        # unknown role string: no capabilities at all
        return False


def is_staff(role) -> bool:
    return has_capability(role, Capability.VERIFY_DOCUMENTS)
