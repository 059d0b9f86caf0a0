# demarcation/services/lifecycle.py
"""Plot status state machine and enum parsing shared by the services."""

from typing import Dict, FrozenSet, Type

from demarcation.errors import InvalidTransitionError, ValidationError
from demarcation.models import ActivityType, PlotStatus, PlotType, Priority

_S = PlotStatus

TRANSITIONS: Dict[PlotStatus, FrozenSet[PlotStatus]] = {
    _S.PENDING: frozenset({_S.IN_PROGRESS, _S.DISPUTED, _S.REJECTED}),
    _S.IN_PROGRESS: frozenset({_S.COMPLETED, _S.ON_HOLD, _S.DISPUTED, _S.REJECTED}),
    _S.ON_HOLD: frozenset({_S.IN_PROGRESS, _S.COMPLETED, _S.REJECTED}),
    # a dispute has to go back to in_progress before the plot can complete
    _S.DISPUTED: frozenset({_S.IN_PROGRESS, _S.REJECTED}),
    _S.COMPLETED: frozenset(),
    _S.REJECTED: frozenset(),
}

TERMINAL = frozenset(status for status, targets in TRANSITIONS.items() if not targets)
OPEN_STATUSES = (_S.PENDING.value, _S.IN_PROGRESS.value)


def _parse(enum_cls: Type, value, field: str) -> str:
    if isinstance(value, enum_cls):
        return value.value
    try:
        return enum_cls(str(value).strip().lower()).value
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise ValidationError(f"Invalid {field} '{value}'. Allowed: {allowed}") from None


def parse_status(value) -> str:
    return _parse(PlotStatus, value, "status")


def parse_priority(value) -> str:
    return _parse(Priority, value, "priority")


def parse_plot_type(value) -> str:
    return _parse(PlotType, value, "plot type")


def parse_activity_type(value) -> str:
    return _parse(ActivityType, value, "activity type")


def is_terminal(status: str) -> bool:
    return PlotStatus(status) in TERMINAL


def can_transition(current: str, new: str) -> bool:
    current_s, new_s = PlotStatus(current), PlotStatus(new)
    if current_s in TERMINAL:
        return False
    return new_s in TRANSITIONS[current_s]


def validate_transition(current: str, new: str) -> None:
    if not can_transition(current, new):
        if is_terminal(current):
            raise InvalidTransitionError(f"Plot is {current}; no further status changes are allowed")
        raise InvalidTransitionError(f"Cannot change status from {current} to {new}")
