"""Alert status state machine."""

from __future__ import annotations

from typing import Dict, FrozenSet, Optional

from intel_console.contracts import AlertStatus
from intel_console.errors import Error

ALLOWED_TRANSITIONS: Dict[AlertStatus, FrozenSet[AlertStatus]] = {
    AlertStatus.active: frozenset(
        {AlertStatus.acknowledged, AlertStatus.resolved, AlertStatus.escalated}
    ),
    AlertStatus.acknowledged: frozenset(
        {AlertStatus.resolved, AlertStatus.escalated, AlertStatus.active}
    ),
    AlertStatus.escalated: frozenset({AlertStatus.acknowledged, AlertStatus.resolved}),
    # terminal
    AlertStatus.resolved: frozenset(),
}


def is_allowed(current: AlertStatus, target: AlertStatus) -> bool:
    if current == target:
        return True
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


def check_transition(current: AlertStatus, target: AlertStatus) -> Optional[Error]:
    """Return a validation error for a disallowed move, None otherwise."""
    if is_allowed(current, target):
        return None
    return Error.validation(
        "Alert.InvalidStatusTransition",
        f"Cannot transition from {current.value} to {target.value}.",
    )


def can_acknowledge(status: AlertStatus) -> bool:
    return status == AlertStatus.active


def can_resolve(status: AlertStatus) -> bool:
    return status != AlertStatus.resolved


def is_terminal(status: AlertStatus) -> bool:
    return not ALLOWED_TRANSITIONS.get(status)
