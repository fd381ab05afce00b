"""Allowed status transitions for inventory checks.

Every mutating operation of ``InventoryCheckService`` looks itself up here
before touching the check. ``target`` is None for operations that edit a
check without moving it to another status.
"""

from typing import Dict, FrozenSet, NamedTuple, Optional

from storeops.core.exceptions import InvalidStateError
from storeops.models.inventory_check import InventoryCheckStatus as Status


class Transition(NamedTuple):
    sources: FrozenSet[Status]
    target: Optional[Status]
    refusal: str


TRANSITIONS: Dict[str, Transition] = {
    "update_item": Transition(
        frozenset({Status.DRAFT}), None, "Only draft checks can be edited"
    ),
    "save_draft": Transition(
        frozenset({Status.DRAFT}), None, "Only draft checks can be edited"
    ),
    "submit": Transition(
        frozenset({Status.DRAFT}), Status.SUBMITTED, "Check has already been submitted"
    ),
    "approve": Transition(
        frozenset({Status.SUBMITTED}), Status.APPROVED, "Only submitted checks can be approved"
    ),
    "reject": Transition(
        frozenset({Status.SUBMITTED}), Status.REJECTED, "Only submitted checks can be rejected"
    ),
    "delete": Transition(
        frozenset({Status.DRAFT}), None, "Only draft checks can be deleted"
    ),
}

TERMINAL_STATES = frozenset({Status.APPROVED, Status.REJECTED})


def require_state(check, operation: str) -> Transition:
    """Raise InvalidStateError unless *check* may undergo *operation*."""
    transition = TRANSITIONS[operation]
    if check.status not in transition.sources:
        status = Status(check.status).value
        raise InvalidStateError(
            f"{transition.refusal} (check {check.code} is {status})",
            current_status=status,
            operation=operation,
        )
    return transition


def advance(check, operation: str) -> None:
    """Move *check* to the target status of *operation*."""
    transition = require_state(check, operation)
    if transition.target is not None:
        check.status = transition.target
