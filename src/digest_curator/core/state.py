"""Publication cycle state machine."""

from typing import Optional

from digest_curator.core.entities import CycleStatus, PositionStage
from digest_curator.core.errors import CycleStateError

TRANSITIONS: dict[CycleStatus, frozenset[CycleStatus]] = {
    CycleStatus.DRAFT: frozenset({CycleStatus.IN_REVIEW}),
    CycleStatus.IN_REVIEW: frozenset(
        {CycleStatus.IN_REVIEW, CycleStatus.CHANGES_MADE, CycleStatus.APPROVED}
    ),
    CycleStatus.CHANGES_MADE: frozenset({CycleStatus.IN_REVIEW, CycleStatus.APPROVED}),
    CycleStatus.APPROVED: frozenset({CycleStatus.CHANGES_MADE, CycleStatus.SENT}),
    CycleStatus.SENT: frozenset(),
}

# Statuses in which review positions have been handed out and must follow edits
REVIEWED_STATUSES = frozenset(
    {CycleStatus.IN_REVIEW, CycleStatus.CHANGES_MADE, CycleStatus.APPROVED}
)


def is_terminal(status: CycleStatus) -> bool:
    return not TRANSITIONS[status]


def can_transition(current: CycleStatus, target: CycleStatus) -> bool:
    return target in TRANSITIONS[current]


def check_transition(current: CycleStatus, target: CycleStatus) -> None:
    """Raise CycleStateError if ``current -> target`` is not allowed."""
    if is_terminal(current):
        raise CycleStateError(f"Cycle is {current.value}; no further transitions allowed")
    if not can_transition(current, target):
        allowed = ", ".join(sorted(s.value for s in TRANSITIONS[current]))
        raise CycleStateError(
            f"Cannot move cycle from {current.value} to {target.value} (allowed: {allowed})"
        )


def check_mutable(status: CycleStatus) -> None:
    """Raise CycleStateError if the cycle no longer accepts edits."""
    if is_terminal(status):
        raise CycleStateError(f"Cycle is {status.value} and can no longer be changed")


def position_stage_for(target: CycleStatus) -> Optional[PositionStage]:
    """Position checkpoint triggered by entering ``target``, if any."""
    if target == CycleStatus.IN_REVIEW:
        return PositionStage.REVIEW
    if target == CycleStatus.SENT:
        return PositionStage.FINAL
    return None
