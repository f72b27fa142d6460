"""Tests for the cycle state machine."""

import pytest

from digest_curator.core import CycleStateError, CycleStatus, PositionStage
from digest_curator.core.state import (
    can_transition,
    check_mutable,
    check_transition,
    is_terminal,
    position_stage_for,
)


@pytest.mark.parametrize("current, target", [
    (CycleStatus.DRAFT, CycleStatus.IN_REVIEW),
    (CycleStatus.IN_REVIEW, CycleStatus.CHANGES_MADE),
    (CycleStatus.IN_REVIEW, CycleStatus.IN_REVIEW),
    (CycleStatus.CHANGES_MADE, CycleStatus.IN_REVIEW),
    (CycleStatus.CHANGES_MADE, CycleStatus.APPROVED),
    (CycleStatus.APPROVED, CycleStatus.SENT),
])
def test_allowed_transitions(current: CycleStatus, target: CycleStatus) -> None:
    assert can_transition(current, target)
    check_transition(current, target)


@pytest.mark.parametrize("current, target", [
    (CycleStatus.DRAFT, CycleStatus.SENT),
    (CycleStatus.DRAFT, CycleStatus.APPROVED),
    (CycleStatus.IN_REVIEW, CycleStatus.SENT),
    (CycleStatus.APPROVED, CycleStatus.DRAFT),
])
def test_rejected_transitions(current: CycleStatus, target: CycleStatus) -> None:
    assert not can_transition(current, target)
    with pytest.raises(CycleStateError, match="Cannot move cycle"):
        check_transition(current, target)


def test_sent_is_terminal() -> None:
    assert is_terminal(CycleStatus.SENT)
    assert not is_terminal(CycleStatus.APPROVED)

    with pytest.raises(CycleStateError, match="no further transitions"):
        check_transition(CycleStatus.SENT, CycleStatus.CHANGES_MADE)

    with pytest.raises(CycleStateError, match="can no longer be changed"):
        check_mutable(CycleStatus.SENT)

    check_mutable(CycleStatus.APPROVED)


def test_position_checkpoints() -> None:
    assert position_stage_for(CycleStatus.IN_REVIEW) == PositionStage.REVIEW
    assert position_stage_for(CycleStatus.SENT) == PositionStage.FINAL
    assert position_stage_for(CycleStatus.APPROVED) is None
