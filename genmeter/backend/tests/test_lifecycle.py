"""Transition table and stale-event ordering"""
import pytest

from app.core.constants import GenerationStatus as S
from app.core.exceptions import InvalidStatusTransitionError
from app.core.lifecycle import (
    ALLOWED_TRANSITIONS,
    TERMINAL_STATUSES,
    can_transition,
    ensure_transition,
    is_stale,
)


class TestTransitionTable:

    @pytest.mark.parametrize("current,target", [
        (S.PENDING, S.PROCESSING),
        (S.PENDING, S.COMPLETED),
        (S.PROCESSING, S.COMPLETED),
        (S.PENDING, S.CANCELLED),
        (S.PROCESSING, S.CANCELLED),
        (S.PENDING, S.FAILED),
        (S.PROCESSING, S.FAILED),
        (S.FAILED, S.PENDING),
    ])
    def test_allowed(self, current, target):
        assert can_transition(current, target)
        ensure_transition(current, target)

    @pytest.mark.parametrize("current,target", [
        (S.PROCESSING, S.PENDING),
        (S.COMPLETED, S.PROCESSING),
        (S.COMPLETED, S.FAILED),
        (S.CANCELLED, S.PENDING),
        (S.FAILED, S.COMPLETED),
        (S.FAILED, S.PROCESSING),
    ])
    def test_rejected(self, current, target):
        assert not can_transition(current, target)
        with pytest.raises(InvalidStatusTransitionError) as exc_info:
            ensure_transition(current, target)
        assert exc_info.value.current == current.value
        assert exc_info.value.requested == target.value

    def test_terminal_states_have_no_exits(self):
        for status in TERMINAL_STATUSES:
            assert ALLOWED_TRANSITIONS[status] == frozenset()

    def test_every_status_is_in_the_table(self):
        assert set(ALLOWED_TRANSITIONS) == set(S)

    def test_accepts_raw_strings(self):
        assert can_transition("pending", "processing")


class TestStaleEvents:

    def test_processing_after_completed_is_stale(self):
        assert is_stale(S.COMPLETED, S.PROCESSING)

    def test_repeated_terminal_is_stale(self):
        assert is_stale(S.COMPLETED, S.COMPLETED)
        assert is_stale(S.FAILED, S.FAILED)

    def test_forward_moves_are_not_stale(self):
        assert not is_stale(S.PENDING, S.PROCESSING)
        assert not is_stale(S.PENDING, S.COMPLETED)
        assert not is_stale(S.PROCESSING, S.FAILED)

    def test_conflicting_terminal_is_stale(self):
        assert is_stale(S.CANCELLED, S.COMPLETED)
