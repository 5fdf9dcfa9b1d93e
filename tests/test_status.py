"""Tests for the match status state machine."""

import pytest

from skillrank.matching.status import (
    InvalidTransitionError,
    can_transition,
    is_terminal,
    validate_transition,
)
from skillrank.schemas.match import MatchStatus as S


class TestTransitions:
    @pytest.mark.parametrize(
        "current,requested",
        [
            (S.MATCHED, S.VIEWED),
            (S.MATCHED, S.CONTACTED),
            (S.MATCHED, S.REJECTED),
            (S.VIEWED, S.CONTACTED),
            (S.VIEWED, S.REJECTED),
            (S.CONTACTED, S.SHORTLISTED),
            (S.CONTACTED, S.REJECTED),
            (S.SHORTLISTED, S.HIRED),
            (S.SHORTLISTED, S.REJECTED),
        ],
    )
    def test_allowed(self, current, requested):
        assert can_transition(current, requested)
        validate_transition(current, requested)

    @pytest.mark.parametrize(
        "current,requested",
        [
            (S.MATCHED, S.HIRED),
            (S.MATCHED, S.SHORTLISTED),
            (S.VIEWED, S.MATCHED),
            (S.CONTACTED, S.VIEWED),
            (S.REJECTED, S.MATCHED),
            (S.HIRED, S.REJECTED),
        ],
    )
    def test_forbidden(self, current, requested):
        assert not can_transition(current, requested)
        with pytest.raises(InvalidTransitionError) as exc_info:
            validate_transition(current, requested)
        assert exc_info.value.current == current
        assert exc_info.value.requested == requested

    def test_self_transition_is_allowed(self):
        for status in S:
            assert can_transition(status, status)

    def test_terminal_states(self):
        assert is_terminal(S.REJECTED)
        assert is_terminal(S.HIRED)
        assert not is_terminal(S.CONTACTED)
