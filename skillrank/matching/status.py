"""Match status transitions driven by employer actions."""

from skillrank.schemas.match import MatchStatus
from skillrank.utils import SkillRankError

ALLOWED_TRANSITIONS: dict[MatchStatus, frozenset[MatchStatus]] = {
    MatchStatus.MATCHED: frozenset(
        {MatchStatus.VIEWED, MatchStatus.CONTACTED, MatchStatus.REJECTED}
    ),
    MatchStatus.VIEWED: frozenset({MatchStatus.CONTACTED, MatchStatus.REJECTED}),
    MatchStatus.CONTACTED: frozenset({MatchStatus.SHORTLISTED, MatchStatus.REJECTED}),
    MatchStatus.SHORTLISTED: frozenset({MatchStatus.REJECTED, MatchStatus.HIRED}),
    MatchStatus.REJECTED: frozenset(),
    MatchStatus.HIRED: frozenset(),
}


class InvalidTransitionError(SkillRankError):
    """Raised when a status change violates the state machine."""

    def __init__(self, current: MatchStatus, requested: MatchStatus):
        self.current = current
        self.requested = requested
        super().__init__(
            f"Cannot change match status from '{current.value}' to '{requested.value}'"
        )


def can_transition(current: MatchStatus, requested: MatchStatus) -> bool:
    """Check a transition; staying in the same status is always allowed."""
    return requested == current or requested in ALLOWED_TRANSITIONS[current]


def validate_transition(current: MatchStatus, requested: MatchStatus) -> None:
    """Raise InvalidTransitionError unless current -> requested is allowed."""
    if not can_transition(current, requested):
        raise InvalidTransitionError(current, requested)


def is_terminal(status: MatchStatus) -> bool:
    return not ALLOWED_TRANSITIONS[status]
