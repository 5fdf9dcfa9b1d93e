"""Shared utilities for skillrank."""

from datetime import UTC, datetime

from skillrank.config import SCORE_DECIMALS


class SkillRankError(Exception):
    """Base class for skillrank errors."""

    pass


class MatchNotFoundError(SkillRankError):
    """Raised when no match exists for a (job, candidate) pair."""

    def __init__(self, job_id: str, candidate_id: str):
        self.job_id = job_id
        self.candidate_id = candidate_id
        super().__init__(f"No match for job {job_id} and candidate {candidate_id}")


class StoreTimeoutError(SkillRankError):
    """Raised when a store call exceeds its timeout."""

    pass


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(UTC)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC.

    Args:
        value: Datetime read from input or storage.

    Returns:
        Timezone-aware datetime.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def round_score(value: float) -> float:
    """Round a score or percentile to the stored precision."""
    return round(value, SCORE_DECIMALS)
