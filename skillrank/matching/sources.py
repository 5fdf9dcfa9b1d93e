"""Interfaces of the collaborators the matching engine consumes.

The in-memory tables in skillrank.skills and skillrank.jobs implement these;
a deployment can substitute database or service backed implementations.
"""

from datetime import datetime
from typing import Protocol, runtime_checkable

from skillrank.schemas.job import JobProfile
from skillrank.schemas.match import MatchResult, MatchStatus
from skillrank.schemas.skill import SkillScore


@runtime_checkable
class SkillScoreSource(Protocol):
    """Provides active skill scores per candidate."""

    def get_active_scores(self, candidate_id: str, now: datetime) -> dict[str, SkillScore]:
        """Return skill_id -> latest non-expired score for the candidate."""
        ...

    def candidates_with_skills(self, skill_ids: set[str], now: datetime) -> set[str]:
        """Return candidates holding an active score for any of the skills."""
        ...

    def active_candidates(self, now: datetime) -> set[str]:
        """Return candidates holding at least one active score."""
        ...


@runtime_checkable
class JobRequirementSource(Protocol):
    """Provides the requirement profile of each job."""

    def get_profile(self, job_id: str) -> JobProfile:
        """Return the job's profile (empty requirements for unknown jobs)."""
        ...

    def job_ids(self) -> list[str]:
        """Return every known job."""
        ...


@runtime_checkable
class JobSkillIndex(Protocol):
    """Reverse index from skill to the jobs requiring it."""

    def jobs_for_skill(self, skill_id: str) -> set[str]:
        """Return the jobs listing skill_id as a requirement."""
        ...


@runtime_checkable
class MatchStore(Protocol):
    """Persistence for match records, keyed by (job_id, candidate_id).

    Writes are idempotent. upsert_match never overwrites status fields of an
    existing record; update_status never touches score fields.
    """

    def upsert_match(self, match: MatchResult) -> None: ...

    def delete_match(self, job_id: str, candidate_id: str) -> bool: ...

    def update_ranks(
        self, job_id: str, placements: list[tuple[str, int, float]]
    ) -> None: ...

    def update_status(
        self,
        job_id: str,
        candidate_id: str,
        expected: MatchStatus,
        status: MatchStatus,
        updated_at: datetime,
        viewed_at: datetime | None = None,
        contacted_at: datetime | None = None,
    ) -> bool: ...

    def get_match(self, job_id: str, candidate_id: str) -> MatchResult | None: ...

    def get_matches_for_job(
        self,
        job_id: str,
        limit: int | None = None,
        offset: int = 0,
        include_ineligible: bool = False,
    ) -> list[MatchResult]: ...

    def get_matches_for_candidate(self, candidate_id: str) -> list[MatchResult]: ...

    def count_matches(self, job_id: str, eligible_only: bool = False) -> int: ...
