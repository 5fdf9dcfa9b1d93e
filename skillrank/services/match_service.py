"""Match service exposing the query and command operations.

This service handles:
- Ranked, paginated match listings per job and per candidate
- Employer status actions (view, contact, shortlist, reject, hire)
- On-the-fly job browsing for a candidate (nothing persisted)
- Wiring of tables, store, ranking engine, coordinator and sweeper

Scores and ranks are only ever written by the recompute coordinator; this
service only writes status fields.
"""

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any, NamedTuple

from skillrank.config import (
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    RETRY_BASE_DELAY,
    RETRY_MAX_ATTEMPTS,
    RETRY_MAX_DELAY,
    SUMMARY_TOP_N,
)
from skillrank.db.matches import SqlMatchStore
from skillrank.jobs.requirements import JobRequirementTable
from skillrank.matching.calculator import compute_match, count_required_met
from skillrank.matching.ranking import RankingEngine
from skillrank.matching.sources import JobRequirementSource, MatchStore, SkillScoreSource
from skillrank.matching.status import validate_transition
from skillrank.retry import call_with_retry
from skillrank.schemas.match import (
    JobBrowseResult,
    JobSummary,
    MatchPage,
    MatchResult,
    MatchStatus,
)
from skillrank.services.expiry import ExpirySweeper
from skillrank.services.recompute import CycleReport, RecomputeCoordinator, RecomputeFailure
from skillrank.skills.table import SkillScoreTable
from skillrank.utils import MatchNotFoundError, SkillRankError, StoreTimeoutError, utc_now

logger = logging.getLogger(__name__)

# Compare-and-set attempts before a contended status change gives up
STATUS_CAS_ATTEMPTS = 5


class MatchService:
    """Read and status operations over persisted matches."""

    def __init__(
        self,
        store: MatchStore,
        skill_scores: SkillScoreSource,
        requirements: JobRequirementSource,
        coordinator: RecomputeCoordinator | None = None,
        clock: Callable[[], datetime] = utc_now,
        sleep: Callable[[float], None] | None = None,
    ):
        self.store = store
        self.skill_scores = skill_scores
        self.requirements = requirements
        self.coordinator = coordinator
        self.clock = clock
        self._retry_options: dict[str, Any] = {
            "max_attempts": RETRY_MAX_ATTEMPTS,
            "base_delay": RETRY_BASE_DELAY,
            "max_delay": RETRY_MAX_DELAY,
            "exceptions": (StoreTimeoutError,),
        }
        if sleep is not None:
            self._retry_options["sleep"] = sleep

    def _store_call(self, func: Callable[..., Any], *args: Any) -> Any:
        return call_with_retry(func, *args, **self._retry_options)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_matches_for_job(
        self,
        job_id: str,
        page: int = 1,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> MatchPage:
        """Return one page of a job's eligible matches ordered by rank.

        Args:
            job_id: Job to list.
            page: 1-based page number.
            page_size: Matches per page (1 to MAX_PAGE_SIZE).

        Returns:
            MatchPage with the page items and the job's eligible count.

        Raises:
            ValueError: If page or page_size is out of range.
        """
        if page < 1:
            raise ValueError(f"page must be >= 1, got {page}")
        if not 1 <= page_size <= MAX_PAGE_SIZE:
            raise ValueError(f"page_size must be between 1 and {MAX_PAGE_SIZE}, got {page_size}")

        offset = (page - 1) * page_size
        items = self._store_call(self.store.get_matches_for_job, job_id, page_size, offset, False)
        total = self._store_call(self.store.count_matches, job_id, True)
        return MatchPage(job_id=job_id, page=page, page_size=page_size, total=total, items=items)

    def get_match_for_candidate(self, job_id: str, candidate_id: str) -> MatchResult:
        """Return the match for a pair.

        Raises:
            MatchNotFoundError: If the pair has no match record.
        """
        match = self._store_call(self.store.get_match, job_id, candidate_id)
        if match is None:
            raise MatchNotFoundError(job_id, candidate_id)
        return match

    def get_matches_for_candidate(self, candidate_id: str) -> list[MatchResult]:
        """Return every match of a candidate across jobs, best score first."""
        return self._store_call(self.store.get_matches_for_candidate, candidate_id)

    def get_job_summary(self, job_id: str, top_n: int = SUMMARY_TOP_N) -> JobSummary:
        """Return match counts and the top-ranked matches of a job."""
        total = self._store_call(self.store.count_matches, job_id, False)
        eligible = self._store_call(self.store.count_matches, job_id, True)
        top = self._store_call(self.store.get_matches_for_job, job_id, top_n, 0, False)
        return JobSummary(
            job_id=job_id,
            total_matches=total,
            eligible_matches=eligible,
            top_matches=top,
        )

    def browse_jobs_for_candidate(
        self, candidate_id: str, job_ids: list[str] | None = None
    ) -> list[JobBrowseResult]:
        """Score a candidate against jobs without persisting anything.

        Args:
            candidate_id: Candidate browsing.
            job_ids: Jobs to score (defaults to every known job).

        Returns:
            Results ordered eligible first, then by score descending.
        """
        now = self.clock()
        scores = self.skill_scores.get_active_scores(candidate_id, now)
        if job_ids is None:
            job_ids = self.requirements.job_ids()

        results = []
        for job_id in job_ids:
            profile = self.requirements.get_profile(job_id)
            match = compute_match(job_id, candidate_id, scores, profile.requirements, now)
            met, total = count_required_met(match.skill_breakdown)
            results.append(
                JobBrowseResult(
                    job_id=job_id,
                    title=profile.title,
                    overall_score=match.overall_score,
                    eligible=match.eligible,
                    required_skills_met=met,
                    total_required_skills=total,
                    skill_breakdown=match.skill_breakdown,
                )
            )

        results.sort(key=lambda r: (not r.eligible, -r.overall_score, r.job_id))
        logger.info(f"Browsed {len(results)} jobs for candidate {candidate_id}")
        return results

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def set_match_status(
        self, job_id: str, candidate_id: str, status: MatchStatus | str
    ) -> MatchResult:
        """Move a match to a new status.

        Setting the current status again is a no-op. Moving into viewed or
        contacted stamps viewed_at / contacted_at.

        Returns:
            The updated match.

        Raises:
            MatchNotFoundError: If the pair has no match record.
            InvalidTransitionError: If the state machine forbids the change.
        """
        status = MatchStatus(status)

        for _ in range(STATUS_CAS_ATTEMPTS):
            current = self.get_match_for_candidate(job_id, candidate_id)
            validate_transition(current.status, status)
            if current.status == status:
                return current

            now = self.clock()
            updated = self._store_call(
                self.store.update_status,
                job_id,
                candidate_id,
                current.status,
                status,
                now,
                now if status == MatchStatus.VIEWED else None,
                now if status == MatchStatus.CONTACTED else None,
            )
            if updated:
                logger.info(
                    f"Match {job_id}/{candidate_id}: "
                    f"{current.status.value} -> {status.value}"
                )
                return self.get_match_for_candidate(job_id, candidate_id)

            logger.debug(f"Status of {job_id}/{candidate_id} changed concurrently; re-reading")

        raise SkillRankError(
            f"Status of match {job_id}/{candidate_id} kept changing; gave up after "
            f"{STATUS_CAS_ATTEMPTS} attempts"
        )

    def contact_candidate(self, job_id: str, candidate_id: str) -> MatchResult:
        """Record that the employer contacted the candidate for the job."""
        return self.set_match_status(job_id, candidate_id, MatchStatus.CONTACTED)

    def delete_match(self, job_id: str, candidate_id: str) -> bool:
        """Delete a pair's match and compact the job's ranks.

        Returns:
            True if a record existed.
        """
        existed = self._store_call(self.store.get_match, job_id, candidate_id) is not None
        if self.coordinator is not None:
            report = self.coordinator.remove_candidate(job_id, candidate_id)
            if report is not None:
                for failure in report.failures:
                    if failure.candidate_id in (candidate_id, None):
                        raise failure
        else:
            self._store_call(self.store.delete_match, job_id, candidate_id)
        return existed

    def rebuild_job(self, job_id: str, timeout: float | None = None) -> CycleReport | None:
        """Recompute every match of a job and return the cycle report."""
        if self.coordinator is None:
            raise SkillRankError("No recompute coordinator configured")
        return self.coordinator.rebuild_job(job_id, timeout)


class MatchingSystem(NamedTuple):
    """Fully wired matching components."""

    skill_scores: SkillScoreTable
    requirements: JobRequirementTable
    store: MatchStore
    engine: RankingEngine
    coordinator: RecomputeCoordinator
    service: MatchService
    sweeper: ExpirySweeper


def build_system(
    store: MatchStore | None = None,
    skill_scores: SkillScoreTable | None = None,
    requirements: JobRequirementTable | None = None,
    clock: Callable[[], datetime] = utc_now,
    on_failure: Callable[[RecomputeFailure], None] | None = None,
    **coordinator_options: Any,
) -> MatchingSystem:
    """Wire the tables, store and coordinator together.

    Score and requirement changes are forwarded to the coordinator, so every
    edit made through the tables is reflected in the stored matches.

    Args:
        store: Match store (defaults to the SQL store).
        skill_scores: Skill score table (a new one by default).
        requirements: Job requirement table (a new one by default).
        clock: Time source shared by every component.
        on_failure: Alert callback for exhausted recomputes.
        **coordinator_options: Passed through to RecomputeCoordinator.

    Returns:
        MatchingSystem with every component.
    """
    store = store if store is not None else SqlMatchStore()
    skill_scores = skill_scores if skill_scores is not None else SkillScoreTable()
    requirements = requirements if requirements is not None else JobRequirementTable()
    engine = RankingEngine()

    coordinator = RecomputeCoordinator(
        skill_scores,
        requirements,
        requirements,
        store,
        engine=engine,
        clock=clock,
        on_failure=on_failure,
        **coordinator_options,
    )
    skill_scores.subscribe(coordinator.submit)
    requirements.subscribe(coordinator.submit)

    service = MatchService(
        store,
        skill_scores,
        requirements,
        coordinator,
        clock=clock,
        sleep=coordinator_options.get("sleep"),
    )
    sweeper = ExpirySweeper(skill_scores, coordinator.submit, clock=clock)
    return MatchingSystem(
        skill_scores, requirements, store, engine, coordinator, service, sweeper
    )
