"""Recompute coordinator: turns change events into minimal match recomputation.

- SkillScoreChanged / SkillScoreExpired recompute one (job, candidate) pair
  for each job requiring the skill.
- JobRequirementsChanged recomputes the job's whole active population.

At most one cycle per job is in flight. Triggers arriving while a job is
running are merged into a single pending entry that runs after the current
cycle and reads fresh inputs, so backlog is bounded by the number of jobs.
"""

import logging
import threading
import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from skillrank.config import (
    RECOMPUTE_WORKERS,
    RETRY_BASE_DELAY,
    RETRY_MAX_ATTEMPTS,
    RETRY_MAX_DELAY,
)
from skillrank.matching.calculator import compute_match
from skillrank.matching.ranking import RankingEngine
from skillrank.matching.sources import (
    JobRequirementSource,
    JobSkillIndex,
    MatchStore,
    SkillScoreSource,
)
from skillrank.retry import RetryError, call_with_retry
from skillrank.schemas.events import (
    JobRequirementsChanged,
    SkillScoreChanged,
    SkillScoreExpired,
)
from skillrank.schemas.job import JobProfile
from skillrank.schemas.match import MatchResult, MatchStatus
from skillrank.utils import SkillRankError, utc_now

logger = logging.getLogger(__name__)


class RecomputeFailure(SkillRankError):
    """A pair (or a whole job when candidate_id is None) could not be recomputed."""

    def __init__(
        self,
        job_id: str,
        candidate_id: str | None,
        attempts: int,
        cause: Exception,
    ):
        self.job_id = job_id
        self.candidate_id = candidate_id
        self.attempts = attempts
        self.cause = cause
        target = f"candidate {candidate_id}" if candidate_id else "all candidates"
        super().__init__(
            f"Recompute of job {job_id} for {target} failed after {attempts} attempts: {cause}"
        )


@dataclass
class CycleReport:
    """Outcome of one recompute cycle for a job.

    A cycle is only reported once every affected pair either succeeded or
    has a failure entry.
    """

    job_id: str
    full: bool
    started_at: datetime
    finished_at: datetime | None = None
    recomputed: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    failures: list[RecomputeFailure] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return not self.failures


@dataclass
class _PendingWork:
    full: bool = False
    candidates: set[str] = field(default_factory=set)
    removals: set[str] = field(default_factory=set)

    def merge(self, other: "_PendingWork") -> None:
        self.full = self.full or other.full
        self.candidates |= other.candidates
        self.removals |= other.removals


class RecomputeCoordinator:
    """Schedules recompute cycles on a worker pool, one in flight per job."""

    def __init__(
        self,
        skill_scores: SkillScoreSource,
        requirements: JobRequirementSource,
        job_index: JobSkillIndex,
        store: MatchStore,
        engine: RankingEngine | None = None,
        workers: int = RECOMPUTE_WORKERS,
        clock: Callable[[], datetime] = utc_now,
        max_attempts: int = RETRY_MAX_ATTEMPTS,
        base_delay: float = RETRY_BASE_DELAY,
        max_delay: float = RETRY_MAX_DELAY,
        sleep: Callable[[float], None] = time.sleep,
        on_failure: Callable[[RecomputeFailure], None] | None = None,
        on_cycle_complete: Callable[[CycleReport], None] | None = None,
    ):
        self.skill_scores = skill_scores
        self.requirements = requirements
        self.job_index = job_index
        self.store = store
        self.engine = engine or RankingEngine()
        self.clock = clock
        self.on_failure = on_failure
        self.on_cycle_complete = on_cycle_complete
        self._retry_options = {
            "max_attempts": max_attempts,
            "base_delay": base_delay,
            "max_delay": max_delay,
            "sleep": sleep,
        }

        self._executor = ThreadPoolExecutor(
            max_workers=max(workers, 1), thread_name_prefix="recompute"
        )
        self._lock = threading.Lock()
        self._changed = threading.Condition(self._lock)
        self._pending: dict[str, _PendingWork] = {}
        self._running: set[str] = set()
        self._reports: dict[str, CycleReport] = {}
        self._closed = False

    # ------------------------------------------------------------------
    # Triggers
    # ------------------------------------------------------------------

    def submit(
        self, event: SkillScoreChanged | SkillScoreExpired | JobRequirementsChanged
    ) -> set[str]:
        """Schedule the recompute work implied by a change event.

        Args:
            event: Upstream change.

        Returns:
            Jobs scheduled (or coalesced into a pending cycle).

        Raises:
            RecomputeFailure: If the job fan-out lookup keeps failing.
        """
        if isinstance(event, JobRequirementsChanged):
            self._schedule(event.job_id, _PendingWork(full=True))
            return {event.job_id}

        try:
            job_ids = self._retry(self.job_index.jobs_for_skill, event.skill_id)
        except RetryError as e:
            failure = RecomputeFailure("*", event.candidate_id, e.attempts, e.last_exception)
            self._report_failure(failure)
            raise failure from e

        for job_id in sorted(job_ids):
            self._schedule(job_id, _PendingWork(candidates={event.candidate_id}))
        logger.debug(f"{event.kind} for {event.candidate_id}/{event.skill_id} -> {len(job_ids)} jobs")
        return set(job_ids)

    def rebuild_job(self, job_id: str, timeout: float | None = None) -> CycleReport | None:
        """Recompute a job's whole population and wait for the cycle.

        Returns:
            The job's latest cycle report, None on timeout.
        """
        self._schedule(job_id, _PendingWork(full=True))
        if not self.wait_for_job(job_id, timeout):
            return None
        return self.last_report(job_id)

    def remove_candidate(
        self, job_id: str, candidate_id: str, timeout: float | None = None
    ) -> CycleReport | None:
        """Delete a pair's record and compact the job's ranks.

        Runs inside the job's serialized cycle. A later trigger for the same
        candidate recreates the record.

        Returns:
            The job's latest cycle report, None on timeout.
        """
        self._schedule(job_id, _PendingWork(removals={candidate_id}))
        if not self.wait_for_job(job_id, timeout):
            return None
        return self.last_report(job_id)

    def _schedule(self, job_id: str, work: _PendingWork) -> None:
        with self._lock:
            if self._closed:
                raise RuntimeError("Recompute coordinator is shut down")
            pending = self._pending.get(job_id)
            if pending is None:
                self._pending[job_id] = work
            else:
                pending.merge(work)
            if job_id in self._running:
                logger.debug(f"Job {job_id} busy; trigger coalesced into pending cycle")
                return
            self._running.add(job_id)
        self._executor.submit(self._drain, job_id)

    # ------------------------------------------------------------------
    # Waiting and lifecycle
    # ------------------------------------------------------------------

    def wait_idle(self, timeout: float | None = None) -> bool:
        """Block until no job is running or pending. Returns False on timeout."""
        with self._changed:
            return self._changed.wait_for(lambda: not self._running, timeout)

    def wait_for_job(self, job_id: str, timeout: float | None = None) -> bool:
        """Block until the job has no running or pending cycle."""
        with self._changed:
            return self._changed.wait_for(lambda: job_id not in self._running, timeout)

    def last_report(self, job_id: str) -> CycleReport | None:
        with self._lock:
            return self._reports.get(job_id)

    def pending_jobs(self) -> set[str]:
        with self._lock:
            return set(self._pending)

    def shutdown(self, wait: bool = True) -> None:
        with self._lock:
            self._closed = True
        self._executor.shutdown(wait=wait)

    def __enter__(self) -> "RecomputeCoordinator":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.shutdown()

    # ------------------------------------------------------------------
    # Worker side
    # ------------------------------------------------------------------

    def _drain(self, job_id: str) -> None:
        """Run cycles for a job until nothing is pending for it."""
        while True:
            with self._lock:
                work = self._pending.pop(job_id, None)
                if work is None:
                    self._running.discard(job_id)
                    self._changed.notify_all()
                    return

            try:
                report = self._run_cycle(job_id, work)
            except Exception as e:
                logger.exception(f"Recompute cycle for job {job_id} crashed")
                report = CycleReport(job_id, work.full, self.clock(), self.clock())
                failure = RecomputeFailure(job_id, None, 1, e)
                report.failures.append(failure)
                self._report_failure(failure)

            with self._lock:
                self._reports[job_id] = report
            if self.on_cycle_complete:
                try:
                    self.on_cycle_complete(report)
                except Exception:
                    logger.exception(f"Cycle completion callback failed for job {job_id}")

    def _run_cycle(self, job_id: str, work: _PendingWork) -> CycleReport:
        now = self.clock()
        report = CycleReport(job_id=job_id, full=work.full, started_at=now)

        population = set(work.candidates)
        overlapping: set[str] = set()
        existing: dict[str, MatchResult] | None = None
        try:
            profile = self._retry(self.requirements.get_profile, job_id)
            if work.full or not self.engine.is_loaded(job_id):
                rows = self._retry(self.store.get_matches_for_job, job_id, None, 0, True)
                existing = {m.candidate_id: m for m in rows}
                if not self.engine.is_loaded(job_id):
                    self.engine.load(job_id, rows)
            if work.full:
                if profile.requirements:
                    overlapping = self._retry(
                        self.skill_scores.candidates_with_skills, profile.skill_ids, now
                    )
                else:
                    overlapping = self._retry(self.skill_scores.active_candidates, now)
                population |= overlapping | set(existing)
        except RetryError as e:
            failure = RecomputeFailure(job_id, None, e.attempts, e.last_exception)
            report.failures.append(failure)
            self._report_failure(failure)
            report.finished_at = self.clock()
            return report

        for candidate_id in sorted(work.removals):
            self._remove_pair(job_id, candidate_id, report)
        population -= work.removals

        without_overlap: set[str] = set()
        if work.full and profile.has_required_skills:
            # No active score on any job skill means every required skill is
            # missing: ineligible without a score lookup.
            without_overlap = population - overlapping

        logger.info(
            f"Recompute cycle for job {job_id}: {len(population)} candidates "
            f"({'full' if work.full else 'incremental'})"
        )

        for candidate_id in sorted(population):
            self._recompute_pair(
                profile,
                candidate_id,
                now,
                existing,
                candidate_id in without_overlap,
                report,
            )

        report.finished_at = self.clock()
        logger.info(
            f"Recompute cycle for job {job_id} finished: "
            f"{len(report.recomputed)} recomputed, {len(report.removed)} removed, "
            f"{len(report.failures)} failed"
        )
        return report

    def _recompute_pair(
        self,
        profile: JobProfile,
        candidate_id: str,
        now: datetime,
        existing_rows: dict[str, MatchResult] | None,
        skip_lookup: bool,
        report: CycleReport,
    ) -> None:
        job_id = profile.job_id
        applied = False
        try:
            scores = (
                {} if skip_lookup
                else self._retry(self.skill_scores.get_active_scores, candidate_id, now)
            )
            if existing_rows is not None:
                existing = existing_rows.get(candidate_id)
            else:
                existing = self._retry(self.store.get_match, job_id, candidate_id)

            # Scoring is pure and runs outside the job lock
            result = compute_match(job_id, candidate_id, scores, profile.requirements, now)

            first_eligible_at = existing.first_eligible_at if existing else None
            if first_eligible_at is None and result.eligible:
                first_eligible_at = now
            result = result.model_copy(
                update={
                    "first_eligible_at": first_eligible_at,
                    "status": existing.status if existing else MatchStatus.MATCHED,
                }
            )

            self._ensure_loaded(job_id)
            applied = True
            update = self.engine.apply(result)
            self._retry(self.store.upsert_match, update.match)
            if update.shifted:
                self._retry(
                    self.store.update_ranks, job_id, [tuple(p) for p in update.shifted]
                )
            report.recomputed.append(candidate_id)
        except RetryError as e:
            failure = RecomputeFailure(job_id, candidate_id, e.attempts, e.last_exception)
            report.failures.append(failure)
            self._report_failure(failure)
            if applied:
                self._resync(job_id)
        except Exception as e:
            logger.exception(f"Unexpected error recomputing job {job_id} candidate {candidate_id}")
            failure = RecomputeFailure(job_id, candidate_id, 1, e)
            report.failures.append(failure)
            self._report_failure(failure)
            if applied:
                self._resync(job_id)

    def _remove_pair(self, job_id: str, candidate_id: str, report: CycleReport) -> None:
        applied = False
        try:
            self._ensure_loaded(job_id)
            applied = True
            shifted = self.engine.remove(job_id, candidate_id)
            self._retry(self.store.delete_match, job_id, candidate_id)
            if shifted:
                self._retry(self.store.update_ranks, job_id, [tuple(p) for p in shifted])
            report.removed.append(candidate_id)
        except RetryError as e:
            failure = RecomputeFailure(job_id, candidate_id, e.attempts, e.last_exception)
            report.failures.append(failure)
            self._report_failure(failure)
            if applied:
                self._resync(job_id)

    def _ensure_loaded(self, job_id: str) -> None:
        if not self.engine.is_loaded(job_id):
            rows = self._retry(self.store.get_matches_for_job, job_id, None, 0, True)
            self.engine.load(job_id, rows)

    def _resync(self, job_id: str) -> None:
        """Reseed the job's ranked set from the store after a failed write.

        Every stored rank is rewritten, since a partial write may have left
        the stored ranks out of step with each other. If the store is still
        unreachable the job stays unloaded and the next pair or cycle
        reloads it.
        """
        self.engine.unload(job_id)
        try:
            self._ensure_loaded(job_id)
            placements = self.engine.ranked(job_id)
            if placements:
                self._retry(self.store.update_ranks, job_id, [tuple(p) for p in placements])
        except RetryError as e:
            self.engine.unload(job_id)
            logger.error(f"Could not resync ranks for job {job_id}: {e.last_exception}")
            return
        logger.warning(f"Resynced {len(placements)} ranks for job {job_id} from the store")

    def _retry(self, func: Callable[..., Any], *args: Any) -> Any:
        return call_with_retry(func, *args, **self._retry_options)

    def _report_failure(self, failure: RecomputeFailure) -> None:
        logger.error(str(failure))
        if self.on_failure:
            try:
                self.on_failure(failure)
            except Exception:
                logger.exception("Failure alert callback raised")
