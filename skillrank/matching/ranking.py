"""Per-job ranking of eligible matches.

Each job keeps an order-maintaining array of sort keys
(-overall_score, first_eligible_at, candidate_id). Lookups are binary searches;
an update only reports placements that actually moved:

- repositioning within a set of unchanged size: entries between the old and
  new index (k = |old - new| + 1);
- insert or remove: every entry, because percentile depends on the set size.
"""

import bisect
import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from typing import NamedTuple

from skillrank.schemas.match import MatchResult
from skillrank.utils import round_score

logger = logging.getLogger(__name__)

SortKey = tuple[float, datetime, str]


class Placement(NamedTuple):
    candidate_id: str
    rank: int
    percentile: float


class RankUpdate(NamedTuple):
    """Outcome of applying one match to its job's ranked set."""

    match: MatchResult
    shifted: list[Placement]


def compute_percentile(rank: int, eligible_count: int) -> float:
    """Percentile of a 1-based rank among eligible_count members.

    The top member is 100, the bottom 0; a sole member is 100.
    """
    if eligible_count <= 1:
        return 100.0
    return round_score(100.0 * (eligible_count - rank) / max(eligible_count - 1, 1))


class JobRankSet:
    """Ordered set of one job's eligible candidates.

    Not thread-safe on its own; RankingEngine serializes access per job.
    """

    def __init__(self, job_id: str):
        self.job_id = job_id
        self._keys: list[SortKey] = []
        self._key_by_candidate: dict[str, SortKey] = {}

    def __len__(self) -> int:
        return len(self._keys)

    def __contains__(self, candidate_id: str) -> bool:
        return candidate_id in self._key_by_candidate

    def _placements(self, start: int, stop: int) -> list[Placement]:
        count = len(self._keys)
        return [
            Placement(self._keys[i][2], i + 1, compute_percentile(i + 1, count))
            for i in range(start, stop)
        ]

    def upsert(
        self, candidate_id: str, overall_score: float, first_eligible_at: datetime
    ) -> list[Placement]:
        """Insert or reposition a candidate.

        Returns:
            Placements of every member whose rank or percentile changed,
            including the candidate itself.
        """
        new_key = (-overall_score, first_eligible_at, candidate_id)
        old_key = self._key_by_candidate.get(candidate_id)
        if old_key == new_key:
            return []

        old_index = None
        if old_key is not None:
            old_index = bisect.bisect_left(self._keys, old_key)
            del self._keys[old_index]

        new_index = bisect.bisect_left(self._keys, new_key)
        self._keys.insert(new_index, new_key)
        self._key_by_candidate[candidate_id] = new_key

        if old_index is None:
            return self._placements(0, len(self._keys))
        low, high = min(old_index, new_index), max(old_index, new_index)
        return self._placements(low, high + 1)

    def remove(self, candidate_id: str) -> list[Placement]:
        """Remove a candidate, compacting ranks.

        Returns:
            Placements of all remaining members (empty if absent).
        """
        key = self._key_by_candidate.pop(candidate_id, None)
        if key is None:
            return []
        index = bisect.bisect_left(self._keys, key)
        del self._keys[index]
        return self._placements(0, len(self._keys))

    def placement(self, candidate_id: str) -> Placement | None:
        key = self._key_by_candidate.get(candidate_id)
        if key is None:
            return None
        rank = bisect.bisect_left(self._keys, key) + 1
        return Placement(candidate_id, rank, compute_percentile(rank, len(self._keys)))

    def page(self, offset: int = 0, limit: int | None = None) -> list[Placement]:
        stop = len(self._keys) if limit is None else min(offset + limit, len(self._keys))
        return self._placements(max(offset, 0), stop)


class RankingEngine:
    """Holds every job's ranked set; operations on one job are serialized."""

    def __init__(self) -> None:
        self._registry_lock = threading.Lock()
        self._sets: dict[str, JobRankSet] = {}
        self._locks: dict[str, threading.RLock] = {}
        self._loaded: set[str] = set()

    def _lock(self, job_id: str) -> threading.RLock:
        with self._registry_lock:
            lock = self._locks.get(job_id)
            if lock is None:
                lock = self._locks[job_id] = threading.RLock()
                self._sets[job_id] = JobRankSet(job_id)
            return lock

    @contextmanager
    def locked(self, job_id: str) -> Iterator[JobRankSet]:
        """Hold the job's lock and yield its ranked set."""
        lock = self._lock(job_id)
        with lock:
            yield self._sets[job_id]

    def is_loaded(self, job_id: str) -> bool:
        with self._registry_lock:
            return job_id in self._loaded

    def load(self, job_id: str, matches: list[MatchResult]) -> None:
        """Seed a job's ranked set from stored matches (eligible ones only)."""
        with self.locked(job_id) as rank_set:
            for match in matches:
                if match.eligible:
                    rank_set.upsert(
                        match.candidate_id,
                        match.overall_score,
                        match.first_eligible_at or match.computed_at,
                    )
            with self._registry_lock:
                self._loaded.add(job_id)
        logger.debug(f"Loaded {len(matches)} stored matches for job {job_id}")

    def unload(self, job_id: str) -> None:
        """Drop a job's ranked set; the next load reseeds it from the store."""
        with self.locked(job_id):
            with self._registry_lock:
                self._sets[job_id] = JobRankSet(job_id)
                self._loaded.discard(job_id)

    def apply(self, match: MatchResult) -> RankUpdate:
        """Place an eligible match or remove an ineligible one.

        Args:
            match: Freshly computed match. Eligible matches must carry
                first_eligible_at.

        Returns:
            The match with its placement, plus other members that moved.
        """
        with self.locked(match.job_id) as rank_set:
            if match.eligible:
                moved = rank_set.upsert(
                    match.candidate_id,
                    match.overall_score,
                    match.first_eligible_at or match.computed_at,
                )
                own = rank_set.placement(match.candidate_id)
                placed = match.placed(own.rank, own.percentile)
            else:
                moved = rank_set.remove(match.candidate_id)
                placed = match

        shifted = [p for p in moved if p.candidate_id != match.candidate_id]
        logger.debug(
            f"Job {match.job_id}: candidate {match.candidate_id} "
            f"rank={placed.rank} shifted={len(shifted)}"
        )
        return RankUpdate(placed, shifted)

    def remove(self, job_id: str, candidate_id: str) -> list[Placement]:
        with self.locked(job_id) as rank_set:
            return rank_set.remove(candidate_id)

    def placement(self, job_id: str, candidate_id: str) -> Placement | None:
        with self.locked(job_id) as rank_set:
            return rank_set.placement(candidate_id)

    def ranked(
        self, job_id: str, offset: int = 0, limit: int | None = None
    ) -> list[Placement]:
        with self.locked(job_id) as rank_set:
            return rank_set.page(offset, limit)

    def eligible_count(self, job_id: str) -> int:
        with self.locked(job_id) as rank_set:
            return len(rank_set)
