"""Authoritative in-memory table of candidate skill scores.

Keeps every score ever recorded per (candidate, skill). The newest score by
computed_at is the current one; it counts for matching only while active.
Older and expired scores stay available as history.
"""

import logging
import threading
from collections import defaultdict
from collections.abc import Callable
from datetime import datetime

from skillrank.schemas.events import SkillScoreChanged
from skillrank.schemas.skill import SkillScore

logger = logging.getLogger(__name__)

ScoreListener = Callable[[SkillScoreChanged], None]


class SkillScoreTable:
    """Thread-safe store of skill scores with supersession and expiry."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        # (candidate_id, skill_id) -> scores ordered by computed_at
        self._history: dict[tuple[str, str], list[SkillScore]] = defaultdict(list)
        self._skills_by_candidate: dict[str, set[str]] = defaultdict(set)
        self._candidates_by_skill: dict[str, set[str]] = defaultdict(set)
        self._listeners: list[ScoreListener] = []

    def subscribe(self, listener: ScoreListener) -> None:
        """Register a callback invoked after each recorded score."""
        self._listeners.append(listener)

    def record(self, score: SkillScore) -> SkillScoreChanged:
        """Record a new evaluation, superseding earlier scores for the skill.

        Args:
            score: Completed evaluation.

        Returns:
            The change event, also delivered to subscribers.
        """
        key = (score.candidate_id, score.skill_id)
        with self._lock:
            history = self._history[key]
            history.append(score)
            history.sort(key=lambda s: s.computed_at)
            self._skills_by_candidate[score.candidate_id].add(score.skill_id)
            self._candidates_by_skill[score.skill_id].add(score.candidate_id)

        event = SkillScoreChanged(candidate_id=score.candidate_id, skill_id=score.skill_id)
        logger.debug(
            f"Recorded score {score.score} for candidate {score.candidate_id} "
            f"skill {score.skill_id}"
        )
        for listener in self._listeners:
            try:
                listener(event)
            except Exception:
                logger.exception(
                    f"Score listener failed for candidate {score.candidate_id} "
                    f"skill {score.skill_id}"
                )
        return event

    def current(self, candidate_id: str, skill_id: str) -> SkillScore | None:
        """Return the newest score for the pair, active or not."""
        with self._lock:
            history = self._history.get((candidate_id, skill_id))
            return history[-1] if history else None

    def history(self, candidate_id: str, skill_id: str) -> list[SkillScore]:
        """Return every score recorded for the pair, oldest first."""
        with self._lock:
            return list(self._history.get((candidate_id, skill_id), []))

    def get_active_scores(self, candidate_id: str, now: datetime) -> dict[str, SkillScore]:
        """Return skill_id -> current score for every active skill of a candidate.

        A superseded score never counts, even if the newer one has expired.
        """
        active = {}
        with self._lock:
            for skill_id in self._skills_by_candidate.get(candidate_id, ()):
                latest = self._history[(candidate_id, skill_id)][-1]
                if latest.is_active(now):
                    active[skill_id] = latest
        return active

    def candidates_with_skills(self, skill_ids: set[str], now: datetime) -> set[str]:
        """Return candidates with an active current score for any given skill."""
        found = set()
        with self._lock:
            for skill_id in skill_ids:
                for candidate_id in self._candidates_by_skill.get(skill_id, ()):
                    if candidate_id in found:
                        continue
                    if self._history[(candidate_id, skill_id)][-1].is_active(now):
                        found.add(candidate_id)
        return found

    def active_candidates(self, now: datetime) -> set[str]:
        """Return candidates with at least one active current score."""
        with self._lock:
            return {
                candidate_id
                for (candidate_id, _), history in self._history.items()
                if history[-1].is_active(now)
            }

    def expired_between(
        self, since: datetime | None, until: datetime
    ) -> list[SkillScore]:
        """Return current scores that were active at since but not at until.

        Args:
            since: Previous sweep time, None to return every inactive score.
            until: Current sweep time (usually now).

        Returns:
            Current scores that became inactive in the window, ordered by expiry.
        """
        expired = []
        with self._lock:
            for history in self._history.values():
                latest = history[-1]
                if latest.is_active(until):
                    continue
                if since is not None and not latest.is_active(since):
                    continue
                expired.append(latest)
        expired.sort(key=lambda s: (s.expires_at, s.candidate_id, s.skill_id))
        return expired

    def __len__(self) -> int:
        with self._lock:
            return sum(len(h) for h in self._history.values())
