"""Periodic sweep raising SkillScoreExpired for scores that lapsed while idle.

Expiry is otherwise evaluated lazily whenever a pair is recomputed; the
sweep makes sure a lapsed score also leaves the rankings when nothing else
touches the candidate.
"""

import logging
import threading
from collections.abc import Callable
from datetime import datetime
from typing import Any

from skillrank.config import EXPIRY_SWEEP_INTERVAL_SECONDS
from skillrank.schemas.events import SkillScoreExpired
from skillrank.skills.table import SkillScoreTable
from skillrank.utils import utc_now

logger = logging.getLogger(__name__)


class ExpirySweeper:
    """Finds scores that expired since the previous sweep and submits events."""

    def __init__(
        self,
        table: SkillScoreTable,
        submit: Callable[[SkillScoreExpired], Any],
        interval: float = EXPIRY_SWEEP_INTERVAL_SECONDS,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.table = table
        self.submit = submit
        self.interval = interval
        self.clock = clock
        self.last_sweep: datetime | None = None
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def sweep_once(self, now: datetime | None = None) -> list[SkillScoreExpired]:
        """Submit an expiry event for each score that lapsed since the last sweep.

        The first sweep covers every lapsed score.

        Args:
            now: Sweep time (defaults to the clock).

        Returns:
            The submitted events.
        """
        now = now or self.clock()
        expired = self.table.expired_between(self.last_sweep, now)

        events = []
        for score in expired:
            event = SkillScoreExpired(candidate_id=score.candidate_id, skill_id=score.skill_id)
            self.submit(event)
            events.append(event)

        self.last_sweep = now
        if events:
            logger.info(f"Expiry sweep raised {len(events)} events")
        else:
            logger.debug("Expiry sweep found nothing to expire")
        return events

    def start(self) -> None:
        """Run sweeps every interval seconds on a daemon thread."""
        if self._thread is not None and self._thread.is_alive():
            logger.warning("Expiry sweeper already running")
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="expiry-sweeper", daemon=True)
        self._thread.start()
        logger.info(f"Expiry sweeper started (every {self.interval:.0f}s)")

    def stop(self, timeout: float | None = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def _loop(self) -> None:
        while not self._stop.wait(self.interval):
            try:
                self.sweep_once()
            except Exception:
                logger.exception("Expiry sweep failed; retrying next interval")
