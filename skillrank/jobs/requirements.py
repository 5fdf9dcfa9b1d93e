"""Job requirement profiles and the skill -> jobs reverse index."""

import logging
import threading
from collections import defaultdict
from collections.abc import Callable

from skillrank.schemas.events import JobRequirementsChanged
from skillrank.schemas.job import JobProfile, JobRequirement

logger = logging.getLogger(__name__)

RequirementListener = Callable[[JobRequirementsChanged], None]


class JobRequirementTable:
    """Owns each job's requirement profile and keeps the reverse index current.

    Profiles are replaced wholesale by set_requirements; validation happens in
    JobProfile, so malformed requirements never reach the calculator.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._profiles: dict[str, JobProfile] = {}
        self._jobs_by_skill: dict[str, set[str]] = defaultdict(set)
        self._listeners: list[RequirementListener] = []

    def subscribe(self, listener: RequirementListener) -> None:
        """Register a callback invoked after each requirement edit."""
        self._listeners.append(listener)

    def set_requirements(
        self,
        job_id: str,
        requirements: list[JobRequirement],
        title: str | None = None,
    ) -> JobRequirementsChanged:
        """Replace a job's requirements.

        Args:
            job_id: Job being edited.
            requirements: New requirements in display order (may be empty).
            title: Optional job title; keeps the current title when None.

        Returns:
            The change event, also delivered to subscribers.

        Raises:
            pydantic.ValidationError: On duplicate skills or foreign job ids.
        """
        with self._lock:
            previous = self._profiles.get(job_id)
            if title is None and previous is not None:
                title = previous.title
            profile = JobProfile(job_id=job_id, title=title, requirements=requirements)

            if previous is not None:
                for skill_id in previous.skill_ids:
                    self._jobs_by_skill[skill_id].discard(job_id)
            for skill_id in profile.skill_ids:
                self._jobs_by_skill[skill_id].add(job_id)
            self._profiles[job_id] = profile

        logger.info(f"Job {job_id} now has {len(requirements)} requirements")
        event = JobRequirementsChanged(job_id=job_id)
        for listener in self._listeners:
            try:
                listener(event)
            except Exception:
                logger.exception(f"Requirement listener failed for job {job_id}")
        return event

    def get_profile(self, job_id: str) -> JobProfile:
        with self._lock:
            profile = self._profiles.get(job_id)
        return profile if profile is not None else JobProfile(job_id=job_id)

    def get_requirements(self, job_id: str) -> list[JobRequirement]:
        return list(self.get_profile(job_id).requirements)

    def job_ids(self) -> list[str]:
        with self._lock:
            return sorted(self._profiles)

    def jobs_for_skill(self, skill_id: str) -> set[str]:
        """Return the jobs listing skill_id as a requirement."""
        with self._lock:
            return set(self._jobs_by_skill.get(skill_id, ()))

    def __contains__(self, job_id: str) -> bool:
        with self._lock:
            return job_id in self._profiles
