"""Ingest service for loading skill scores and job requirements.

The dataset is a JSON object:

    {
      "jobs": [
        {"job_id": "...", "title": "...",
         "requirements": [{"skill_id": "...", "weight": 0.7, "minimum_score": 50,
                           "required": true, "skill_name": "..."}]}
      ],
      "skill_scores": [
        {"candidate_id": "...", "skill_id": "...", "score": 80,
         "computed_at": "2025-01-01T00:00:00Z", "expires_at": null}
      ]
    }

Requirements inherit the job_id of the job they are listed under.
"""

import json
import logging
from pathlib import Path

from skillrank.jobs.requirements import JobRequirementTable
from skillrank.schemas.job import JobRequirement
from skillrank.schemas.skill import SkillScore
from skillrank.skills.table import SkillScoreTable

logger = logging.getLogger(__name__)


def load_dataset(
    file_path: Path,
    skill_table: SkillScoreTable,
    requirement_table: JobRequirementTable,
) -> dict:
    """Load jobs and skill scores from a JSON file into the tables.

    Jobs are loaded before scores so score events fan out to every job.
    Subscribers of the tables receive the usual change events.

    Args:
        file_path: Path to the JSON dataset.
        skill_table: Table receiving the skill scores.
        requirement_table: Table receiving the job requirements.

    Returns:
        Dict with load statistics:
        - jobs_loaded: Number of job profiles set
        - requirements_loaded: Total requirements across those jobs
        - scores_loaded: Number of skill scores recorded

    Raises:
        pydantic.ValidationError: If any job or score is malformed.
    """
    logger.info(f"Loading dataset from {file_path}")
    with open(file_path) as f:
        data = json.load(f)

    stats = {"jobs_loaded": 0, "requirements_loaded": 0, "scores_loaded": 0}

    for job in data.get("jobs", []):
        job_id = job["job_id"]
        requirements = [
            JobRequirement(**{"job_id": job_id, **requirement})
            for requirement in job.get("requirements", [])
        ]
        requirement_table.set_requirements(job_id, requirements, title=job.get("title"))
        stats["jobs_loaded"] += 1
        stats["requirements_loaded"] += len(requirements)

    for raw_score in data.get("skill_scores", []):
        skill_table.record(SkillScore(**raw_score))
        stats["scores_loaded"] += 1

    logger.info(f"Dataset loaded: {stats}")
    return stats
