"""Upstream change events consumed by the recompute coordinator."""

from typing import Annotated, Literal

from pydantic import BaseModel, Field


class SkillScoreChanged(BaseModel):
    """A new score was recorded for a candidate's skill."""

    kind: Literal["skill_score_changed"] = "skill_score_changed"
    candidate_id: str
    skill_id: str


class SkillScoreExpired(BaseModel):
    """A candidate's score for a skill passed its expiry."""

    kind: Literal["skill_score_expired"] = "skill_score_expired"
    candidate_id: str
    skill_id: str


class JobRequirementsChanged(BaseModel):
    """A job's requirement set was created or edited."""

    kind: Literal["job_requirements_changed"] = "job_requirements_changed"
    job_id: str


ChangeEvent = Annotated[
    SkillScoreChanged | SkillScoreExpired | JobRequirementsChanged,
    Field(discriminator="kind"),
]
