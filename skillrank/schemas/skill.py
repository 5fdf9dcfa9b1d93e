from datetime import datetime, timedelta

from pydantic import BaseModel, Field, field_validator, model_validator

from skillrank.config import SKILL_SCORE_VALIDITY_DAYS
from skillrank.utils import ensure_utc


class SkillScore(BaseModel):
    """A candidate's proficiency rating for one skill, valid until expires_at.

    Scores are immutable: a newer evaluation for the same skill supersedes the
    previous score instead of mutating it.
    """

    candidate_id: str = Field(description="Candidate the score belongs to")
    skill_id: str = Field(description="Skill that was evaluated")
    score: float = Field(ge=0, le=100, description="Proficiency score (0-100)")
    percentile_among_peers: float | None = Field(
        default=None,
        ge=0,
        le=100,
        description="Standing among other candidates evaluated on this skill",
    )
    computed_at: datetime = Field(description="When the evaluation completed")
    expires_at: datetime | None = Field(
        default=None,
        description="When the score stops counting (defaults to the validity window)",
    )

    @field_validator("computed_at", "expires_at")
    @classmethod
    def _as_utc(cls, value: datetime | None) -> datetime | None:
        return ensure_utc(value) if value is not None else None

    @model_validator(mode="after")
    def _default_expiry(self) -> "SkillScore":
        if self.expires_at is None:
            self.expires_at = self.computed_at + timedelta(days=SKILL_SCORE_VALIDITY_DAYS)
        return self

    def is_active(self, now: datetime) -> bool:
        """A score is active until the instant now passes expires_at."""
        return now <= self.expires_at
