from datetime import datetime
from enum import Enum
from typing import Annotated, Literal

from pydantic import BaseModel, Field


class MatchStatus(str, Enum):
    """Employer-driven lifecycle of a match.

    Use _missing_ for case-insensitive parsing of CLI and stored values.
    """

    MATCHED = "matched"
    VIEWED = "viewed"
    CONTACTED = "contacted"
    SHORTLISTED = "shortlisted"
    REJECTED = "rejected"
    HIRED = "hired"

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, str):
            value_lower = value.lower()
            for member in cls:
                if member.value == value_lower:
                    return member
        return None


class SkillBreakdownItem(BaseModel):
    """How one requirement of the job was evaluated for the candidate."""

    skill_id: str
    skill_name: str | None = None
    candidate_score: float | None = Field(
        default=None,
        description="Candidate's active score, None when the candidate has none",
    )
    weight: float
    minimum_score: float
    required: bool
    satisfied: bool = Field(
        description="Candidate has an active score at or above minimum_score"
    )


class Eligible(BaseModel):
    """Candidate passes every required-skill threshold and is ranked."""

    kind: Literal["eligible"] = "eligible"
    rank: int | None = Field(
        default=None,
        ge=1,
        description="1-based position in the job's ranked set, None until placed",
    )
    percentile: float | None = Field(
        default=None,
        ge=0,
        le=100,
        description="Standing among eligible candidates, None until placed",
    )


class Ineligible(BaseModel):
    """Candidate misses at least one required skill threshold."""

    kind: Literal["ineligible"] = "ineligible"
    reason: str
    unmet_skills: list[str] = Field(default_factory=list)


Standing = Annotated[Eligible | Ineligible, Field(discriminator="kind")]


class MatchResult(BaseModel):
    """The single match record for a (job, candidate) pair.

    Score fields are owned by the recompute path; status fields by employer
    actions. Neither path writes the other's fields.
    """

    job_id: str
    candidate_id: str
    overall_score: float = Field(ge=0, le=100, description="Weighted match score (0-100)")
    skill_breakdown: list[SkillBreakdownItem] = Field(
        default_factory=list,
        description="One entry per requirement, in requirement order",
    )
    standing: Standing = Field(default_factory=Eligible)
    status: MatchStatus = MatchStatus.MATCHED
    computed_at: datetime
    first_eligible_at: datetime | None = Field(
        default=None,
        description="computed_at of the first eligible result for this pair (rank tie-break)",
    )
    viewed_at: datetime | None = None
    contacted_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def eligible(self) -> bool:
        return isinstance(self.standing, Eligible)

    @property
    def rank(self) -> int | None:
        return self.standing.rank if isinstance(self.standing, Eligible) else None

    @property
    def percentile(self) -> float | None:
        return self.standing.percentile if isinstance(self.standing, Eligible) else None

    def placed(self, rank: int | None, percentile: float | None) -> "MatchResult":
        """Return a copy with the given rank placement (eligible matches only)."""
        if not self.eligible:
            return self
        return self.model_copy(
            update={"standing": Eligible(rank=rank, percentile=percentile)}
        )


class MatchPage(BaseModel):
    """One page of a job's ranked matches."""

    job_id: str
    page: int
    page_size: int
    total: int = Field(description="Number of eligible matches for the job")
    items: list[MatchResult]


class JobSummary(BaseModel):
    """Match counts and top preview for a job."""

    job_id: str
    total_matches: int
    eligible_matches: int
    top_matches: list[MatchResult]


class JobBrowseResult(BaseModel):
    """On-the-fly score of one job for a candidate (not persisted)."""

    job_id: str
    title: str | None = None
    overall_score: float
    eligible: bool
    required_skills_met: int
    total_required_skills: int
    skill_breakdown: list[SkillBreakdownItem]
