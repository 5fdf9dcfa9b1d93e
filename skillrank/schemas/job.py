from pydantic import BaseModel, Field, model_validator


class JobRequirement(BaseModel):
    """A job's declared need for one skill.

    Weights are advisory per job and need not sum to 1; the calculator
    normalizes by their total.
    """

    job_id: str = Field(description="Job owning this requirement")
    skill_id: str = Field(description="Required or preferred skill")
    skill_name: str | None = Field(
        default=None,
        description="Display name of the skill, copied into match breakdowns",
    )
    weight: float = Field(
        default=1.0,
        gt=0,
        le=1,
        description="Importance of this skill within the job (0-1]",
    )
    minimum_score: float = Field(
        default=60.0,
        ge=0,
        le=100,
        description="Score the candidate must reach to satisfy this skill",
    )
    required: bool = Field(
        default=True,
        description="Required skills gate eligibility; preferred skills only add score",
    )

    model_config = {"frozen": True}


class JobProfile(BaseModel):
    """The ordered set of requirements for one job.

    A job may have zero requirements; every candidate then matches with 100.
    """

    job_id: str = Field(description="Job identifier")
    title: str | None = Field(default=None, description="Job title for display")
    requirements: list[JobRequirement] = Field(
        default_factory=list,
        description="Requirements in declaration order",
    )

    @model_validator(mode="after")
    def _check_requirements(self) -> "JobProfile":
        seen: set[str] = set()
        for requirement in self.requirements:
            if requirement.job_id != self.job_id:
                raise ValueError(
                    f"Requirement for skill {requirement.skill_id} belongs to job "
                    f"{requirement.job_id}, not {self.job_id}"
                )
            if requirement.skill_id in seen:
                raise ValueError(
                    f"Duplicate requirement for skill {requirement.skill_id} "
                    f"in job {self.job_id}"
                )
            seen.add(requirement.skill_id)
        return self

    @property
    def skill_ids(self) -> set[str]:
        return {r.skill_id for r in self.requirements}

    @property
    def has_required_skills(self) -> bool:
        return any(r.required for r in self.requirements)
