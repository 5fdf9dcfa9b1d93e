"""Deterministic match scoring for a (job, candidate) pair."""

from collections.abc import Mapping
from datetime import datetime

from skillrank.schemas.job import JobRequirement
from skillrank.schemas.match import Eligible, Ineligible, MatchResult, SkillBreakdownItem
from skillrank.schemas.skill import SkillScore
from skillrank.utils import round_score


def evaluate_requirement(
    requirement: JobRequirement,
    score: SkillScore | None,
) -> SkillBreakdownItem:
    """Evaluate one requirement against the candidate's active score.

    Args:
        requirement: Job requirement to check.
        score: Candidate's active score for the skill, None if absent.

    Returns:
        Breakdown entry; an absent score is never satisfied.
    """
    candidate_score = score.score if score is not None else None
    satisfied = candidate_score is not None and candidate_score >= requirement.minimum_score
    return SkillBreakdownItem(
        skill_id=requirement.skill_id,
        skill_name=requirement.skill_name,
        candidate_score=candidate_score,
        weight=requirement.weight,
        minimum_score=requirement.minimum_score,
        required=requirement.required,
        satisfied=satisfied,
    )


def compute_overall_score(breakdown: list[SkillBreakdownItem]) -> float:
    """Weighted average of candidate scores, normalized by total weight.

    Absent skills count as 0. With no requirements the score is 100.

    Args:
        breakdown: Evaluated requirements.

    Returns:
        Score in [0, 100], rounded to stored precision.
    """
    total_weight = sum(item.weight for item in breakdown)
    if total_weight <= 0:
        return 100.0

    weighted = sum(
        item.weight * min(item.candidate_score or 0.0, 100.0) / 100.0
        for item in breakdown
    )
    score = 100.0 * weighted / total_weight
    return round_score(min(max(score, 0.0), 100.0))


def _ineligibility_reason(breakdown: list[SkillBreakdownItem]) -> Ineligible | None:
    missing = [i.skill_id for i in breakdown if i.required and i.candidate_score is None]
    below = [
        i.skill_id
        for i in breakdown
        if i.required and i.candidate_score is not None and not i.satisfied
    ]
    if not missing and not below:
        return None

    parts = []
    if missing:
        parts.append(f"missing required skills: {', '.join(missing)}")
    if below:
        parts.append(f"below minimum on required skills: {', '.join(below)}")
    return Ineligible(reason="; ".join(parts), unmet_skills=missing + below)


def compute_match(
    job_id: str,
    candidate_id: str,
    candidate_scores: Mapping[str, SkillScore],
    requirements: list[JobRequirement],
    computed_at: datetime,
) -> MatchResult:
    """Score a candidate against a job's requirements.

    Pure function: identical inputs always produce identical output. The
    result carries no rank; placement is the ranking engine's job.

    Args:
        job_id: Job being matched.
        candidate_id: Candidate being matched.
        candidate_scores: Candidate's active scores keyed by skill_id.
        requirements: Validated requirements in display order.
        computed_at: Timestamp to stamp on the result.

    Returns:
        MatchResult with overall score, breakdown and eligibility standing.
    """
    breakdown = [
        evaluate_requirement(requirement, candidate_scores.get(requirement.skill_id))
        for requirement in requirements
    ]
    ineligible = _ineligibility_reason(breakdown)

    return MatchResult(
        job_id=job_id,
        candidate_id=candidate_id,
        overall_score=compute_overall_score(breakdown),
        skill_breakdown=breakdown,
        standing=ineligible if ineligible is not None else Eligible(),
        computed_at=computed_at,
    )


def count_required_met(breakdown: list[SkillBreakdownItem]) -> tuple[int, int]:
    """Return (required skills satisfied, total required skills)."""
    required = [item for item in breakdown if item.required]
    return sum(1 for item in required if item.satisfied), len(required)
