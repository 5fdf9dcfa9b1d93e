"""Match record persistence, keyed by (job_id, candidate_id).

Score fields and status fields are written by separate statements so a
recompute can never reset an employer's decision, and a status change can
never disturb a score or rank.
"""

import json
import logging
from datetime import datetime
from typing import Any

from skillrank.db.connection import get_connection
from skillrank.schemas.match import (
    Eligible,
    Ineligible,
    MatchResult,
    MatchStatus,
    SkillBreakdownItem,
)

logger = logging.getLogger(__name__)

_ORDER_BY_RANK = "eligible DESC, match_rank ASC, overall_score DESC, candidate_id ASC"


def _ts(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _json_field(value: Any, default: Any) -> Any:
    if value is None:
        return default
    if isinstance(value, str):
        return json.loads(value)
    return value


def _row_to_match(row: Any) -> MatchResult:
    """Convert a database row to a MatchResult."""
    if row["eligible"]:
        percentile = row["percentile"]
        standing = Eligible(
            rank=row["match_rank"],
            percentile=float(percentile) if percentile is not None else None,
        )
    else:
        standing = Ineligible(
            reason=row["ineligible_reason"] or "",
            unmet_skills=_json_field(row["unmet_skills"], []),
        )

    return MatchResult(
        job_id=row["job_id"],
        candidate_id=row["candidate_id"],
        overall_score=float(row["overall_score"]),
        skill_breakdown=[
            SkillBreakdownItem(**item) for item in _json_field(row["skill_breakdown"], [])
        ],
        standing=standing,
        status=MatchStatus(row["status"]),
        computed_at=row["computed_at"],
        first_eligible_at=row["first_eligible_at"],
        viewed_at=row["viewed_at"],
        contacted_at=row["contacted_at"],
        updated_at=row["updated_at"],
    )


def upsert_match(match: MatchResult) -> None:
    """Insert a match or replace its score fields in place.

    Status, viewed_at and contacted_at of an existing row are preserved, as
    is the earliest first_eligible_at.

    Args:
        match: Match with its current placement.
    """
    unmet = match.standing.unmet_skills if isinstance(match.standing, Ineligible) else None
    reason = match.standing.reason if isinstance(match.standing, Ineligible) else None

    with get_connection() as db:
        cursor = db.cursor()
        ph = db.placeholder
        cursor.execute(
            f"""
            INSERT INTO job_matches (
                job_id, candidate_id, overall_score, eligible, match_rank, percentile,
                ineligible_reason, unmet_skills, skill_breakdown, status,
                computed_at, first_eligible_at, updated_at
            ) VALUES ({", ".join([ph] * 13)})
            ON CONFLICT (job_id, candidate_id) DO UPDATE SET
                overall_score = excluded.overall_score,
                eligible = excluded.eligible,
                match_rank = excluded.match_rank,
                percentile = excluded.percentile,
                ineligible_reason = excluded.ineligible_reason,
                unmet_skills = excluded.unmet_skills,
                skill_breakdown = excluded.skill_breakdown,
                computed_at = excluded.computed_at,
                first_eligible_at = COALESCE(
                    job_matches.first_eligible_at, excluded.first_eligible_at
                )
            """,
            (
                match.job_id,
                match.candidate_id,
                match.overall_score,
                match.eligible,
                match.rank,
                match.percentile,
                reason,
                json.dumps(unmet) if unmet is not None else None,
                json.dumps([item.model_dump() for item in match.skill_breakdown]),
                match.status.value,
                _ts(match.computed_at),
                _ts(match.first_eligible_at),
                _ts(match.updated_at),
            ),
        )
        db.commit()


def update_ranks(job_id: str, placements: list[tuple[str, int, float]]) -> None:
    """Write new rank/percentile values for eligible matches of a job.

    Args:
        job_id: Job whose ranked set changed.
        placements: (candidate_id, rank, percentile) tuples.
    """
    if not placements:
        return

    with get_connection() as db:
        cursor = db.cursor()
        ph = db.placeholder
        cursor.executemany(
            f"""
            UPDATE job_matches SET match_rank = {ph}, percentile = {ph}
            WHERE job_id = {ph} AND candidate_id = {ph} AND eligible = {ph}
            """,
            [(rank, percentile, job_id, candidate_id, True)
             for candidate_id, rank, percentile in placements],
        )
        db.commit()


def update_status(
    job_id: str,
    candidate_id: str,
    expected: MatchStatus,
    status: MatchStatus,
    updated_at: datetime,
    viewed_at: datetime | None = None,
    contacted_at: datetime | None = None,
) -> bool:
    """Change a match's status if it still has the expected status.

    Args:
        job_id: Job of the match.
        candidate_id: Candidate of the match.
        expected: Status the caller validated the transition against.
        status: New status.
        updated_at: Timestamp of the change.
        viewed_at: Set viewed_at when given (kept otherwise).
        contacted_at: Set contacted_at when given (kept otherwise).

    Returns:
        True if the row was updated, False if it is missing or its status changed.
    """
    with get_connection() as db:
        cursor = db.cursor()
        ph = db.placeholder
        cursor.execute(
            f"""
            UPDATE job_matches SET
                status = {ph},
                updated_at = {ph},
                viewed_at = COALESCE({ph}, viewed_at),
                contacted_at = COALESCE({ph}, contacted_at)
            WHERE job_id = {ph} AND candidate_id = {ph} AND status = {ph}
            """,
            (
                status.value,
                _ts(updated_at),
                _ts(viewed_at),
                _ts(contacted_at),
                job_id,
                candidate_id,
                expected.value,
            ),
        )
        updated = cursor.rowcount
        db.commit()

    return updated > 0


def delete_match(job_id: str, candidate_id: str) -> bool:
    """Delete a match. Deleting a missing match is a no-op.

    Returns:
        True if a row was deleted.
    """
    with get_connection() as db:
        cursor = db.cursor()
        ph = db.placeholder
        cursor.execute(
            f"DELETE FROM job_matches WHERE job_id = {ph} AND candidate_id = {ph}",
            (job_id, candidate_id),
        )
        deleted = cursor.rowcount
        db.commit()

    return deleted > 0


def get_match(job_id: str, candidate_id: str) -> MatchResult | None:
    """Retrieve the match for a pair, or None."""
    with get_connection() as db:
        cursor = db.cursor(dictionary=True)
        ph = db.placeholder
        cursor.execute(
            f"SELECT * FROM job_matches WHERE job_id = {ph} AND candidate_id = {ph}",
            (job_id, candidate_id),
        )
        row = cursor.fetchone()

    return _row_to_match(row) if row is not None else None


def get_matches_for_job(
    job_id: str,
    limit: int | None = None,
    offset: int = 0,
    include_ineligible: bool = False,
) -> list[MatchResult]:
    """Retrieve a job's matches ordered by rank.

    Args:
        job_id: Job to list.
        limit: Maximum number of rows (None for all).
        offset: Rows to skip.
        include_ineligible: Also return ineligible rows, after the ranked ones.

    Returns:
        List of MatchResult objects.
    """
    with get_connection() as db:
        cursor = db.cursor(dictionary=True)
        ph = db.placeholder

        query = f"SELECT * FROM job_matches WHERE job_id = {ph}"
        params: list[Any] = [job_id]
        if not include_ineligible:
            query += f" AND eligible = {ph}"
            params.append(True)
        query += f" ORDER BY {_ORDER_BY_RANK}"
        if limit is not None:
            query += f" LIMIT {ph} OFFSET {ph}"
            params.extend([limit, offset])
        elif offset:
            query += " LIMIT ALL" if db.is_postgres else " LIMIT -1"
            query += f" OFFSET {ph}"
            params.append(offset)

        cursor.execute(query, params)
        rows = cursor.fetchall()

    return [_row_to_match(row) for row in rows]


def get_matches_for_candidate(candidate_id: str) -> list[MatchResult]:
    """Retrieve all of a candidate's matches, best score first."""
    with get_connection() as db:
        cursor = db.cursor(dictionary=True)
        ph = db.placeholder
        cursor.execute(
            f"""
            SELECT * FROM job_matches
            WHERE candidate_id = {ph}
            ORDER BY overall_score DESC, job_id ASC
            """,
            (candidate_id,),
        )
        rows = cursor.fetchall()

    return [_row_to_match(row) for row in rows]


def count_matches(job_id: str, eligible_only: bool = False) -> int:
    """Count a job's matches."""
    with get_connection() as db:
        cursor = db.cursor()
        ph = db.placeholder
        query = f"SELECT COUNT(*) FROM job_matches WHERE job_id = {ph}"
        params: list[Any] = [job_id]
        if eligible_only:
            query += f" AND eligible = {ph}"
            params.append(True)
        cursor.execute(query, params)
        row = cursor.fetchone()

    return int(row[0])


def get_job_ids() -> list[str]:
    """Return every job with at least one match."""
    with get_connection() as db:
        cursor = db.cursor()
        cursor.execute("SELECT DISTINCT job_id FROM job_matches ORDER BY job_id")
        rows = cursor.fetchall()

    return [row[0] for row in rows]


class SqlMatchStore:
    """MatchStore backed by the module-level database functions."""

    def upsert_match(self, match: MatchResult) -> None:
        upsert_match(match)

    def delete_match(self, job_id: str, candidate_id: str) -> bool:
        return delete_match(job_id, candidate_id)

    def update_ranks(self, job_id: str, placements: list[tuple[str, int, float]]) -> None:
        update_ranks(job_id, placements)

    def update_status(
        self,
        job_id: str,
        candidate_id: str,
        expected: MatchStatus,
        status: MatchStatus,
        updated_at: datetime,
        viewed_at: datetime | None = None,
        contacted_at: datetime | None = None,
    ) -> bool:
        return update_status(
            job_id, candidate_id, expected, status, updated_at, viewed_at, contacted_at
        )

    def get_match(self, job_id: str, candidate_id: str) -> MatchResult | None:
        return get_match(job_id, candidate_id)

    def get_matches_for_job(
        self,
        job_id: str,
        limit: int | None = None,
        offset: int = 0,
        include_ineligible: bool = False,
    ) -> list[MatchResult]:
        return get_matches_for_job(job_id, limit, offset, include_ineligible)

    def get_matches_for_candidate(self, candidate_id: str) -> list[MatchResult]:
        return get_matches_for_candidate(candidate_id)

    def count_matches(self, job_id: str, eligible_only: bool = False) -> int:
        return count_matches(job_id, eligible_only)

    def get_job_ids(self) -> list[str]:
        return get_job_ids()
