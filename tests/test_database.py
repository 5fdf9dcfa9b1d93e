"""Tests for SQLite match persistence."""

import sqlite3
from datetime import timedelta
from unittest.mock import patch

import pytest

from skillrank.db.connection import DatabaseConnection, get_connection
from skillrank.db.matches import (
    SqlMatchStore,
    count_matches,
    delete_match,
    get_job_ids,
    get_match,
    get_matches_for_candidate,
    get_matches_for_job,
    update_ranks,
    update_status,
    upsert_match,
)
from skillrank.matching.sources import MatchStore
from skillrank.schemas.match import (
    Eligible,
    Ineligible,
    MatchResult,
    MatchStatus,
    SkillBreakdownItem,
)
from skillrank.utils import StoreTimeoutError
from tests.test_utils import NOW


def _match(
    candidate_id: str,
    score: float,
    rank: int | None = None,
    job_id: str = "j1",
    eligible: bool = True,
) -> MatchResult:
    return MatchResult(
        job_id=job_id,
        candidate_id=candidate_id,
        overall_score=score,
        skill_breakdown=[
            SkillBreakdownItem(
                skill_id="python",
                skill_name="Python",
                candidate_score=score,
                weight=1.0,
                minimum_score=50,
                required=True,
                satisfied=eligible,
            )
        ],
        standing=(
            Eligible(rank=rank, percentile=100.0 if rank else None)
            if eligible
            else Ineligible(reason="below minimum on required skills: python",
                            unmet_skills=["python"])
        ),
        computed_at=NOW,
        first_eligible_at=NOW if eligible else None,
    )


class TestInitDatabase:
    def test_creates_database(self, temp_db):
        assert temp_db.exists()

    def test_sql_store_satisfies_protocol(self):
        assert isinstance(SqlMatchStore(), MatchStore)


class TestUpsertMatch:
    def test_insert_and_read_back(self, temp_db):
        upsert_match(_match("c1", 80, rank=1))

        stored = get_match("j1", "c1")
        assert stored.overall_score == 80
        assert stored.rank == 1
        assert stored.status == MatchStatus.MATCHED
        assert stored.computed_at == NOW
        assert stored.skill_breakdown[0].skill_name == "Python"

    def test_ineligible_round_trip(self, temp_db):
        upsert_match(_match("c1", 30, eligible=False))

        stored = get_match("j1", "c1")
        assert not stored.eligible
        assert stored.rank is None
        assert stored.standing.unmet_skills == ["python"]

    def test_upsert_replaces_in_place(self, temp_db):
        upsert_match(_match("c1", 80, rank=1))
        upsert_match(_match("c1", 60, rank=1))

        assert count_matches("j1") == 1
        assert get_match("j1", "c1").overall_score == 60

    def test_upsert_preserves_status(self, temp_db):
        upsert_match(_match("c1", 80, rank=1))
        update_status("j1", "c1", MatchStatus.MATCHED, MatchStatus.VIEWED, NOW, viewed_at=NOW)

        upsert_match(_match("c1", 30, eligible=False))

        stored = get_match("j1", "c1")
        assert stored.status == MatchStatus.VIEWED
        assert stored.viewed_at == NOW
        assert not stored.eligible

    def test_first_eligible_at_keeps_earliest(self, temp_db):
        upsert_match(_match("c1", 80, rank=1))
        later = _match("c1", 85, rank=1).model_copy(
            update={"first_eligible_at": NOW + timedelta(days=1)}
        )
        upsert_match(later)

        assert get_match("j1", "c1").first_eligible_at == NOW


class TestUpdateRanks:
    def test_updates_only_given_rows(self, temp_db):
        upsert_match(_match("c1", 80, rank=1))
        upsert_match(_match("c2", 70, rank=2))

        update_ranks("j1", [("c1", 2, 0.0), ("c2", 1, 100.0)])

        assert get_match("j1", "c1").rank == 2
        assert get_match("j1", "c2").rank == 1

    def test_ineligible_rows_untouched(self, temp_db):
        upsert_match(_match("c1", 30, eligible=False))

        update_ranks("j1", [("c1", 1, 100.0)])

        assert get_match("j1", "c1").rank is None

    def test_empty_placements(self, temp_db):
        update_ranks("j1", [])


class TestUpdateStatus:
    def test_compare_and_set(self, temp_db):
        upsert_match(_match("c1", 80, rank=1))

        assert update_status("j1", "c1", MatchStatus.MATCHED, MatchStatus.CONTACTED, NOW,
                             contacted_at=NOW)
        assert not update_status("j1", "c1", MatchStatus.MATCHED, MatchStatus.REJECTED, NOW)

        stored = get_match("j1", "c1")
        assert stored.status == MatchStatus.CONTACTED
        assert stored.contacted_at == NOW
        assert stored.updated_at == NOW

    def test_status_change_keeps_scores(self, temp_db):
        upsert_match(_match("c1", 80, rank=1))

        update_status("j1", "c1", MatchStatus.MATCHED, MatchStatus.VIEWED, NOW)

        stored = get_match("j1", "c1")
        assert stored.overall_score == 80
        assert stored.rank == 1
        assert stored.eligible

    def test_missing_row(self, temp_db):
        assert not update_status("j1", "nobody", MatchStatus.MATCHED, MatchStatus.VIEWED, NOW)


class TestQueries:
    def test_matches_for_job_ordered_by_rank(self, temp_db):
        upsert_match(_match("c2", 70, rank=2))
        upsert_match(_match("c1", 80, rank=1))
        upsert_match(_match("c3", 20, eligible=False))

        assert [m.candidate_id for m in get_matches_for_job("j1")] == ["c1", "c2"]
        assert [m.candidate_id for m in get_matches_for_job("j1", include_ineligible=True)] == [
            "c1", "c2", "c3",
        ]

    def test_pagination(self, temp_db):
        for i in range(5):
            upsert_match(_match(f"c{i}", 90 - i, rank=i + 1))

        page = get_matches_for_job("j1", limit=2, offset=2)
        assert [m.rank for m in page] == [3, 4]

        rest = get_matches_for_job("j1", offset=3)
        assert [m.rank for m in rest] == [4, 5]

    def test_matches_for_candidate(self, temp_db):
        upsert_match(_match("c1", 50, rank=1, job_id="j1"))
        upsert_match(_match("c1", 90, rank=1, job_id="j2"))

        assert [m.job_id for m in get_matches_for_candidate("c1")] == ["j2", "j1"]

    def test_counts_and_job_ids(self, temp_db):
        upsert_match(_match("c1", 80, rank=1))
        upsert_match(_match("c2", 20, eligible=False))
        upsert_match(_match("c1", 80, rank=1, job_id="j2"))

        assert count_matches("j1") == 2
        assert count_matches("j1", eligible_only=True) == 1
        assert get_job_ids() == ["j1", "j2"]


class TestDeleteMatch:
    def test_delete_is_idempotent(self, temp_db):
        upsert_match(_match("c1", 80, rank=1))

        assert delete_match("j1", "c1")
        assert not delete_match("j1", "c1")
        assert get_match("j1", "c1") is None


class TestTransactions:
    def test_error_rolls_back_uncommitted_writes(self, temp_db):
        upsert_match(_match("c1", 80, rank=1))

        with pytest.raises(ValueError):
            with get_connection() as db:
                db.cursor().execute("DELETE FROM job_matches")
                raise ValueError("abort")

        assert get_match("j1", "c1") is not None

    def test_rollback_called_on_error(self, temp_db):
        with patch.object(DatabaseConnection, "rollback", autospec=True) as rollback:
            with pytest.raises(ValueError):
                with get_connection():
                    raise ValueError("abort")

        rollback.assert_called_once()

    def test_no_rollback_on_success(self, temp_db):
        with patch.object(DatabaseConnection, "rollback", autospec=True) as rollback:
            with get_connection() as db:
                db.commit()

        rollback.assert_not_called()


class TestTimeouts:
    def test_locked_database_raises_store_timeout(self, temp_db):
        with pytest.raises(StoreTimeoutError):
            with get_connection():
                raise sqlite3.OperationalError("database is locked")

    def test_other_operational_errors_propagate(self, temp_db):
        with pytest.raises(sqlite3.OperationalError):
            with get_connection():
                raise sqlite3.OperationalError("no such table: nope")

    def test_postgres_connect_failure_raises_store_timeout(self):
        import psycopg2

        with (
            patch("skillrank.db.connection.DATABASE_URL", "postgresql://x"),
            patch(
                "skillrank.db.connection.psycopg2.connect",
                side_effect=psycopg2.OperationalError("timeout expired"),
            ),
        ):
            with pytest.raises(StoreTimeoutError):
                with get_connection():
                    pass
