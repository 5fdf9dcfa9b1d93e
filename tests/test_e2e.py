"""End-to-end tests for the skillrank system.

Tests the complete flows including:
- Event-driven recompute persisted to SQLite
- CLI commands (load, matches, match, candidate-matches, browse, set-status, contact, info)
- Scheduled runner
"""

import json
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from skillrank.db.matches import get_match, get_matches_for_job
from skillrank.jobs.requirements import JobRequirementTable
from skillrank.main import app
from skillrank.schemas.match import MatchStatus
from skillrank.services.match_service import build_system
from skillrank.skills.table import SkillScoreTable
from tests.test_utils import NOW, make_test_requirement, make_test_score, no_sleep

runner = CliRunner()

WAIT = 10

# Far-future expiry so the dataset stays active against the real clock
SAMPLE_DATASET = {
    "jobs": [
        {
            "job_id": "backend",
            "title": "Backend Engineer",
            "requirements": [
                {"skill_id": "python", "skill_name": "Python", "weight": 0.7,
                 "minimum_score": 50, "required": True},
                {"skill_id": "sql", "skill_name": "SQL", "weight": 0.3,
                 "minimum_score": 0, "required": False},
            ],
        },
        {
            "job_id": "data",
            "title": "Data Engineer",
            "requirements": [
                {"skill_id": "sql", "weight": 1.0, "minimum_score": 70, "required": True},
            ],
        },
    ],
    "skill_scores": [
        {"candidate_id": "alice", "skill_id": "python", "score": 80,
         "computed_at": "2025-05-01T00:00:00Z", "expires_at": "2099-01-01T00:00:00Z"},
        {"candidate_id": "alice", "skill_id": "sql", "score": 40,
         "computed_at": "2025-05-01T00:00:00Z", "expires_at": "2099-01-01T00:00:00Z"},
        {"candidate_id": "bob", "skill_id": "python", "score": 90,
         "computed_at": "2025-05-02T00:00:00Z", "expires_at": "2099-01-01T00:00:00Z"},
        {"candidate_id": "bob", "skill_id": "sql", "score": 90,
         "computed_at": "2025-05-02T00:00:00Z", "expires_at": "2099-01-01T00:00:00Z"},
        {"candidate_id": "carol", "skill_id": "python", "score": 30,
         "computed_at": "2025-05-03T00:00:00Z", "expires_at": "2099-01-01T00:00:00Z"},
    ],
}


@pytest.fixture
def dataset_file(tmp_path):
    path = tmp_path / "dataset.json"
    path.write_text(json.dumps(SAMPLE_DATASET))
    return path


@pytest.fixture
def loaded_db(temp_db, dataset_file):
    """Temporary database populated through the CLI load command."""
    with patch("skillrank.main.DB_PATH", temp_db), patch("skillrank.main.DATABASE_URL", None):
        result = runner.invoke(app, ["load", "--file", str(dataset_file)])
        assert result.exit_code == 0, result.output
        yield temp_db


class TestSqlPipeline:
    def test_events_persist_ranked_matches(self, sql_system):
        sql_system.requirements.set_requirements(
            "j1", [make_test_requirement("j1", "python", minimum_score=50)]
        )
        for candidate_id, score in [("c1", 70), ("c2", 90), ("c3", 20)]:
            sql_system.skill_scores.record(make_test_score(candidate_id, "python", score))
        assert sql_system.coordinator.wait_idle(WAIT)

        rows = get_matches_for_job("j1", include_ineligible=True)
        assert [(m.candidate_id, m.rank) for m in rows] == [("c2", 1), ("c1", 2), ("c3", None)]
        assert rows[0].percentile == 100.0
        assert rows[1].percentile == 0.0

    def test_status_survives_recompute_in_database(self, sql_system, clock):
        sql_system.requirements.set_requirements(
            "j1", [make_test_requirement("j1", "python", minimum_score=50)]
        )
        sql_system.skill_scores.record(make_test_score("c1", "python", 70))
        assert sql_system.coordinator.wait_idle(WAIT)
        sql_system.service.contact_candidate("j1", "c1")

        clock.advance(days=1)
        sql_system.skill_scores.record(make_test_score("c1", "python", 10, computed_at=NOW))
        assert sql_system.coordinator.wait_idle(WAIT)

        stored = get_match("j1", "c1")
        assert stored.status == MatchStatus.CONTACTED
        assert stored.contacted_at == NOW
        assert not stored.eligible
        assert stored.overall_score == 10

    def test_fresh_process_rebuild_keeps_ranks_and_status(self, sql_system, clock):
        sql_system.requirements.set_requirements(
            "j1", [make_test_requirement("j1", "python")]
        )
        sql_system.skill_scores.record(make_test_score("c1", "python", 70))
        sql_system.skill_scores.record(make_test_score("c2", "python", 90))
        assert sql_system.coordinator.wait_idle(WAIT)
        sql_system.service.set_match_status("j1", "c1", "viewed")

        fresh = build_system(
            skill_scores=SkillScoreTable(),
            requirements=JobRequirementTable(),
            clock=clock,
            base_delay=0.0,
            sleep=no_sleep,
        )
        with fresh.coordinator:
            fresh.requirements.set_requirements(
                "j1", [make_test_requirement("j1", "python")]
            )
            for candidate_id, score in [("c1", 70), ("c2", 90)]:
                fresh.skill_scores.record(make_test_score(candidate_id, "python", score))
            report = fresh.service.rebuild_job("j1", timeout=WAIT)

        assert report.succeeded
        rows = get_matches_for_job("j1")
        assert [(m.candidate_id, m.rank) for m in rows] == [("c2", 1), ("c1", 2)]
        assert rows[1].status == MatchStatus.VIEWED


class TestCLICommands:
    def test_info_command_no_database(self, tmp_path):
        with (
            patch("skillrank.main.DATABASE_URL", None),
            patch("skillrank.main.DB_PATH", tmp_path / "nonexistent.db"),
        ):
            result = runner.invoke(app, ["info"])
        assert result.exit_code == 0
        assert "Database not found" in result.output

    def test_load_missing_file(self, temp_db, tmp_path):
        result = runner.invoke(app, ["load", "--file", str(tmp_path / "missing.json")])
        assert result.exit_code == 1
        assert "not found" in result.output

    def test_load_and_list_matches(self, loaded_db):
        with patch("skillrank.main.DB_PATH", loaded_db):
            result = runner.invoke(app, ["matches", "backend", "--json"])

        assert result.exit_code == 0, result.output
        page = json.loads(result.stdout)
        assert page["total"] == 2
        assert [m["candidate_id"] for m in page["items"]] == ["bob", "alice"]
        assert [m["standing"]["rank"] for m in page["items"]] == [1, 2]

    def test_matches_table_output(self, loaded_db):
        with patch("skillrank.main.DB_PATH", loaded_db):
            result = runner.invoke(app, ["matches", "backend"])

        assert result.exit_code == 0
        assert "bob" in result.output
        assert "carol" not in result.output

    def test_match_command(self, loaded_db):
        with patch("skillrank.main.DB_PATH", loaded_db):
            result = runner.invoke(app, ["match", "backend", "carol", "--json"])

        assert result.exit_code == 0
        match = json.loads(result.stdout)
        assert match["standing"]["kind"] == "ineligible"
        assert match["skill_breakdown"][0]["skill_name"] == "Python"

    def test_match_not_found(self, loaded_db):
        with patch("skillrank.main.DB_PATH", loaded_db):
            result = runner.invoke(app, ["match", "backend", "nobody"])
        assert result.exit_code == 1

    def test_candidate_matches(self, loaded_db):
        with patch("skillrank.main.DB_PATH", loaded_db):
            result = runner.invoke(app, ["candidate-matches", "bob", "--json"])

        assert result.exit_code == 0
        matches = json.loads(result.stdout)
        assert {m["job_id"] for m in matches} == {"backend", "data"}

    def test_set_status_and_contact(self, loaded_db):
        with patch("skillrank.main.DB_PATH", loaded_db):
            result = runner.invoke(app, ["set-status", "backend", "bob", "VIEWED"])
            assert result.exit_code == 0, result.output
            result = runner.invoke(app, ["contact", "backend", "bob"])
            assert result.exit_code == 0, result.output

        stored = get_match("backend", "bob")
        assert stored.status == MatchStatus.CONTACTED
        assert stored.viewed_at is not None
        assert stored.contacted_at is not None
        assert stored.rank == 1

    def test_invalid_transition_rejected(self, loaded_db):
        with patch("skillrank.main.DB_PATH", loaded_db):
            result = runner.invoke(app, ["set-status", "backend", "bob", "hired"])

        assert result.exit_code == 1
        assert "Cannot change match status" in result.output
        assert get_match("backend", "bob").status == MatchStatus.MATCHED

    def test_unknown_status(self, loaded_db):
        with patch("skillrank.main.DB_PATH", loaded_db):
            result = runner.invoke(app, ["set-status", "backend", "bob", "archived"])
        assert result.exit_code == 1

    def test_browse(self, loaded_db, dataset_file):
        result = runner.invoke(app, ["browse", "alice", "--file", str(dataset_file), "--json"])

        assert result.exit_code == 0, result.output
        results = json.loads(result.stdout)
        assert [r["job_id"] for r in results] == ["backend", "data"]
        assert results[0]["eligible"] is True
        assert results[0]["overall_score"] == 68.0
        assert results[1]["required_skills_met"] == 0

    def test_info_with_data(self, loaded_db):
        with (
            patch("skillrank.main.DB_PATH", loaded_db),
            patch("skillrank.main.DATABASE_URL", None),
        ):
            result = runner.invoke(app, ["info"])

        assert result.exit_code == 0
        assert "Jobs with matches" in result.output


class TestScheduledRunner:
    def test_runs_full_pipeline(self, temp_db, dataset_file):
        from skillrank.scheduled_runner import main

        with patch("skillrank.config.DATA_FILE", str(dataset_file)):
            assert main() == 0

        rows = get_matches_for_job("backend", include_ineligible=True)
        assert [(m.candidate_id, m.rank) for m in rows] == [
            ("bob", 1), ("alice", 2), ("carol", None),
        ]
        assert [m.candidate_id for m in get_matches_for_job("data")] == ["bob"]

    def test_missing_data_file(self, temp_db):
        from skillrank.scheduled_runner import main

        with patch("skillrank.config.DATA_FILE", None):
            assert main() == 1

    def test_invalid_dataset(self, temp_db, tmp_path):
        from skillrank.scheduled_runner import main

        bad = tmp_path / "bad.json"
        bad.write_text(json.dumps({"skill_scores": [{"candidate_id": "x"}]}))

        with patch("skillrank.config.DATA_FILE", str(bad)):
            assert main() == 1
