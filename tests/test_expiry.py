"""Tests for the skill score expiry sweeper."""

import threading
from datetime import timedelta
from unittest.mock import MagicMock

from skillrank.schemas.events import SkillScoreExpired
from skillrank.services.expiry import ExpirySweeper
from skillrank.skills.table import SkillScoreTable
from tests.test_utils import NOW, MutableClock, make_test_requirement, make_test_score


class TestSweepOnce:
    def test_first_sweep_reports_all_lapsed(self):
        table = SkillScoreTable()
        table.record(make_test_score("c1", "python", 80, expires_at=NOW - timedelta(hours=1)))
        table.record(make_test_score("c2", "python", 80))
        submit = MagicMock()

        events = ExpirySweeper(table, submit, clock=MutableClock(NOW)).sweep_once()

        assert events == [SkillScoreExpired(candidate_id="c1", skill_id="python")]
        submit.assert_called_once_with(events[0])

    def test_each_expiry_reported_once(self):
        table = SkillScoreTable()
        table.record(make_test_score("c1", "python", 80, expires_at=NOW + timedelta(hours=1)))
        clock = MutableClock(NOW)
        submit = MagicMock()
        sweeper = ExpirySweeper(table, submit, clock=clock)

        assert sweeper.sweep_once() == []
        clock.advance(hours=2)
        assert len(sweeper.sweep_once()) == 1
        clock.advance(hours=2)
        assert sweeper.sweep_once() == []
        assert submit.call_count == 1

    def test_expired_match_leaves_rankings(self, system, fake_store, clock):
        system.requirements.set_requirements("j1", [make_test_requirement("j1", "python")])
        system.skill_scores.record(
            make_test_score("c1", "python", 95, expires_at=NOW + timedelta(hours=1))
        )
        system.skill_scores.record(make_test_score("c2", "python", 70))
        assert system.coordinator.wait_idle(10)
        assert fake_store.get_match("j1", "c1").rank == 1

        system.sweeper.sweep_once()
        clock.advance(hours=2)
        system.sweeper.sweep_once()
        assert system.coordinator.wait_idle(10)

        c1 = fake_store.get_match("j1", "c1")
        assert not c1.eligible
        assert c1.standing.unmet_skills == ["python"]
        assert fake_store.get_match("j1", "c2").rank == 1


class TestBackgroundLoop:
    def test_start_and_stop(self):
        table = SkillScoreTable()
        table.record(make_test_score("c1", "python", 80, expires_at=NOW - timedelta(hours=1)))
        swept = threading.Event()

        def submit(event):
            swept.set()

        sweeper = ExpirySweeper(table, submit, interval=0.01, clock=MutableClock(NOW))
        sweeper.start()
        try:
            assert swept.wait(5)
        finally:
            sweeper.stop(timeout=5)

        assert sweeper.last_sweep == NOW

    def test_loop_survives_sweep_errors(self):
        table = SkillScoreTable()
        table.record(make_test_score("c1", "python", 80, expires_at=NOW - timedelta(hours=1)))
        calls = []
        recovered = threading.Event()

        def submit(event):
            calls.append(event)
            if len(calls) == 1:
                raise RuntimeError("coordinator busy")
            recovered.set()

        sweeper = ExpirySweeper(table, submit, interval=0.01, clock=MutableClock(NOW))
        sweeper.start()
        try:
            assert recovered.wait(5)
        finally:
            sweeper.stop(timeout=5)
