"""Shared pytest fixtures for all tests."""

from unittest.mock import patch

import pytest

from skillrank.jobs.requirements import JobRequirementTable
from skillrank.services.match_service import build_system
from skillrank.skills.table import SkillScoreTable
from tests.test_utils import NOW, FakeMatchStore, MutableClock, no_sleep


@pytest.fixture
def temp_db(tmp_path):
    """Create a temporary database for testing.

    Patches DB_PATH and DATA_DIR at the connection module level.
    """
    db_path = tmp_path / "test.db"
    data_dir = tmp_path

    # Patch at db.connection where they're used at runtime
    with (
        patch("skillrank.db.connection.DB_PATH", db_path),
        patch("skillrank.db.connection.DATA_DIR", data_dir),
        patch("skillrank.db.connection.DATABASE_URL", None),  # Force SQLite
    ):
        from skillrank.db.connection import init_tables

        init_tables()
        yield db_path


@pytest.fixture
def clock():
    """Controllable clock starting at NOW."""
    return MutableClock(NOW)


@pytest.fixture
def skill_table():
    return SkillScoreTable()


@pytest.fixture
def requirement_table():
    return JobRequirementTable()


@pytest.fixture
def fake_store():
    return FakeMatchStore()


@pytest.fixture
def alerts():
    """Recompute failures delivered to the alert callback."""
    return []


@pytest.fixture
def system(fake_store, clock, alerts):
    """Wired matching system over an in-memory store, retries without sleeping."""
    wired = build_system(
        store=fake_store,
        clock=clock,
        on_failure=alerts.append,
        workers=4,
        base_delay=0.0,
        sleep=no_sleep,
    )
    yield wired
    wired.coordinator.shutdown()


@pytest.fixture
def sql_system(temp_db, clock, alerts):
    """Wired matching system over the temporary SQLite database."""
    wired = build_system(
        clock=clock,
        on_failure=alerts.append,
        workers=2,
        base_delay=0.0,
        sleep=no_sleep,
    )
    yield wired
    wired.coordinator.shutdown()
