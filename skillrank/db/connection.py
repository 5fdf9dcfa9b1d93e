"""Database connection factory for SQLite (local) and PostgreSQL (cloud)."""

import math
import sqlite3
from collections.abc import Generator
from contextlib import contextmanager
from typing import Any

import psycopg2
import psycopg2.errors
from psycopg2.extras import RealDictCursor

from skillrank.config import DATA_DIR, DATABASE_URL, DB_PATH, STORE_TIMEOUT_SECONDS
from skillrank.utils import StoreTimeoutError


class DatabaseConnection:
    """Wrapper for database connections that provides a consistent interface."""

    def __init__(self, conn: Any, is_postgres: bool = False):
        self.conn = conn
        self.is_postgres = is_postgres
        self._cursor = None

    def cursor(self, dictionary: bool = False) -> Any:
        """Get a cursor for executing database operations.

        Args:
            dictionary: If True, rows are returned as dict-like objects
                (RealDictCursor on PostgreSQL, sqlite3.Row on SQLite).

        Returns:
            Database cursor object for executing queries and fetching results.
        """
        if self.is_postgres:
            self._cursor = self.conn.cursor(cursor_factory=RealDictCursor if dictionary else None)
        else:
            self._cursor = self.conn.cursor()
            if dictionary:
                self.conn.row_factory = sqlite3.Row
        return self._cursor

    def commit(self) -> None:
        """Commit the transaction."""
        self.conn.commit()

    def rollback(self) -> None:
        """Roll back the current transaction."""
        self.conn.rollback()

    def close(self) -> None:
        """Close the connection."""
        if self._cursor:
            self._cursor.close()
        self.conn.close()

    @property
    def placeholder(self) -> str:
        """Return the parameter placeholder for this database."""
        return "%s" if self.is_postgres else "?"


def _is_timeout(error: Exception) -> bool:
    if isinstance(error, psycopg2.errors.QueryCanceled):
        return True
    if isinstance(error, sqlite3.OperationalError):
        message = str(error).lower()
        return "locked" in message or "busy" in message
    return False


@contextmanager
def get_connection() -> Generator[DatabaseConnection, None, None]:
    """Get a database connection bounded by STORE_TIMEOUT_SECONDS.

    Uses PostgreSQL if DATABASE_URL is set, otherwise falls back to SQLite.
    An error inside the block rolls back the open transaction; lock waits
    and cancelled statements surface as StoreTimeoutError.

    Yields:
        DatabaseConnection wrapper with consistent interface.
    """
    try:
        if DATABASE_URL:
            conn = psycopg2.connect(
                DATABASE_URL,
                connect_timeout=max(1, math.ceil(STORE_TIMEOUT_SECONDS)),
                options=f"-c statement_timeout={int(STORE_TIMEOUT_SECONDS * 1000)}",
            )
            db = DatabaseConnection(conn, is_postgres=True)
        else:
            DATA_DIR.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(
                DB_PATH, timeout=STORE_TIMEOUT_SECONDS, check_same_thread=False
            )
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute(f"PRAGMA busy_timeout={int(STORE_TIMEOUT_SECONDS * 1000)}")
            conn.row_factory = sqlite3.Row
            db = DatabaseConnection(conn, is_postgres=False)
    except psycopg2.OperationalError as e:
        raise StoreTimeoutError(f"Could not connect to database: {e}") from e

    try:
        yield db
    except Exception as e:
        db.rollback()
        if _is_timeout(e):
            raise StoreTimeoutError(
                f"Store call exceeded {STORE_TIMEOUT_SECONDS}s: {e}"
            ) from e
        raise
    finally:
        db.close()


def init_tables() -> None:
    """Initialize database tables.

    Creates all required tables if they don't exist.
    Uses appropriate syntax for PostgreSQL or SQLite.
    """
    with get_connection() as db:
        if db.is_postgres:
            _init_postgres_tables(db)
        else:
            _init_sqlite_tables(db)
        db.commit()


def _init_postgres_tables(db: DatabaseConnection) -> None:
    """Create PostgreSQL tables."""
    cursor = db.cursor()

    # One row per (job, candidate) pair
    cursor.execute("""
        CREATE TABLE IF NOT EXISTS job_matches (
            job_id TEXT NOT NULL,
            candidate_id TEXT NOT NULL,
            overall_score NUMERIC(5, 2) NOT NULL,
            eligible BOOLEAN NOT NULL,
            match_rank INTEGER,
            percentile NUMERIC(5, 2),
            ineligible_reason TEXT,
            unmet_skills JSONB,
            skill_breakdown JSONB NOT NULL,
            status TEXT NOT NULL DEFAULT 'matched' CHECK (status IN
                ('matched', 'viewed', 'contacted', 'shortlisted', 'rejected', 'hired')),
            computed_at TIMESTAMPTZ NOT NULL,
            first_eligible_at TIMESTAMPTZ,
            viewed_at TIMESTAMPTZ,
            contacted_at TIMESTAMPTZ,
            created_at TIMESTAMPTZ DEFAULT NOW(),
            updated_at TIMESTAMPTZ,
            PRIMARY KEY (job_id, candidate_id)
        )
    """)

    cursor.execute("""
        CREATE INDEX IF NOT EXISTS idx_job_matches_rank
        ON job_matches(job_id, match_rank)
    """)
    cursor.execute("""
        CREATE INDEX IF NOT EXISTS idx_job_matches_candidate_id
        ON job_matches(candidate_id)
    """)


def _init_sqlite_tables(db: DatabaseConnection) -> None:
    """Create SQLite tables (for local development/testing)."""
    cursor = db.cursor()

    # One row per (job, candidate) pair
    cursor.execute("""
        CREATE TABLE IF NOT EXISTS job_matches (
            job_id TEXT NOT NULL,
            candidate_id TEXT NOT NULL,
            overall_score REAL NOT NULL,
            eligible INTEGER NOT NULL,
            match_rank INTEGER,
            percentile REAL,
            ineligible_reason TEXT,
            unmet_skills TEXT,
            skill_breakdown TEXT NOT NULL,
            status TEXT NOT NULL DEFAULT 'matched',
            computed_at TEXT NOT NULL,
            first_eligible_at TEXT,
            viewed_at TEXT,
            contacted_at TEXT,
            created_at TEXT DEFAULT CURRENT_TIMESTAMP,
            updated_at TEXT,
            PRIMARY KEY (job_id, candidate_id)
        )
    """)

    cursor.execute("""
        CREATE INDEX IF NOT EXISTS idx_job_matches_rank
        ON job_matches(job_id, match_rank)
    """)
    cursor.execute("""
        CREATE INDEX IF NOT EXISTS idx_job_matches_candidate_id
        ON job_matches(candidate_id)
    """)
