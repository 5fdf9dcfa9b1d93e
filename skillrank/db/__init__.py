"""Database connection module."""

from skillrank.db.connection import get_connection, init_tables
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

__all__ = [
    "get_connection",
    "init_tables",
    "SqlMatchStore",
    "upsert_match",
    "delete_match",
    "update_ranks",
    "update_status",
    "get_match",
    "get_matches_for_job",
    "get_matches_for_candidate",
    "count_matches",
    "get_job_ids",
]
