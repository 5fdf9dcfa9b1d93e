"""Service layer for skillrank operations."""

from skillrank.services.expiry import ExpirySweeper
from skillrank.services.ingest_service import load_dataset
from skillrank.services.match_service import MatchingSystem, MatchService, build_system
from skillrank.services.recompute import CycleReport, RecomputeCoordinator, RecomputeFailure

__all__ = [
    "load_dataset",
    "build_system",
    "MatchingSystem",
    "MatchService",
    "RecomputeCoordinator",
    "RecomputeFailure",
    "CycleReport",
    "ExpirySweeper",
]
