"""Cron entrypoint for scheduled execution.

This module runs the full skillrank pipeline when triggered by a scheduler:

1. LOAD: Read the dataset at SKILLRANK_DATA_FILE into the skill and requirement tables
2. REBUILD: Recompute every job's matches and ranks into the match store
3. SWEEP: Raise expiry events for skill scores that lapsed, so stale matches leave the rankings

Results are persisted in the database and can be read later via:
- CLI: `skillrank matches JOB_ID`
- Direct DB query: SELECT * FROM job_matches WHERE job_id = '...' ORDER BY match_rank
"""

import logging
import sys
import time
from pathlib import Path

from skillrank.config import LOG_LEVEL

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def main() -> int:
    """Main scheduled job execution.

    Returns:
        Exit code (0 for success, 1 for failure).
    """
    start_time = time.time()
    logger.info("Starting skillrank scheduled runner")

    try:
        from skillrank.config import DATA_FILE
        from skillrank.db.connection import init_tables

        if not DATA_FILE:
            logger.error("SKILLRANK_DATA_FILE is not set; nothing to load")
            return 1

        logger.info("Initializing database tables")
        init_tables()

        from skillrank.services.ingest_service import load_dataset
        from skillrank.services.match_service import build_system

        failures = []
        system = build_system(on_failure=failures.append)
        with system.coordinator:
            # Step 1: Load the dataset (table listeners schedule recomputes)
            logger.info("Step 1/3: Loading dataset")
            stats = load_dataset(Path(DATA_FILE), system.skill_scores, system.requirements)
            logger.info(f"Load complete: {stats}")
            system.coordinator.wait_idle()

            # Step 2: Full rebuild of every job
            logger.info("Step 2/3: Rebuilding job rankings")
            for job_id in system.requirements.job_ids():
                system.coordinator.rebuild_job(job_id)

            # Step 3: Sweep expired skill scores
            logger.info("Step 3/3: Sweeping expired skill scores")
            expired = system.sweeper.sweep_once()
            system.coordinator.wait_idle()
            logger.info(f"Sweep raised {len(expired)} expiry events")

        elapsed = time.time() - start_time
        if failures:
            logger.error(f"Scheduled runner finished with {len(failures)} recompute failures")
            return 1
        logger.info(f"Scheduled runner completed successfully in {elapsed:.2f}s")
        return 0

    except Exception as e:
        logger.exception(f"Scheduled runner failed with error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
