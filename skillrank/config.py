import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# Paths (local development only)
DATA_DIR = Path(os.getenv("SKILLRANK_DATA_DIR", "data"))
DB_PATH = DATA_DIR / "skillrank.db"

# Database (PostgreSQL when set, SQLite otherwise)
DATABASE_URL = os.getenv("DATABASE_URL")

# Every store call is bounded by this timeout
STORE_TIMEOUT_SECONDS = float(os.getenv("STORE_TIMEOUT_SECONDS", "5.0"))

# Recompute worker pool
RECOMPUTE_WORKERS = int(os.getenv("RECOMPUTE_WORKERS", "4"))

# Retry settings for collaborator and store calls
RETRY_MAX_ATTEMPTS = int(os.getenv("RETRY_MAX_ATTEMPTS", "4"))
RETRY_BASE_DELAY = float(os.getenv("RETRY_BASE_DELAY", "0.5"))
RETRY_MAX_DELAY = float(os.getenv("RETRY_MAX_DELAY", "10.0"))

# Skill scores
SKILL_SCORE_VALIDITY_DAYS = int(os.getenv("SKILL_SCORE_VALIDITY_DAYS", "365"))
EXPIRY_SWEEP_INTERVAL_SECONDS = float(os.getenv("EXPIRY_SWEEP_INTERVAL_SECONDS", "300"))

# Matching settings
SCORE_DECIMALS = 2  # Matches DECIMAL(5, 2) columns
DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100
SUMMARY_TOP_N = 10

# Dataset consumed by the scheduled runner
DATA_FILE = os.getenv("SKILLRANK_DATA_FILE")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
