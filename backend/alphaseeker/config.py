"""Application configuration."""

import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent
DB_PATH = BASE_DIR / "data" / "alphaseeker.db"
DATABASE_URL = os.getenv("DATABASE_URL") or f"sqlite+aiosqlite:///{DB_PATH}"

# Price lookup cache (in-memory)
PRICE_CACHE_TTL = int(os.getenv("PRICE_CACHE_TTL", "300"))  # seconds

# Price lookup settings
LOOKUP_TIMEOUT = float(os.getenv("LOOKUP_TIMEOUT", "8"))  # pingzhongdata files are large
LOOKUP_DELAY = float(os.getenv("LOOKUP_DELAY", "0.1"))  # pause between sequential lookups

# Scheduler (weekdays, local time)
SNAPSHOT_TIME = os.getenv("SNAPSHOT_TIME", "15:05")  # after A-share close
PRICE_REFRESH_TIME = os.getenv("PRICE_REFRESH_TIME", "20:30")  # official NAV published

# Ensure data directory exists (only needed for local SQLite, skip if DATABASE_URL is overridden)
if not os.getenv("DATABASE_URL"):
    DB_PATH.parent.mkdir(parents=True, exist_ok=True)
