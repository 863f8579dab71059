# backend/parkspace/config.py
import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env only if DATABASE_URL isn't already set (local dev)
if not os.getenv("DATABASE_URL"):
    load_dotenv(dotenv_path=Path(__file__).resolve().parents[1] / ".env")

# Empty -> in-memory store
DATABASE_URL = os.getenv("DATABASE_URL", "")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
DEFAULT_PRICE_PER_HOUR = float(os.getenv("DEFAULT_PRICE_PER_HOUR", "20"))
