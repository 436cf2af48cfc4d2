"""Global configuration for the resurfacing engine."""

import os
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()

# Storage
DATA_DIR = Path(os.getenv("RESURFACING_DATA_DIR", Path(os.getenv("LOCALAPPDATA", ".")) / "resurfacing"))
RESURFACING_DB = os.getenv("RESURFACING_DB", str(DATA_DIR / "resurfacing.db"))

# Time of day used for quiet hours and preferred hours
TIMEZONE = os.getenv("RESURFACING_TIMEZONE", "UTC")

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_DIR = Path(os.getenv("RESURFACING_LOG_DIR", DATA_DIR / "logs"))
LOG_DIR.mkdir(parents=True, exist_ok=True)
