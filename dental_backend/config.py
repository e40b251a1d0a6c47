from __future__ import annotations

import logging
import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# SQLite file in the project root unless DATABASE_URL points elsewhere
DB_PATH = Path(__file__).resolve().parents[1] / "dental_practice.sqlite"
DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{DB_PATH}")

# In production: set it in the environment
JWT_SECRET = os.getenv("JWT_SECRET", "CHANGE_ME_DEV_SECRET")
JWT_ALG = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("JWT_EXPIRE_MINUTES", "60"))


def _env_flag(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


# Appointment status: membership-only unless the clinic wants the chronological graph enforced
STRICT_APPOINTMENT_TRANSITIONS = _env_flag("STRICT_APPOINTMENT_TRANSITIONS")

# Public referral intake: hits per caller address per window
INTAKE_RATE_LIMIT_MAX = int(os.getenv("INTAKE_RATE_LIMIT_MAX", "10"))
INTAKE_RATE_LIMIT_WINDOW_SECONDS = int(os.getenv("INTAKE_RATE_LIMIT_WINDOW_SECONDS", "3600"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
# Log every SQL statement (engine echo)
SQL_ECHO = _env_flag("SQL_ECHO")


def configure_logging(level: str | None = None) -> None:
    logging.basicConfig(
        level=(level or LOG_LEVEL).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
