"""
Runtime configuration for the vehicle forecast service.

Values are read once from the environment at import time.  A ``.env`` file
in the working directory is loaded first, so local overrides do not need to
be exported in the shell.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import List

from dotenv import load_dotenv

load_dotenv()


def _env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_list(name: str, default: str) -> List[str]:
    raw = os.getenv(name, default)
    return [item.strip() for item in raw.split(",") if item.strip()]


PORT = int(os.getenv("PORT", "5000"))
HOST = os.getenv("HOST", "0.0.0.0")
CORS_ORIGINS = _env_list("CORS_ORIGIN", "*")
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./vehicle_forecast.db")
SEED_DATA = _env_flag("SEED_DATA", True)
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

DEFAULT_SOURCE_NAME = "database"


def configure_logging(level: str = LOG_LEVEL) -> None:
    """Attach a single stream handler to the package logger."""
    logger = logging.getLogger("vehicle_forecast")
    logger.setLevel(level)
    if logger.handlers:
        return
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s")
    )
    logger.addHandler(handler)
