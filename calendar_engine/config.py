"""Environment-driven settings for the calendar engine.

Values are read from the process environment after loading an optional
``.env`` file, so a deployment can tune defaults without code changes.
"""

import logging
import os
from dataclasses import dataclass
from functools import lru_cache

from dotenv import load_dotenv

# Configure module logger
logger = logging.getLogger(__name__)

# Load environment variables
load_dotenv()

CANONICAL_TIMEZONE = "UTC"


@dataclass(frozen=True)
class EngineSettings:
    """Tunable defaults for the engine.

    Attributes:
        default_timezone: Zone used when a calendar is created without one.
        default_occurrences: Occurrence count applied to recurring events that
            specify neither a count nor an end date.
        early_hour_cutoff: Canonical hour before which an event starting on the
            following day is still reported for the queried date.
        log_level: Logging level name for the API entry point.
    """
    default_timezone: str = "America/New_York"
    default_occurrences: int = 10
    early_hour_cutoff: int = 6
    log_level: str = "INFO"

    def __post_init__(self):
        if self.default_occurrences <= 0:
            raise ValueError("default_occurrences must be positive")
        if not 0 <= self.early_hour_cutoff <= 23:
            raise ValueError("early_hour_cutoff must be between 0 and 23")


def _int_from_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"Environment variable {name} must be an integer, got '{raw}'")


def load_settings() -> EngineSettings:
    """Build settings from the environment.

    Returns:
        A validated EngineSettings instance.

    Raises:
        ValueError: If an environment value is malformed or out of range.
    """
    settings = EngineSettings(
        default_timezone=os.getenv("CALENDAR_DEFAULT_TIMEZONE", "America/New_York"),
        default_occurrences=_int_from_env("CALENDAR_DEFAULT_OCCURRENCES", 10),
        early_hour_cutoff=_int_from_env("CALENDAR_EARLY_HOUR_CUTOFF", 6),
        log_level=os.getenv("CALENDAR_LOG_LEVEL", "INFO").upper(),
    )
    logger.debug(f"Loaded engine settings: {settings}")
    return settings


@lru_cache(maxsize=1)
def get_settings() -> EngineSettings:
    """Return the process-wide settings, loading them on first use."""
    return load_settings()
