# tablestats/core/config.py
"""Runtime configuration read from the environment (and an optional .env file)."""

import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./tablestats.db")
APPLICATION_ID = os.environ.get("APPLICATION_ID", "Unknown")

# Maximum number of distinct group-by combinations before a grouping request is rejected
MAX_GROUP_POINTS = int(os.getenv("MAX_GROUP_POINTS", "5000"))


@dataclass(frozen=True)
class ThresholdConfig:
    """Tunable limits for the query services."""

    max_group_points: int = MAX_GROUP_POINTS


def get_threshold_config() -> ThresholdConfig:
    """Threshold configuration dependency."""
    return ThresholdConfig()
