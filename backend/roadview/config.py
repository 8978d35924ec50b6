"""
Loader and playback configuration.

Defaults can be overridden through ROADVIEW_* environment variables. A
LoaderConfig is passed explicitly into every session load.
"""

import os
from dataclasses import dataclass


DEFAULT_SERVER_URL = "http://localhost:8081"
SOURCE_ENV = "ROADVIEW_SOURCE"


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except ValueError:
        return default


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        return default


MAX_FRAMES = _env_int("ROADVIEW_MAX_FRAMES", 500)
MATCH_TOLERANCE_S = _env_float("ROADVIEW_MATCH_TOLERANCE_S", 5.0)
MIN_TIMESTAMP_COVERAGE = _env_float("ROADVIEW_MIN_TIMESTAMP_COVERAGE", 0.5)
REQUEST_TIMEOUT_S = _env_float("ROADVIEW_REQUEST_TIMEOUT_S", 10.0)
SYNTHETIC_FALLBACK = os.getenv("ROADVIEW_SYNTHETIC_FALLBACK", "1") not in ("0", "false", "False")
BASE_PERIOD_S = _env_float("ROADVIEW_BASE_PERIOD_S", 1.0)
MIN_PERIOD_S = _env_float("ROADVIEW_MIN_PERIOD_S", 0.05)


@dataclass(frozen=True)
class LoaderConfig:
    """Settings for one session load."""

    max_frames: int = MAX_FRAMES
    match_tolerance_s: float = MATCH_TOLERANCE_S
    min_timestamp_coverage: float = MIN_TIMESTAMP_COVERAGE
    request_timeout_s: float = REQUEST_TIMEOUT_S

    synthetic_fallback: bool = SYNTHETIC_FALLBACK
    synthetic_points: int = 20
    synthetic_interval_s: float = 1.0
    synthetic_seed: int = 7
    synthetic_center: tuple[float, float] = (37.5665, 126.9780)

    def __post_init__(self):
        if self.max_frames < 1:
            raise ValueError(f"max_frames must be >= 1, got {self.max_frames}")
        if self.match_tolerance_s < 0:
            raise ValueError(f"match_tolerance_s must be >= 0, got {self.match_tolerance_s}")


@dataclass(frozen=True)
class PlaybackConfig:
    """Timer settings for the playback controller (seconds)."""

    base_period_s: float = BASE_PERIOD_S
    min_period_s: float = MIN_PERIOD_S
