"""
Configuration for gymcounter.

Constants mirror the phone's motion pipeline (50 Hz gyro, 1.0 rad/s
hysteresis). Every value can be overridden through a GYMCOUNTER_* environment
variable, read once at import time.
"""

import logging
import math
import os
from dataclasses import dataclass
from pathlib import Path

# =============================================================================
# Sampling / Detection
# =============================================================================

SAMPLE_RATE_HZ = 50.0
SAMPLE_INTERVAL_SEC = 1.0 / SAMPLE_RATE_HZ

DEFAULT_THRESHOLD = 1.0  # rad/s
DEFAULT_AXIS = "x"
AXES = ("x", "y", "z")

THRESHOLD = float(os.getenv("GYMCOUNTER_THRESHOLD", str(DEFAULT_THRESHOLD)))
AXIS = os.getenv("GYMCOUNTER_AXIS", DEFAULT_AXIS).strip().lower()
MIN_REP_INTERVAL_SEC = float(os.getenv("GYMCOUNTER_MIN_REP_INTERVAL", "0.0"))

# =============================================================================
# Storage / Server
# =============================================================================

HOST = os.getenv("GYMCOUNTER_HOST", "0.0.0.0")
PORT = int(os.getenv("GYMCOUNTER_PORT", "8765"))

DATA_DIR = Path(os.getenv("GYMCOUNTER_DATA_DIR", str(Path.home() / ".gymcounter"))).expanduser()

DAILY_GOAL_REPS = max(1, int(os.getenv("GYMCOUNTER_DAILY_GOAL", "100")))

LOG_LEVEL = os.getenv("GYMCOUNTER_LOG_LEVEL", "INFO").upper()
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@dataclass(frozen=True)
class DetectorConfig:
    """Parameters of the rep detector.

    Attributes:
        threshold: Hysteresis magnitude (rad/s). The tracked rate must drop
            below ``-threshold`` to start a rep and rise above ``+threshold``
            to complete it.
        axis: Gyro axis to track, one of ``x``, ``y``, ``z``.
        sample_rate_hz: Nominal sensor rate, used to derive elapsed time when
            samples carry no timestamp.
        min_rep_interval: Oscillation policy. ``0.0`` counts every full
            down-then-up traversal; a positive value ignores traversals that
            complete sooner than this many seconds after the last counted rep.
    """

    threshold: float = DEFAULT_THRESHOLD
    axis: str = DEFAULT_AXIS
    sample_rate_hz: float = SAMPLE_RATE_HZ
    min_rep_interval: float = 0.0

    def __post_init__(self):
        if not math.isfinite(self.threshold) or self.threshold <= 0:
            raise ValueError("threshold must be a positive finite number")
        if self.axis not in AXES:
            raise ValueError(f"axis must be one of {AXES}, got {self.axis!r}")
        if not math.isfinite(self.sample_rate_hz) or self.sample_rate_hz <= 0:
            raise ValueError("sample_rate_hz must be positive")
        if not math.isfinite(self.min_rep_interval) or self.min_rep_interval < 0:
            raise ValueError("min_rep_interval must be >= 0")

    @property
    def sample_interval(self) -> float:
        return 1.0 / self.sample_rate_hz

    def as_dict(self) -> dict:
        return {
            "threshold": self.threshold,
            "axis": self.axis,
            "sample_rate_hz": self.sample_rate_hz,
            "min_rep_interval_sec": self.min_rep_interval,
        }


def load_detector_config(**overrides) -> DetectorConfig:
    """Build a DetectorConfig from the environment, with keyword overrides."""
    values = {
        "threshold": THRESHOLD,
        "axis": AXIS,
        "sample_rate_hz": SAMPLE_RATE_HZ,
        "min_rep_interval": MIN_REP_INTERVAL_SEC,
    }
    values.update({k: v for k, v in overrides.items() if v is not None})
    return DetectorConfig(**values)


def configure_logging(level: str = LOG_LEVEL):
    logging.basicConfig(level=getattr(logging, level, logging.INFO), format=LOG_FORMAT)
