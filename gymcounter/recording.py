"""
Raw gyro recordings.

Recordings are JSONL files, one sample per line:

    {"t": 0.02, "gx": -1.31, "gy": 0.04, "gz": 0.11}

They are used to replay a set through the detector offline and to tune the
threshold. Helpers here also check that a recording was captured at the rate
the detector expects.
"""

import json
import math
import os
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

import numpy as np

from .errors import RecordingError
from .models import MotionSample

UNITS = ("rad", "deg")


def deg_to_rad(degrees: float) -> float:
    """Convert degrees to radians."""
    return degrees * math.pi / 180.0


def rad_to_deg(radians: float) -> float:
    """Convert radians to degrees."""
    return radians * 180.0 / math.pi


def sample_to_dict(sample: MotionSample) -> Dict[str, float]:
    av = sample.angular_velocity
    return {
        "t": round(float(sample.timestamp), 4),
        "gx": float(av.x),
        "gy": float(av.y),
        "gz": float(av.z),
    }


def save_recording(path: Union[str, Path], samples: Iterable[MotionSample]) -> Path:
    """Write samples as JSONL, atomically."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = str(path) + ".tmp"
    with open(tmp, "w", encoding="utf-8") as f:
        for sample in samples:
            f.write(json.dumps(sample_to_dict(sample)) + "\n")
    os.replace(tmp, path)
    return path


def load_recording(path: Union[str, Path], units: str = "rad") -> List[MotionSample]:
    """
    Read a JSONL recording.

    Args:
        path: Recording file
        units: ``rad`` for rad/s (default) or ``deg`` for deg/s input

    Returns:
        Samples in file order. Lines that are not valid samples are skipped.
    """
    if units not in UNITS:
        raise ValueError(f"units must be one of {UNITS}")
    path = Path(path)
    if not path.exists():
        raise RecordingError(f"recording not found: {path}")

    scale = deg_to_rad(1.0) if units == "deg" else 1.0
    samples = []
    with open(path, "r", encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            try:
                msg = json.loads(line)
                t = float(msg["t"])
                gx = float(msg.get("gx", 0.0)) * scale
                gy = float(msg.get("gy", 0.0)) * scale
                gz = float(msg.get("gz", 0.0)) * scale
            except (ValueError, KeyError, TypeError):
                continue
            samples.append(MotionSample.from_rates(t, gx, gy, gz))
    return samples


def estimate_sample_rate(samples: Sequence[MotionSample]) -> Optional[float]:
    """
    Estimate the sample rate from timestamps.

    Returns:
        Estimated sample rate in Hz, or None if cannot determine
    """
    if len(samples) < 2:
        return None

    duration = samples[-1].timestamp - samples[0].timestamp
    if duration <= 0:
        return None

    return (len(samples) - 1) / duration


def validate_sample_rate(
    samples: Sequence[MotionSample],
    expected_hz: float,
    tolerance_pct: float = 10.0,
) -> Dict[str, Any]:
    """
    Validate that a recording's sample rate matches the expected rate.

    Returns:
        Dict with validation results:
        {
            "valid": bool,
            "estimated_hz": float,
            "deviation_pct": float,
            "jitter_ms": float (std dev of sample intervals)
        }
    """
    estimated = estimate_sample_rate(samples)
    if estimated is None:
        return {
            "valid": False,
            "estimated_hz": None,
            "deviation_pct": None,
            "jitter_ms": None,
            "error": "Need at least 2 samples spanning a positive duration",
        }

    deviation_pct = abs(estimated - expected_hz) / expected_hz * 100.0

    times = np.asarray([s.timestamp for s in samples], dtype=np.float64)
    jitter_ms = float(np.std(np.diff(times))) * 1000.0

    return {
        "valid": deviation_pct <= tolerance_pct,
        "estimated_hz": round(estimated, 2),
        "deviation_pct": round(deviation_pct, 2),
        "jitter_ms": round(jitter_ms, 3),
    }
