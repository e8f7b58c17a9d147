"""
Gyroscope rep detection.

A rep is one full down-then-up traversal of the tracked rotation rate:

    NEUTRAL --(rate < -threshold)--> DESCENDING --(rate > +threshold)--> NEUTRAL (+1)

The gap between -threshold and +threshold is the hysteresis band: jitter
around zero never changes state, and a repeated trigger in the direction of
the current state is a no-op.

The transition logic is the pure reducer :func:`step`; :class:`RepDetector`
holds one state value and is what the session controller owns.

Usage:
    detector = RepDetector(DetectorConfig(threshold=1.0))
    detector.reset()
    event = detector.on_sample(rate)   # call each sample
    if event is not None:
        print("rep", event.rep)
"""

import math
from dataclasses import dataclass, replace
from enum import Enum
from typing import Iterable, Optional, Tuple

import numpy as np

from .config import DetectorConfig
from .models import MotionSample


class Phase(str, Enum):
    NEUTRAL = "NEUTRAL"
    DESCENDING = "DESCENDING"


@dataclass(frozen=True)
class DetectorState:
    phase: Phase = Phase.NEUTRAL
    threshold: float = 1.0
    rep_count: int = 0
    last_rep_at: Optional[float] = None
    elapsed: float = 0.0

    @property
    def is_descending(self) -> bool:
        return self.phase is Phase.DESCENDING


@dataclass(frozen=True)
class RepEvent:
    """Emitted when a traversal completes and the count goes up."""

    rep: int
    timestamp: float
    rate: float


def initial_state(config: DetectorConfig) -> DetectorState:
    return DetectorState(threshold=config.threshold)


def step(
    state: DetectorState,
    rate: float,
    config: DetectorConfig,
    timestamp: Optional[float] = None,
) -> Tuple[DetectorState, Optional[RepEvent]]:
    """
    Advance the detector by one sample.

    Args:
        state: Current detector state
        rate: Signed rotation rate on the tracked axis (rad/s)
        config: Detector configuration (oscillation policy, sample rate)
        timestamp: Sample time in seconds. When omitted, time advances by one
            nominal sample interval.

    Returns:
        (new_state, event). ``event`` is a RepEvent when this sample completed
        a counted rep, otherwise None.
    """
    if not math.isfinite(rate):
        return state, None

    now = timestamp if timestamp is not None else state.elapsed + config.sample_interval

    if state.phase is Phase.NEUTRAL:
        if rate < -state.threshold:
            return replace(state, phase=Phase.DESCENDING, elapsed=now), None
        return replace(state, elapsed=now), None

    if rate > state.threshold:
        if (
            config.min_rep_interval > 0
            and state.last_rep_at is not None
            and now - state.last_rep_at < config.min_rep_interval
        ):
            # traversal too soon after the last rep: re-arm without counting
            return replace(state, phase=Phase.NEUTRAL, elapsed=now), None

        reps = state.rep_count + 1
        new_state = replace(state, phase=Phase.NEUTRAL, rep_count=reps, last_rep_at=now, elapsed=now)
        return new_state, RepEvent(rep=reps, timestamp=now, rate=float(rate))

    return replace(state, elapsed=now), None


class RepDetector:
    """Stateful wrapper around :func:`step` for one axis of a gyro stream."""

    def __init__(self, config: Optional[DetectorConfig] = None):
        self.config = config or DetectorConfig()
        self.state = initial_state(self.config)

    def reset(self):
        """Back to NEUTRAL with a zero count. Called at every session start."""
        self.state = initial_state(self.config)

    def on_sample(self, rate: float, timestamp: Optional[float] = None) -> Optional[RepEvent]:
        self.state, event = step(self.state, rate, self.config, timestamp)
        return event

    def on_motion(self, sample: MotionSample) -> Optional[RepEvent]:
        rate = sample.angular_velocity.axis(self.config.axis)
        return self.on_sample(rate, sample.timestamp)

    def current_count(self) -> int:
        return self.state.rep_count

    @property
    def is_descending(self) -> bool:
        return self.state.is_descending

    # Manual edits (tap to add, correct, or zero the count)

    def add_manual(self, n: int = 1) -> int:
        self.state = replace(self.state, rep_count=self.state.rep_count + max(0, int(n)))
        return self.state.rep_count

    def remove_manual(self, n: int = 1) -> int:
        self.state = replace(self.state, rep_count=max(0, self.state.rep_count - max(0, int(n))))
        return self.state.rep_count

    def clear_count(self) -> int:
        self.state = replace(self.state, rep_count=0)
        return 0


def count_reps(
    rates: Iterable[float],
    config: Optional[DetectorConfig] = None,
    timestamps: Optional[Iterable[float]] = None,
) -> int:
    """
    Run a fresh detector over a whole rate series and return the count.

    Without a minimum rep interval the count is computed on the array: samples
    inside the band (and non-finite ones) never change state, so a rep is a
    below-band sample immediately followed, among the out-of-band samples, by an
    above-band one. With an interval the series goes through :func:`step`.
    """
    config = config or DetectorConfig()
    values = np.asarray(list(rates), dtype=np.float64)
    times = None if timestamps is None else np.asarray(list(timestamps), dtype=np.float64)
    if times is not None and times.shape != values.shape:
        raise ValueError("timestamps must match rates in length")

    if config.min_rep_interval <= 0:
        finite = values[np.isfinite(values)]
        side = np.sign(finite) * (np.abs(finite) > config.threshold)
        side = side[side != 0]
        return int(np.count_nonzero((side[:-1] < 0) & (side[1:] > 0)))

    state = initial_state(config)
    for i, rate in enumerate(values):
        t = None if times is None else float(times[i])
        state, _event = step(state, float(rate), config, t)
    return state.rep_count
