"""
Motion sample sources.

A source delivers MotionSample values to subscribed callbacks on the event
loop thread, strictly in arrival order. Unsubscribing deactivates the handle
immediately, so a callback never fires after its subscription was cancelled.

Sources:
- PushSource: samples pushed by the caller (tests, bridges from other APIs)
- ReplaySource: a recorded list of samples, fed on demand or paced in time
- PollingSource: polls a gyro read function at the sample rate (asyncio)
- UnavailableSource: a device without a gyroscope
"""

import asyncio
import itertools
import logging
import time
from typing import Callable, List, Optional, Sequence, Tuple

from .config import SAMPLE_RATE_HZ
from .models import MotionSample

logger = logging.getLogger(__name__)

SampleCallback = Callable[[MotionSample], None]

MAX_CONSECUTIVE_FAILURES = 10

_handle_ids = itertools.count(1)


class SubscriptionHandle:
    """Token returned by subscribe(); inactive once cancelled."""

    def __init__(self, callback: SampleCallback):
        self.id = next(_handle_ids)
        self.callback = callback
        self.active = True

    def cancel(self):
        self.active = False

    def __repr__(self):
        return f"SubscriptionHandle(id={self.id}, active={self.active})"


class MotionSampleSource:
    """Base class holding subscriber bookkeeping for concrete sources."""

    def __init__(self):
        self._handles: List[SubscriptionHandle] = []

    def is_available(self) -> bool:
        return True

    def subscribe(self, callback: SampleCallback) -> SubscriptionHandle:
        handle = SubscriptionHandle(callback)
        self._handles.append(handle)
        return handle

    def unsubscribe(self, handle: Optional[SubscriptionHandle]):
        if handle is None:
            return
        handle.cancel()
        if handle in self._handles:
            self._handles.remove(handle)

    @property
    def subscriber_count(self) -> int:
        return sum(1 for h in self._handles if h.active)

    def _deliver(self, sample: MotionSample) -> int:
        delivered = 0
        for handle in list(self._handles):
            # a callback may cancel later handles; re-check each one
            if handle.active:
                handle.callback(sample)
                delivered += 1
        return delivered


class PushSource(MotionSampleSource):
    """Caller-driven source. Samples emitted with no subscriber are dropped."""

    def __init__(self, sample_rate_hz: float = SAMPLE_RATE_HZ):
        super().__init__()
        self.dt = 1.0 / sample_rate_hz
        self._t = 0.0

    def emit(self, sample: MotionSample) -> int:
        self._t = sample.timestamp
        return self._deliver(sample)

    def emit_rate(self, rate: float, timestamp: Optional[float] = None, axis: str = "x") -> int:
        """Emit a single-axis reading; the other axes read 0."""
        if timestamp is None:
            timestamp = self._t + self.dt
        rates = {"gx": 0.0, "gy": 0.0, "gz": 0.0}
        rates["g" + axis] = float(rate)
        return self.emit(MotionSample.from_rates(timestamp, **rates))


class UnavailableSource(MotionSampleSource):
    """Stand-in for hardware without a gyroscope. Never delivers samples."""

    def __init__(self, reason: str = "gyro_not_available"):
        super().__init__()
        self.reason = reason

    def is_available(self) -> bool:
        return False


class ReplaySource(MotionSampleSource):
    """
    Replays recorded samples.

    Usage:
        source = ReplaySource(load_recording("set1.jsonl"))
        source.feed(10)               # deliver the next 10 samples now
        await source.play(realtime=True)  # deliver the rest at the sample rate
    """

    def __init__(self, samples: Sequence[MotionSample], sample_rate_hz: float = SAMPLE_RATE_HZ):
        super().__init__()
        self.samples = list(samples)
        self.dt = 1.0 / sample_rate_hz
        self.cursor = 0

    @property
    def remaining(self) -> int:
        return len(self.samples) - self.cursor

    def rewind(self):
        self.cursor = 0

    def feed(self, count: Optional[int] = None) -> int:
        """Deliver up to ``count`` samples synchronously. Returns how many were fed."""
        end = len(self.samples) if count is None else min(len(self.samples), self.cursor + count)
        fed = 0
        while self.cursor < end:
            sample = self.samples[self.cursor]
            self.cursor += 1
            self._deliver(sample)
            fed += 1
        return fed

    async def play(self, realtime: bool = False) -> int:
        fed = 0
        while self.cursor < len(self.samples):
            fed += self.feed(1)
            await asyncio.sleep(self.dt if realtime else 0)
        return fed


class PollingSource(MotionSampleSource):
    """
    Polls a gyro read function at a fixed rate on the event loop.

    ``read_gyro`` returns ``(gx, gy, gz)`` in rad/s and may raise OSError on a
    bus glitch. Failures are retried; after MAX_CONSECUTIVE_FAILURES in a row
    ``init`` (when given) is called again to re-initialise the device.
    """

    def __init__(
        self,
        read_gyro: Callable[[], Tuple[float, float, float]],
        sample_rate_hz: float = SAMPLE_RATE_HZ,
        init: Optional[Callable[[], None]] = None,
        close: Optional[Callable[[], None]] = None,
    ):
        super().__init__()
        self.read_gyro = read_gyro
        self.dt = 1.0 / sample_rate_hz
        self._init = init
        self._close = close
        self._available = True
        self._running = False
        self.consecutive_failures = 0
        self.samples_read = 0

        if self._init is not None:
            try:
                self._init()
            except OSError as e:
                self._available = False
                logger.warning("gyro init failed: %s", e)

    def is_available(self) -> bool:
        return self._available

    def stop(self):
        self._running = False

    async def run(self, max_samples: Optional[int] = None):
        if not self._available:
            logger.warning("polling source not started: gyro unavailable")
            return

        self._running = True
        t0 = time.monotonic()
        last_error_logged = 0.0

        try:
            while self._running:
                if max_samples is not None and self.samples_read >= max_samples:
                    break

                try:
                    gx, gy, gz = self.read_gyro()
                    self.consecutive_failures = 0
                except OSError as e:
                    self.consecutive_failures += 1
                    now = time.monotonic()
                    if now - last_error_logged > 1.0:
                        last_error_logged = now
                        logger.error("gyro read failed (%d in a row): %s", self.consecutive_failures, e)

                    if self.consecutive_failures >= MAX_CONSECUTIVE_FAILURES and self._init is not None:
                        try:
                            self._init()
                            self.consecutive_failures = 0
                            logger.info("gyro reinitialized")
                        except OSError:
                            await asyncio.sleep(self.dt * 10)
                    await asyncio.sleep(self.dt)
                    continue

                self.samples_read += 1
                self._deliver(MotionSample.from_rates(time.monotonic() - t0, gx, gy, gz))
                await asyncio.sleep(self.dt)
        finally:
            self._running = False
            if self._close is not None:
                try:
                    self._close()
                except OSError as e:
                    logger.warning("gyro close failed: %s", e)
