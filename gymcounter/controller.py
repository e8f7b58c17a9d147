"""
Workout session controller.

Sequences the rep detector against user intent:

    IDLE --start--> ACTIVE --pause--> PAUSED --resume--> ACTIVE
    ACTIVE/PAUSED --finish (reps > 0)--> IDLE + saved WorkoutSession
    ACTIVE/PAUSED --discard/close--> IDLE (pending reps reported, not saved)

Everything runs on one asyncio event loop. Sample callbacks and lifecycle
commands never interleave mid-call, and every lifecycle command that stops
counting cancels the source subscription before it returns. Saving is the only
suspension point: finish() switches to IDLE first and then schedules the
write, returning the task so the caller can wait for the confirmation.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, List, Optional, Set

from .detector import RepDetector
from .errors import DiscardedUnsavedSession, InvalidTransition, SaveError, SaveFailure, SensorUnavailable
from .models import MotionSample, WorkoutSession, utc_now
from .sources import MotionSampleSource, SubscriptionHandle
from .store import SessionStore

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    IDLE = "IDLE"
    ACTIVE = "ACTIVE"
    PAUSED = "PAUSED"


IN_PROGRESS = (SessionState.ACTIVE, SessionState.PAUSED)


# =============================================================================
# Events and results
# =============================================================================

@dataclass(frozen=True)
class CountChanged:
    count: int
    source: str  # "sensor", "manual", "start", "finish", "discard"
    timestamp: datetime


@dataclass(frozen=True)
class StateChanged:
    previous: SessionState
    current: SessionState


@dataclass(frozen=True)
class SaveResult:
    session: WorkoutSession
    ok: bool
    failure: Optional[SaveFailure] = None


@dataclass(frozen=True)
class SaveCompleted:
    result: SaveResult


@dataclass(frozen=True)
class StartResult:
    start_time: datetime
    warning: Optional[SensorUnavailable] = None


Listener = Callable[[object], None]


class WorkoutController:
    """
    Owns one RepDetector and drives it from a motion source.

    Usage:
        controller = WorkoutController(source, store, exercise_id="push-ups")
        controller.add_listener(print)
        controller.start()
        ...
        task = controller.finish()      # None when there was nothing to save
        if task is not None:
            result = await task
    """

    def __init__(
        self,
        source: MotionSampleSource,
        store: SessionStore,
        exercise_id: Optional[str] = None,
        detector: Optional[RepDetector] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.source = source
        self.store = store
        self.exercise_id = exercise_id
        self.detector = detector or RepDetector()
        self.clock = clock or utc_now

        self._state = SessionState.IDLE
        self._handle: Optional[SubscriptionHandle] = None
        self._listeners: List[Listener] = []
        self._pending: Set[asyncio.Task] = set()

        self.start_time: Optional[datetime] = None
        self.last_failure: Optional[SaveFailure] = None

    # -------------------------------------------------------------------------
    # Observation
    # -------------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def count(self) -> int:
        return self.detector.current_count()

    @property
    def pending_saves(self) -> int:
        return len(self._pending)

    @property
    def in_progress(self) -> bool:
        return self._state in IN_PROGRESS

    def add_listener(self, callback: Listener):
        self._listeners.append(callback)

    def remove_listener(self, callback: Listener):
        if callback in self._listeners:
            self._listeners.remove(callback)

    def _emit(self, event):
        for callback in list(self._listeners):
            try:
                callback(event)
            except Exception:
                logger.exception("listener %r failed on %s", callback, type(event).__name__)

    def _emit_count(self, source: str):
        self._emit(CountChanged(count=self.count, source=source, timestamp=self.clock()))

    def _set_state(self, new_state: SessionState):
        previous = self._state
        self._state = new_state
        logger.info("workout %s -> %s (reps=%d)", previous.value, new_state.value, self.count)
        self._emit(StateChanged(previous=previous, current=new_state))

    def _require(self, action: str, *allowed: SessionState):
        if self._state not in allowed:
            raise InvalidTransition(action, self._state)

    # -------------------------------------------------------------------------
    # Sample stream
    # -------------------------------------------------------------------------

    def _subscribe(self):
        self._unsubscribe()
        handle = None

        def deliver(sample: MotionSample):
            # drop anything delivered to a superseded subscription or after a pause
            if handle is not self._handle or self._state is not SessionState.ACTIVE:
                return
            if self.detector.on_motion(sample) is not None:
                self._emit_count("sensor")

        handle = self.source.subscribe(deliver)
        self._handle = handle

    def _unsubscribe(self):
        handle, self._handle = self._handle, None
        if handle is not None:
            self.source.unsubscribe(handle)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def start(self) -> StartResult:
        self._require("start", SessionState.IDLE)

        self.start_time = self.clock()
        self.detector.reset()

        warning = None
        if not self.source.is_available():
            warning = SensorUnavailable(reason=getattr(self.source, "reason", "gyro_not_available"))
            logger.warning("motion sensor unavailable (%s); reps will only change manually", warning.reason)

        self._subscribe()
        self._set_state(SessionState.ACTIVE)
        self._emit_count("start")
        return StartResult(start_time=self.start_time, warning=warning)

    def pause(self):
        self._require("pause", SessionState.ACTIVE)
        self._unsubscribe()
        self._set_state(SessionState.PAUSED)

    def resume(self):
        self._require("resume", SessionState.PAUSED)
        self._subscribe()
        self._set_state(SessionState.ACTIVE)

    def finish(self) -> Optional["asyncio.Task[SaveResult]"]:
        """
        Stop counting and save the session.

        Must be called from a running event loop. Returns the save task, or
        None when the count is 0 (nothing to save, state unchanged).
        """
        self._require("finish", *IN_PROGRESS)
        if self.count <= 0:
            logger.info("finish ignored: no reps recorded")
            return None

        loop = asyncio.get_running_loop()
        self._unsubscribe()

        end_time = self.clock()
        if end_time <= self.start_time:
            # coarse clocks can stamp start and end identically
            end_time = self.start_time + timedelta(microseconds=1)

        session = WorkoutSession(
            start_time=self.start_time,
            end_time=end_time,
            rep_count=self.count,
            exercise_id=self.exercise_id,
        )

        self.start_time = None
        self.detector.reset()
        self._set_state(SessionState.IDLE)
        self._emit_count("finish")
        return self._enqueue_save(session, loop)

    def discard(self) -> Optional[DiscardedUnsavedSession]:
        self._require("discard", *IN_PROGRESS)
        self._unsubscribe()

        condition = None
        if self.count > 0:
            condition = DiscardedUnsavedSession(
                rep_count=self.count,
                start_time=self.start_time,
                exercise_id=self.exercise_id,
            )
            logger.warning("unsaved workout discarded: %d reps of %s", condition.rep_count, self.exercise_id)

        self.start_time = None
        self.detector.reset()
        self._set_state(SessionState.IDLE)
        self._emit_count("discard")
        return condition

    def close(self) -> Optional[DiscardedUnsavedSession]:
        """Teardown. Any session still in progress is discarded and reported."""
        if self._state is SessionState.IDLE:
            return None
        return self.discard()

    # -------------------------------------------------------------------------
    # Manual adjustments
    # -------------------------------------------------------------------------

    def increment(self) -> int:
        self._require("increment", SessionState.ACTIVE)
        self.detector.add_manual(1)
        self._emit_count("manual")
        return self.count

    def decrement(self) -> int:
        self._require("decrement", SessionState.ACTIVE)
        self.detector.remove_manual(1)
        self._emit_count("manual")
        return self.count

    def reset_count(self) -> int:
        self._require("reset", SessionState.ACTIVE)
        self.detector.clear_count()
        self._emit_count("manual")
        return self.count

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def retry_save(self, session: WorkoutSession) -> "asyncio.Task[SaveResult]":
        return self._enqueue_save(session, asyncio.get_running_loop())

    def _enqueue_save(self, session: WorkoutSession, loop) -> "asyncio.Task[SaveResult]":
        task = loop.create_task(self._save(session))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _save(self, session: WorkoutSession) -> SaveResult:
        try:
            await self.store.save(session)
        except SaveError as e:
            failure = SaveFailure(session=session, error=str(e))
            self.last_failure = failure
            logger.warning("saving session %s failed: %s", session.session_id, e)
            result = SaveResult(session=session, ok=False, failure=failure)
        else:
            logger.info("workout saved: %s - %d reps", session.exercise_id, session.rep_count)
            result = SaveResult(session=session, ok=True)

        self._emit(SaveCompleted(result))
        return result

    async def wait_for_saves(self) -> List[SaveResult]:
        if not self._pending:
            return []
        return list(await asyncio.gather(*list(self._pending)))
