"""
gymcounter: gyroscope rep counting and workout logging

This package provides:
- RepDetector: hysteresis rep detection on one gyro axis (pure reducer inside)
- WorkoutController: start/pause/resume/finish lifecycle with async saving
- Motion sources: push, replay, polling and unavailable stand-ins
- Session stores: in-memory and JSON on disk, plus the exercise catalog
- Statistics: totals, daily goal, weekly and per-exercise breakdowns

Usage:
    from gymcounter import RepDetector, WorkoutController, PushSource, InMemorySessionStore

    source = PushSource()
    controller = WorkoutController(source, InMemorySessionStore(), exercise_id="push-ups")
    controller.start()
    source.emit_rate(-1.5)
    source.emit_rate(1.8)      # controller.count == 1
    task = controller.finish() # await task -> SaveResult
"""

from .config import DetectorConfig, load_detector_config
from .controller import (
    CountChanged,
    SaveCompleted,
    SaveResult,
    SessionState,
    StartResult,
    StateChanged,
    WorkoutController,
)
from .detector import DetectorState, Phase, RepDetector, RepEvent, count_reps, step
from .errors import (
    DiscardedUnsavedSession,
    DuplicateExercise,
    GymCounterError,
    InvalidTransition,
    RecordingError,
    SaveError,
    SaveFailure,
    SensorUnavailable,
)
from .models import AngularVelocity, ExerciseType, MotionSample, WorkoutSession
from .sources import MotionSampleSource, PollingSource, PushSource, ReplaySource, UnavailableSource
from .store import ExerciseCatalog, InMemorySessionStore, JsonSessionStore, SessionStore

__all__ = [
    # Detection
    'DetectorConfig',
    'load_detector_config',
    'DetectorState',
    'Phase',
    'RepDetector',
    'RepEvent',
    'count_reps',
    'step',

    # Controller
    'WorkoutController',
    'SessionState',
    'CountChanged',
    'StateChanged',
    'SaveCompleted',
    'SaveResult',
    'StartResult',

    # Errors / conditions
    'GymCounterError',
    'InvalidTransition',
    'SaveError',
    'DuplicateExercise',
    'RecordingError',
    'SensorUnavailable',
    'SaveFailure',
    'DiscardedUnsavedSession',

    # Models
    'AngularVelocity',
    'MotionSample',
    'WorkoutSession',
    'ExerciseType',

    # Sources
    'MotionSampleSource',
    'PushSource',
    'ReplaySource',
    'PollingSource',
    'UnavailableSource',

    # Stores
    'SessionStore',
    'InMemorySessionStore',
    'JsonSessionStore',
    'ExerciseCatalog',
]

__version__ = '1.0.0'
