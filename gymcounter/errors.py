"""
Errors and reportable conditions.

Exceptions are raised for contract violations (bad lifecycle calls, broken
storage backends). Non-fatal conditions are plain values: they are returned
to the caller and logged, never thrown across the sample path.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional


class GymCounterError(Exception):
    """Base class for gymcounter exceptions."""


class InvalidTransition(GymCounterError):
    """A lifecycle command was issued from a state that does not allow it."""

    def __init__(self, action: str, state: Any):
        self.action = action
        self.state = state
        state_name = getattr(state, "value", state)
        super().__init__(f"cannot {action} while {state_name}")


class SaveError(GymCounterError):
    """Raised by a session store backend when a write fails."""


class DuplicateExercise(GymCounterError):
    """An exercise with this name already exists in the catalog."""


class RecordingError(GymCounterError):
    """A motion recording could not be read."""


# =============================================================================
# Conditions
# =============================================================================

@dataclass(frozen=True)
class SensorUnavailable:
    """Motion capability missing; the session runs but counts stay at 0."""

    reason: str = "gyro_not_available"

    def as_dict(self) -> dict:
        return {"condition": "sensor_unavailable", "reason": self.reason}


@dataclass(frozen=True)
class SaveFailure:
    """A finished session could not be persisted. The session is kept for retry."""

    session: Any
    error: str

    def as_dict(self) -> dict:
        return {
            "condition": "save_failure",
            "session_id": getattr(self.session, "session_id", None),
            "error": self.error,
        }


@dataclass(frozen=True)
class DiscardedUnsavedSession:
    """A session with pending reps was abandoned without finish()."""

    rep_count: int
    start_time: Optional[datetime]
    exercise_id: Optional[str]

    def as_dict(self) -> dict:
        return {
            "condition": "discarded_unsaved_session",
            "rep_count": self.rep_count,
            "start_time": None if self.start_time is None else self.start_time.isoformat(),
            "exercise_id": self.exercise_id,
        }
