"""
Data models shared by the detector, controller, stores and statistics.
"""

import math
import uuid
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional

SESSION_SCHEMA_VERSION = 1


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def iso_from_dt(dt: datetime) -> str:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def dt_from_iso(value: str) -> datetime:
    dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def make_session_id() -> str:
    return utc_now().strftime("%Y-%m-%dT%H-%M-%SZ") + "-" + uuid.uuid4().hex[:6]


# =============================================================================
# Motion
# =============================================================================

@dataclass(frozen=True)
class AngularVelocity:
    """Rotation rate around each device axis (rad/s)."""

    x: float = 0.0
    y: float = 0.0
    z: float = 0.0

    def axis(self, name: str) -> float:
        return getattr(self, name)

    @property
    def magnitude(self) -> float:
        return math.sqrt(self.x * self.x + self.y * self.y + self.z * self.z)


@dataclass(frozen=True)
class MotionSample:
    """One timestamped gyro reading. Timestamp is seconds since stream start."""

    timestamp: float
    angular_velocity: AngularVelocity

    @classmethod
    def from_rates(cls, timestamp: float, gx: float = 0.0, gy: float = 0.0, gz: float = 0.0) -> "MotionSample":
        return cls(timestamp=float(timestamp), angular_velocity=AngularVelocity(float(gx), float(gy), float(gz)))


# =============================================================================
# Workout sessions
# =============================================================================

@dataclass(frozen=True)
class WorkoutSession:
    """A finished, persistable workout.

    Immutable once stored; ``notes`` is the only annotation that may change,
    through :meth:`with_notes`.
    """

    start_time: datetime
    end_time: Optional[datetime]
    rep_count: int
    exercise_id: Optional[str]
    notes: Optional[str] = None
    is_completed: bool = True
    session_id: str = field(default_factory=make_session_id)

    @property
    def duration(self) -> float:
        """Seconds between start and end, 0 while unfinished."""
        if self.end_time is None:
            return 0.0
        return (self.end_time - self.start_time).total_seconds()

    @property
    def formatted_duration(self) -> str:
        total = int(self.duration)
        return f"{total // 60:02d}:{total % 60:02d}"

    @property
    def average_time_per_rep(self) -> float:
        if self.rep_count <= 0:
            return 0.0
        return self.duration / self.rep_count

    @property
    def workout_date(self) -> date:
        return self.start_time.date()

    def is_valid(self) -> bool:
        if self.rep_count <= 0:
            return False
        if self.end_time is None or self.end_time <= self.start_time:
            return False
        return True

    def with_notes(self, notes: Optional[str]) -> "WorkoutSession":
        return replace(self, notes=notes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": SESSION_SCHEMA_VERSION,
            "session_id": self.session_id,
            "exercise_id": self.exercise_id,
            "start_time": iso_from_dt(self.start_time),
            "end_time": None if self.end_time is None else iso_from_dt(self.end_time),
            "duration_sec": round(self.duration, 3),
            "total_reps": int(self.rep_count),
            "notes": self.notes,
            "is_completed": bool(self.is_completed),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WorkoutSession":
        end = data.get("end_time")
        return cls(
            session_id=str(data["session_id"]),
            exercise_id=data.get("exercise_id"),
            start_time=dt_from_iso(data["start_time"]),
            end_time=None if end is None else dt_from_iso(end),
            rep_count=int(data.get("total_reps", 0)),
            notes=data.get("notes"),
            is_completed=bool(data.get("is_completed", True)),
        )


# =============================================================================
# Exercise catalog entries
# =============================================================================

@dataclass(frozen=True)
class ExerciseType:
    """An exercise the user can record sessions against. ``name`` is unique."""

    name: str
    icon: str = "figure.mixed.cardio"
    target_muscle: str = "full body"
    is_custom: bool = False
    sort_order: int = 0
    created_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "icon": self.icon,
            "target_muscle": self.target_muscle,
            "is_custom": self.is_custom,
            "sort_order": self.sort_order,
            "created_at": iso_from_dt(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExerciseType":
        created = data.get("created_at")
        return cls(
            name=str(data["name"]),
            icon=data.get("icon") or "figure.mixed.cardio",
            target_muscle=data.get("target_muscle") or "full body",
            is_custom=bool(data.get("is_custom", False)),
            sort_order=int(data.get("sort_order", 0)),
            created_at=utc_now() if not created else dt_from_iso(created),
        )


def default_exercises() -> List[ExerciseType]:
    return [
        ExerciseType("push-ups", icon="figure.arms.open", target_muscle="chest, triceps", sort_order=1),
        ExerciseType("squats", icon="figure.flexibility", target_muscle="legs, glutes", sort_order=2),
        ExerciseType("sit-ups", icon="figure.core.training", target_muscle="abs", sort_order=3),
        ExerciseType("pull-ups", icon="figure.climbing", target_muscle="back, biceps", sort_order=4),
        ExerciseType("plank", icon="figure.mind.and.body", target_muscle="core", sort_order=5),
    ]
