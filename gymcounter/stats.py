"""
Aggregated workout statistics.

Feeds the stats screen and home-screen summaries: totals, averages, the
daily goal ring, the last-7-days chart and per-exercise breakdown. Only valid
sessions (reps > 0, end after start) are counted. Days are calendar days in
UTC, the timezone sessions are stored in.
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Dict, Iterable, List, Optional, Tuple

import numpy as np

from .config import DAILY_GOAL_REPS
from .models import WorkoutSession, utc_now


def valid_sessions(sessions: Iterable[WorkoutSession]) -> List[WorkoutSession]:
    return [s for s in sessions if s.is_valid()]


def total_workouts(sessions: Iterable[WorkoutSession]) -> int:
    return len(valid_sessions(sessions))


def total_reps(sessions: Iterable[WorkoutSession]) -> int:
    return sum(s.rep_count for s in valid_sessions(sessions))


def average_reps_per_workout(sessions: Iterable[WorkoutSession]) -> int:
    """Whole reps per workout, rounded down; 0 with no workouts."""
    rows = valid_sessions(sessions)
    if not rows:
        return 0
    return sum(s.rep_count for s in rows) // len(rows)


def total_duration(sessions: Iterable[WorkoutSession]) -> float:
    return float(sum(s.duration for s in valid_sessions(sessions)))


def last_workout_date(sessions: Iterable[WorkoutSession]) -> Optional[datetime]:
    rows = valid_sessions(sessions)
    if not rows:
        return None
    return max(s.start_time for s in rows)


def daily_totals(
    sessions: Iterable[WorkoutSession],
    days: int = 7,
    today: Optional[date] = None,
) -> List[Tuple[date, int]]:
    """Reps per day for the last ``days`` days, oldest first, zero-filled."""
    if days < 1:
        raise ValueError("days must be >= 1")
    today = today or utc_now().date()
    first = today - timedelta(days=days - 1)

    totals = np.zeros(days, dtype=np.int64)
    for s in valid_sessions(sessions):
        idx = (s.workout_date - first).days
        if 0 <= idx < days:
            totals[idx] += s.rep_count

    return [(first + timedelta(days=i), int(totals[i])) for i in range(days)]


def reps_by_exercise(sessions: Iterable[WorkoutSession]) -> Dict[str, int]:
    """Total reps per exercise, largest first. Sessions without one are 'unknown'."""
    out: Dict[str, int] = {}
    for s in valid_sessions(sessions):
        key = s.exercise_id or "unknown"
        out[key] = out.get(key, 0) + s.rep_count
    return dict(sorted(out.items(), key=lambda kv: (-kv[1], kv[0])))


def weekly_reps(sessions: Iterable[WorkoutSession], now: Optional[datetime] = None) -> int:
    now = now or utc_now()
    week_ago = now - timedelta(days=7)
    return sum(s.rep_count for s in valid_sessions(sessions) if s.start_time >= week_ago)


@dataclass(frozen=True)
class DailyProgress:
    today_reps: int
    goal_reps: int
    completion: float  # 0.0 .. 1.0


def today_progress(
    sessions: Iterable[WorkoutSession],
    goal: int = DAILY_GOAL_REPS,
    now: Optional[datetime] = None,
) -> DailyProgress:
    if goal < 1:
        raise ValueError("goal must be >= 1")
    now = now or utc_now()
    today = now.date()
    reps = sum(s.rep_count for s in valid_sessions(sessions) if s.workout_date == today)
    return DailyProgress(today_reps=reps, goal_reps=goal, completion=min(reps / goal, 1.0))


@dataclass(frozen=True)
class StatsSummary:
    total_workouts: int
    total_reps: int
    average_reps_per_workout: int
    total_duration_sec: float
    weekly_reps: int
    last_workout: Optional[datetime]
    today: DailyProgress
    daily: List[Tuple[date, int]]
    by_exercise: Dict[str, int]

    def as_dict(self) -> dict:
        return {
            "total_workouts": self.total_workouts,
            "total_reps": self.total_reps,
            "average_reps_per_workout": self.average_reps_per_workout,
            "total_duration_sec": round(self.total_duration_sec, 3),
            "weekly_reps": self.weekly_reps,
            "last_workout": None if self.last_workout is None else self.last_workout.isoformat(),
            "today_reps": self.today.today_reps,
            "goal_reps": self.today.goal_reps,
            "goal_completion": round(self.today.completion, 3),
            "daily": [{"date": d.isoformat(), "reps": reps} for d, reps in self.daily],
            "by_exercise": dict(self.by_exercise),
        }


def summarize(
    sessions: Iterable[WorkoutSession],
    now: Optional[datetime] = None,
    goal: int = DAILY_GOAL_REPS,
    days: int = 7,
) -> StatsSummary:
    rows = valid_sessions(sessions)
    now = now or utc_now()
    return StatsSummary(
        total_workouts=len(rows),
        total_reps=total_reps(rows),
        average_reps_per_workout=average_reps_per_workout(rows),
        total_duration_sec=total_duration(rows),
        weekly_reps=weekly_reps(rows, now=now),
        last_workout=last_workout_date(rows),
        today=today_progress(rows, goal=goal, now=now),
        daily=daily_totals(rows, days=days, today=now.date()),
        by_exercise=reps_by_exercise(rows),
    )
