"""
Session persistence and the exercise catalog.

Stores are injected into the controller; nothing here is a process-wide
singleton. ``save`` is a coroutine that raises SaveError on failure. The
controller turns that into a SaveResult for the caller.

On disk (JsonSessionStore):

    <base_dir>/sessions/session_<id>/summary.json
    <base_dir>/exercises.json
"""

import asyncio
import json
import logging
import os
import shutil
from pathlib import Path
from typing import Dict, List, Optional, Union

from .errors import DuplicateExercise, SaveError
from .models import ExerciseType, WorkoutSession, default_exercises

logger = logging.getLogger(__name__)

MAX_LIST_LIMIT = 200


def _clamp_limit(limit, default: int = 20) -> int:
    try:
        limit = int(limit)
    except (TypeError, ValueError):
        limit = default
    return max(1, min(MAX_LIST_LIMIT, limit))


def _newest_first(sessions: List[WorkoutSession]) -> List[WorkoutSession]:
    return sorted(sessions, key=lambda s: s.end_time or s.start_time, reverse=True)


def _read_json(path: Path):
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except (OSError, ValueError):
        return None


def _write_json_atomic(path: Path, data):
    tmp = str(path) + ".tmp"
    with open(tmp, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2)
    os.replace(tmp, path)


def is_safe_session_id(session_id) -> bool:
    """Session ids become directory names: no separators, no parent refs."""
    if not isinstance(session_id, str) or not session_id:
        return False
    return not any(bad in session_id for bad in ("/", "\\", "..", "\0"))


class SessionStore:
    """Interface for workout session persistence."""

    async def save(self, session: WorkoutSession):
        raise NotImplementedError

    def all_sessions(self) -> List[WorkoutSession]:
        raise NotImplementedError

    def get_session(self, session_id: str) -> Optional[WorkoutSession]:
        for s in self.all_sessions():
            if s.session_id == session_id:
                return s
        return None

    def update_notes(self, session_id: str, notes: Optional[str]) -> Optional[WorkoutSession]:
        raise NotImplementedError

    def delete_session(self, session_id: str) -> bool:
        raise NotImplementedError

    def delete_sessions_for(self, exercise_id: Optional[str]) -> int:
        """Delete every session recorded against ``exercise_id``. Returns how many."""
        removed = 0
        for s in self.all_sessions():
            if s.exercise_id == exercise_id and self.delete_session(s.session_id):
                removed += 1
        return removed

    def clear(self) -> int:
        removed = 0
        for s in self.all_sessions():
            if self.delete_session(s.session_id):
                removed += 1
        return removed

    def list_sessions(self, limit=20) -> List[WorkoutSession]:
        return _newest_first(self.all_sessions())[:_clamp_limit(limit)]

    def max_rep_count_so_far(self) -> int:
        return max((s.rep_count for s in self.all_sessions()), default=0)


class InMemorySessionStore(SessionStore):
    """Dict-backed store. Set ``fail_with`` to make the next saves fail."""

    def __init__(self):
        self.sessions: Dict[str, WorkoutSession] = {}
        self.fail_with: Optional[str] = None
        self.save_calls = 0

    async def save(self, session: WorkoutSession):
        self.save_calls += 1
        if self.fail_with is not None:
            raise SaveError(self.fail_with)
        self.sessions[session.session_id] = session

    def all_sessions(self) -> List[WorkoutSession]:
        return list(self.sessions.values())

    def get_session(self, session_id: str) -> Optional[WorkoutSession]:
        return self.sessions.get(session_id)

    def update_notes(self, session_id: str, notes: Optional[str]) -> Optional[WorkoutSession]:
        session = self.sessions.get(session_id)
        if session is None:
            return None
        updated = session.with_notes(notes)
        self.sessions[session_id] = updated
        return updated

    def delete_session(self, session_id: str) -> bool:
        return self.sessions.pop(session_id, None) is not None


class JsonSessionStore(SessionStore):
    """One summary.json per session, written atomically off the event loop."""

    def __init__(self, base_dir: Union[str, Path]):
        self.base_dir = Path(base_dir)
        self.sessions_dir = self.base_dir / "sessions"

    def _session_dir(self, session_id: str) -> Path:
        if not is_safe_session_id(session_id):
            raise ValueError(f"invalid session id: {session_id!r}")
        return self.sessions_dir / f"session_{session_id}"

    def _write_summary(self, session: WorkoutSession) -> Path:
        sdir = self._session_dir(session.session_id)
        sdir.mkdir(parents=True, exist_ok=True)
        summary_path = sdir / "summary.json"
        _write_json_atomic(summary_path, session.to_dict())
        return summary_path

    async def save(self, session: WorkoutSession):
        try:
            path = await asyncio.to_thread(self._write_summary, session)
        except OSError as e:
            raise SaveError(f"could not write session {session.session_id}: {e}") from e
        logger.info("session %s saved to %s", session.session_id, path)

    def all_sessions(self) -> List[WorkoutSession]:
        try:
            entries = os.listdir(self.sessions_dir)
        except OSError:
            return []

        sessions = []
        for name in entries:
            if not name.startswith("session_"):
                continue
            summary = _read_json(self.sessions_dir / name / "summary.json")
            if not isinstance(summary, dict):
                continue
            try:
                sessions.append(WorkoutSession.from_dict(summary))
            except (KeyError, ValueError, TypeError):
                logger.warning("skipping unreadable session summary in %s", name)
        return sessions

    def get_session(self, session_id: str) -> Optional[WorkoutSession]:
        if not is_safe_session_id(session_id):
            return None
        summary = _read_json(self._session_dir(session_id) / "summary.json")
        if not isinstance(summary, dict):
            return None
        try:
            return WorkoutSession.from_dict(summary)
        except (KeyError, ValueError, TypeError):
            return None

    def update_notes(self, session_id: str, notes: Optional[str]) -> Optional[WorkoutSession]:
        session = self.get_session(session_id)
        if session is None:
            return None
        updated = session.with_notes(notes)
        self._write_summary(updated)
        return updated

    def delete_session(self, session_id: str) -> bool:
        if not is_safe_session_id(session_id):
            return False
        sdir = self._session_dir(session_id)
        if not sdir.is_dir():
            return False
        shutil.rmtree(sdir)
        logger.info("session %s deleted", session_id)
        return True


class ExerciseCatalog:
    """
    The exercises a user can pick from, seeded with the default set.

    When ``path`` is given the catalog is loaded from and saved to that JSON
    file; otherwise it lives in memory.
    """

    def __init__(self, path: Optional[Union[str, Path]] = None):
        self.path = None if path is None else Path(path)
        self._exercises: Dict[str, ExerciseType] = {}

        loaded = self._load()
        for ex in (loaded if loaded is not None else default_exercises()):
            self._exercises[ex.name] = ex

    def _load(self) -> Optional[List[ExerciseType]]:
        if self.path is None or not self.path.exists():
            return None
        data = _read_json(self.path)
        if not isinstance(data, list):
            logger.warning("exercise catalog %s unreadable, using defaults", self.path)
            return None
        out = []
        for row in data:
            try:
                out.append(ExerciseType.from_dict(row))
            except (KeyError, ValueError, TypeError):
                continue
        return out

    def _persist(self):
        if self.path is None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        _write_json_atomic(self.path, [ex.to_dict() for ex in self.list()])

    def list(self) -> List[ExerciseType]:
        return sorted(self._exercises.values(), key=lambda ex: (ex.sort_order, ex.name))

    def get(self, name: str) -> Optional[ExerciseType]:
        return self._exercises.get(name)

    def max_sort_order(self) -> int:
        return max((ex.sort_order for ex in self._exercises.values()), default=0)

    def add_custom(self, name: str, icon: str = "figure.mixed.cardio", target_muscle: str = "full body") -> ExerciseType:
        if name is not None and not isinstance(name, str):
            raise TypeError("exercise name must be a string")
        name = (name or "").strip()
        if not name:
            raise ValueError("exercise name must not be empty")
        if name in self._exercises:
            raise DuplicateExercise(f"exercise already exists: {name}")

        exercise = ExerciseType(
            name=name,
            icon=icon,
            target_muscle=target_muscle,
            is_custom=True,
            sort_order=self.max_sort_order() + 1,
        )
        self._exercises[name] = exercise
        self._persist()
        return exercise

    def remove(self, name: str) -> bool:
        if self._exercises.pop(name, None) is None:
            return False
        self._persist()
        return True

    def reset(self):
        """Drop custom exercises and restore the default set."""
        self._exercises = {ex.name: ex for ex in default_exercises()}
        self._persist()
