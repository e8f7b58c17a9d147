"""
gymcounter WebSocket server.

Streams the live rep count to connected apps and accepts workout commands:

    -> {"type": "cmd", "action": "start"}
    <- {"type": "ack", "action": "start", "ok": true, ...}
    <- {"type": "rep_update", "reps": 3, "state": "ACTIVE", ...}

Actions: start, pause, resume, stop/finish, discard, increment, decrement,
reset, set_exercise, list_sessions, get_session, update_notes, delete_session,
stats, list_exercises, add_exercise, remove_exercise, clear_data.
"""

import asyncio
import json
import logging
from typing import List, Optional, Set

import websockets

from .config import DAILY_GOAL_REPS, HOST, PORT
from .controller import CountChanged, SaveCompleted, SessionState, StateChanged, WorkoutController
from .errors import DuplicateExercise, InvalidTransition
from .models import iso_from_dt
from .stats import summarize
from .store import ExerciseCatalog, SessionStore

logger = logging.getLogger(__name__)


def is_command_message(msg: dict) -> bool:
    return msg.get("type") in ("cmd", "command")


def json_safe(x):
    if x is None:
        return None
    if isinstance(x, (str, int, float, bool)):
        return x
    if isinstance(x, (list, tuple)):
        return [json_safe(v) for v in x]
    if isinstance(x, dict):
        return {str(k): json_safe(v) for k, v in x.items()}
    return str(x)


def status_message(controller: WorkoutController) -> dict:
    return {
        "type": "rep_update",
        "reps": int(controller.count),
        "state": controller.state.value,
        "recording": controller.in_progress,
        "exercise_id": controller.exercise_id,
        "start_time": None if controller.start_time is None else iso_from_dt(controller.start_time),
    }


def ack(action: str, ok: bool = True, **fields) -> dict:
    msg = {"type": "ack", "action": action, "ok": ok}
    msg.update(fields)
    return json_safe(msg)


def _str_field(msg: dict, key: str, optional: bool = False) -> Optional[str]:
    value = msg.get(key)
    if value is None and optional:
        return None
    if not isinstance(value, str):
        raise TypeError(f"{key} must be a string")
    return value


class CommandHandler:
    """
    Maps command messages onto the controller, store and catalog.

    Store and catalog calls touch the disk, so they run in a worker thread;
    catalog edits are serialised with a lock. Malformed fields are answered
    with ``error: invalid`` and never end the client's connection.
    """

    def __init__(
        self,
        controller: WorkoutController,
        store: SessionStore,
        catalog: Optional[ExerciseCatalog] = None,
        daily_goal: int = DAILY_GOAL_REPS,
    ):
        self.controller = controller
        self.store = store
        self.catalog = catalog or ExerciseCatalog()
        self.daily_goal = daily_goal
        self._catalog_lock = asyncio.Lock()

    async def handle(self, msg: dict) -> List[dict]:
        action = msg.get("action")
        try:
            return await self._dispatch(action, msg)
        except InvalidTransition as e:
            return [ack(action, ok=False, error="invalid_transition", state=e.state.value, detail=str(e))]
        except (TypeError, ValueError) as e:
            logger.warning("rejected %r command: %s", action, e)
            return [ack(action, ok=False, error="invalid", detail=str(e))]

    async def _dispatch(self, action, msg: dict) -> List[dict]:
        c = self.controller

        if action == "start":
            result = c.start()
            return [ack(
                "start",
                start_time=iso_from_dt(result.start_time),
                exercise_id=c.exercise_id,
                warning=None if result.warning is None else result.warning.as_dict(),
            )]

        if action == "pause":
            c.pause()
            return [ack("pause", reps=c.count)]

        if action == "resume":
            c.resume()
            return [ack("resume", reps=c.count)]

        if action in ("stop", "finish"):
            reps = c.count
            task = c.finish()
            if task is None:
                return [ack(action, note="nothing_to_save", reps=0)]
            # confirmation follows as session_saved / save_failed once the write lands
            return [ack(action, saving=True, reps=reps)]

        if action == "discard":
            condition = c.discard()
            return [ack("discard", warning=None if condition is None else condition.as_dict())]

        if action == "increment":
            return [ack("increment", reps=c.increment())]

        if action == "decrement":
            return [ack("decrement", reps=c.decrement())]

        if action == "reset":
            return [ack("reset", reps=c.reset_count())]

        if action == "set_exercise":
            name = _str_field(msg, "exercise_id", optional=True)
            if c.state is not SessionState.IDLE:
                raise InvalidTransition("set_exercise", c.state)
            if name is not None and self.catalog.get(name) is None:
                return [ack("set_exercise", ok=False, error="unknown_exercise", exercise_id=name)]
            c.exercise_id = name
            return [ack("set_exercise", exercise_id=name)]

        if action == "list_sessions":
            rows = await asyncio.to_thread(self.store.list_sessions, msg.get("limit", 20))
            return [{
                "type": "sessions_list",
                "count": len(rows),
                "sessions": [s.to_dict() for s in rows],
            }]

        if action == "get_session":
            sid = _str_field(msg, "session_id")
            session = await asyncio.to_thread(self.store.get_session, sid)
            if session is None:
                return [{"type": "session_detail", "ok": False, "error": "not_found", "session_id": sid}]
            return [{"type": "session_detail", "ok": True, "session_id": sid, "summary": session.to_dict()}]

        if action == "update_notes":
            sid = _str_field(msg, "session_id")
            notes = _str_field(msg, "notes", optional=True)
            session = await asyncio.to_thread(self.store.update_notes, sid, notes)
            if session is None:
                return [ack("update_notes", ok=False, error="not_found", session_id=sid)]
            return [ack("update_notes", session_id=sid, notes=session.notes)]

        if action == "delete_session":
            sid = _str_field(msg, "session_id")
            if not await asyncio.to_thread(self.store.delete_session, sid):
                return [ack("delete_session", ok=False, error="not_found", session_id=sid)]
            return [ack("delete_session", session_id=sid)]

        if action == "stats":
            try:
                days = max(1, min(366, int(msg.get("days", 7))))
            except (TypeError, ValueError):
                days = 7
            sessions = await asyncio.to_thread(self.store.all_sessions)
            summary = summarize(sessions, goal=self.daily_goal, days=days)
            return [{"type": "stats", **summary.as_dict()}]

        if action == "list_exercises":
            rows = self.catalog.list()
            return [{"type": "exercises_list", "count": len(rows), "exercises": [e.to_dict() for e in rows]}]

        if action == "add_exercise":
            name = _str_field(msg, "name")
            icon = _str_field(msg, "icon", optional=True) or "figure.mixed.cardio"
            target_muscle = _str_field(msg, "target_muscle", optional=True) or "full body"
            try:
                async with self._catalog_lock:
                    exercise = await asyncio.to_thread(self.catalog.add_custom, name, icon, target_muscle)
            except DuplicateExercise:
                return [ack("add_exercise", ok=False, error="duplicate", name=name)]
            return [ack("add_exercise", exercise=exercise.to_dict())]

        if action == "remove_exercise":
            name = _str_field(msg, "name")
            if c.in_progress and c.exercise_id == name:
                raise InvalidTransition("remove_exercise", c.state)
            async with self._catalog_lock:
                removed = await asyncio.to_thread(self.catalog.remove, name)
            if not removed:
                return [ack("remove_exercise", ok=False, error="not_found", name=name)]
            deleted = await asyncio.to_thread(self.store.delete_sessions_for, name)
            if c.exercise_id == name:
                c.exercise_id = None
            return [ack("remove_exercise", name=name, sessions_deleted=deleted)]

        if action == "clear_data":
            if c.in_progress:
                raise InvalidTransition("clear_data", c.state)
            deleted = await asyncio.to_thread(self.store.clear)
            async with self._catalog_lock:
                await asyncio.to_thread(self.catalog.reset)
            c.exercise_id = None
            logger.warning("all workout data cleared (%d sessions)", deleted)
            return [ack("clear_data", sessions_deleted=deleted)]

        return [ack(str(action), ok=False, error="unknown_action")]


class RepServer:
    """WebSocket front end: one controller, many connected clients."""

    def __init__(self, handler: CommandHandler, host: str = HOST, port: int = PORT):
        self.handler = handler
        self.controller = handler.controller
        self.host = host
        self.port = port
        self.clients: Set = set()
        self._tasks: Set[asyncio.Task] = set()
        self.controller.add_listener(self._on_event)

    # Controller events arrive synchronously; broadcasts are scheduled.
    def _on_event(self, event):
        if isinstance(event, (CountChanged, StateChanged)):
            msg = status_message(self.controller)
        elif isinstance(event, SaveCompleted):
            result = event.result
            if result.ok:
                msg = {"type": "session_saved", "session": result.session.to_dict()}
            else:
                msg = {
                    "type": "save_failed",
                    "session": result.session.to_dict(),
                    "error": result.failure.error if result.failure else None,
                }
        else:
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        task = loop.create_task(self.broadcast(msg))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def broadcast(self, msg: dict):
        if not self.clients:
            return
        data = json.dumps(json_safe(msg))
        dead = []
        for ws in list(self.clients):
            try:
                await ws.send(data)
            except websockets.exceptions.ConnectionClosed:
                dead.append(ws)
        for ws in dead:
            self.clients.discard(ws)

    async def handle_client(self, ws):
        self.clients.add(ws)
        logger.info("client connected (%d total)", len(self.clients))

        try:
            await ws.send(json.dumps(json_safe({**status_message(self.controller), "type": "status"})))

            async for raw in ws:
                try:
                    msg = json.loads(raw)
                except ValueError:
                    continue

                if not isinstance(msg, dict) or not is_command_message(msg):
                    continue

                for reply in await self.handler.handle(msg):
                    await ws.send(json.dumps(json_safe(reply)))

        except websockets.exceptions.ConnectionClosed:
            pass
        finally:
            self.clients.discard(ws)
            logger.info("client disconnected")

    async def run(self, source_task=None):
        """Serve until ``source_task`` (e.g. a polling loop) ends, or forever."""
        server = await websockets.serve(
            self.handle_client, self.host, self.port,
            ping_interval=20,
            ping_timeout=20,
        )
        try:
            if source_task is not None:
                await source_task
            else:
                await asyncio.Future()
        finally:
            condition = self.controller.close()
            if condition is not None:
                logger.warning("server stopped with an unsaved workout: %s", condition.as_dict())
            await self.controller.wait_for_saves()
            server.close()
            await server.wait_closed()
