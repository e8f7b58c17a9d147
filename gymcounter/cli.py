"""
Command-line entry point.

Usage:
    gymcounter serve                          # manual counting only, no gyro
    gymcounter serve --imu-driver imu_driver  # poll imu_driver.IMU at 50 Hz
    gymcounter serve --replay set1.jsonl      # stream a recording in real time
    gymcounter replay set1.jsonl --threshold 1.2
    gymcounter stats --days 14
    gymcounter exercises --add "burpees"
    gymcounter exercises --remove "burpees"
    gymcounter clear --yes
"""

import argparse
import asyncio
import importlib
import json
import sys
from pathlib import Path

from . import __version__
from .config import (
    DAILY_GOAL_REPS,
    DATA_DIR,
    HOST,
    PORT,
    SAMPLE_RATE_HZ,
    configure_logging,
    load_detector_config,
)
from .controller import WorkoutController
from .detector import RepDetector, count_reps
from .errors import DuplicateExercise, RecordingError
from .recording import deg_to_rad, load_recording, validate_sample_rate
from .server import CommandHandler, RepServer
from .sources import PollingSource, ReplaySource, UnavailableSource
from .stats import summarize
from .store import ExerciseCatalog, JsonSessionStore


def _imu_source(module_name: str, units: str) -> PollingSource:
    """Wrap an ``IMU`` class (init / read_accel_gyro / close) as a polling source."""
    module = importlib.import_module(module_name)
    imu = module.IMU()
    scale = deg_to_rad(1.0) if units == "deg" else 1.0

    def read_gyro():
        _ax, _ay, _az, gx, gy, gz = imu.read_accel_gyro()
        return gx * scale, gy * scale, gz * scale

    return PollingSource(read_gyro, sample_rate_hz=SAMPLE_RATE_HZ, init=imu.init, close=imu.close)


def cmd_serve(args) -> int:
    config = load_detector_config(threshold=args.threshold, axis=args.axis)
    store = JsonSessionStore(args.data_dir)
    catalog = ExerciseCatalog(args.data_dir / "exercises.json")

    if args.replay:
        source = ReplaySource(load_recording(args.replay, units=args.units), sample_rate_hz=config.sample_rate_hz)
    elif args.imu_driver:
        source = _imu_source(args.imu_driver, args.units)
    else:
        source = UnavailableSource()

    controller = WorkoutController(source, store, exercise_id=args.exercise, detector=RepDetector(config))
    server = RepServer(CommandHandler(controller, store, catalog), host=args.host, port=args.port)

    print(f"gymcounter server v{__version__}")
    print(f"WebSocket: ws://{args.host}:{args.port}")
    print(f"Sample rate: {config.sample_rate_hz} Hz, threshold: {config.threshold} rad/s, axis: {config.axis}")
    print(f"Data dir: {args.data_dir}")
    if not source.is_available():
        print("Gyro unavailable: counting manually only")

    async def _main():
        source_task = None
        if isinstance(source, ReplaySource):
            source_task = asyncio.create_task(source.play(realtime=True))
        elif isinstance(source, PollingSource):
            source_task = asyncio.create_task(source.run())
        await server.run(source_task)

    try:
        asyncio.run(_main())
    except KeyboardInterrupt:
        print("\n--- STOP ---")
    return 0


def cmd_replay(args) -> int:
    config = load_detector_config(threshold=args.threshold, axis=args.axis, min_rep_interval=args.min_rep_interval)
    try:
        samples = load_recording(args.file, units=args.units)
    except RecordingError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1

    rates = [s.angular_velocity.axis(config.axis) for s in samples]
    reps = count_reps(rates, config, timestamps=[s.timestamp for s in samples])
    validation = validate_sample_rate(samples, expected_hz=config.sample_rate_hz)

    print(json.dumps({
        "file": str(args.file),
        "samples": len(samples),
        "reps": reps,
        "detector": config.as_dict(),
        "sample_rate": validation,
    }, indent=2))
    return 0


def cmd_stats(args) -> int:
    store = JsonSessionStore(args.data_dir)
    summary = summarize(store.all_sessions(), goal=args.goal, days=args.days)
    print(json.dumps(summary.as_dict(), indent=2))
    return 0


def cmd_exercises(args) -> int:
    catalog = ExerciseCatalog(args.data_dir / "exercises.json")
    if args.remove:
        if not catalog.remove(args.remove):
            print(f"error: no such exercise: {args.remove}", file=sys.stderr)
            return 1
        deleted = JsonSessionStore(args.data_dir).delete_sessions_for(args.remove)
        print(f"removed {args.remove} and {deleted} session(s)")
        return 0

    if args.add:
        try:
            ex = catalog.add_custom(args.add, target_muscle=args.target_muscle)
        except (DuplicateExercise, ValueError) as e:
            print(f"error: {e}", file=sys.stderr)
            return 1
        print(f"added {ex.name} (sort order {ex.sort_order})")
        return 0

    for ex in catalog.list():
        marker = "*" if ex.is_custom else " "
        print(f"{ex.sort_order:3d} {marker} {ex.name:<20} {ex.target_muscle}")
    return 0


def cmd_clear(args) -> int:
    if not args.yes:
        print("refusing to delete all sessions and custom exercises without --yes", file=sys.stderr)
        return 1
    deleted = JsonSessionStore(args.data_dir).clear()
    ExerciseCatalog(args.data_dir / "exercises.json").reset()
    print(f"deleted {deleted} session(s), exercises reset to defaults")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="gymcounter", description="Gyro rep counter and workout log")
    parser.add_argument("--data-dir", type=Path, default=DATA_DIR, help="Where sessions and exercises are stored")
    parser.add_argument("--log-level", default=None, help="Logging level (default from GYMCOUNTER_LOG_LEVEL)")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the WebSocket server")
    serve.add_argument("--host", default=HOST)
    serve.add_argument("--port", type=int, default=PORT)
    serve.add_argument("--exercise", default=None, help="Exercise name sessions are recorded against")
    serve.add_argument("--replay", default=None, help="Stream a JSONL recording instead of a live gyro")
    serve.add_argument("--imu-driver", default=None, help="Module exposing an IMU class to poll")
    serve.add_argument("--units", choices=("rad", "deg"), default="rad", help="Gyro units of the input")
    serve.add_argument("--threshold", type=float, default=None)
    serve.add_argument("--axis", choices=("x", "y", "z"), default=None)
    serve.set_defaults(func=cmd_serve)

    replay = sub.add_parser("replay", help="Count reps in a recording")
    replay.add_argument("file")
    replay.add_argument("--units", choices=("rad", "deg"), default="rad")
    replay.add_argument("--threshold", type=float, default=None)
    replay.add_argument("--axis", choices=("x", "y", "z"), default=None)
    replay.add_argument("--min-rep-interval", type=float, default=None)
    replay.set_defaults(func=cmd_replay)

    stats = sub.add_parser("stats", help="Print workout statistics")
    stats.add_argument("--days", type=int, default=7)
    stats.add_argument("--goal", type=int, default=DAILY_GOAL_REPS)
    stats.set_defaults(func=cmd_stats)

    exercises = sub.add_parser("exercises", help="List, add or remove exercises")
    exercises.add_argument("--add", default=None, metavar="NAME")
    exercises.add_argument("--target-muscle", default="full body")
    exercises.add_argument("--remove", default=None, metavar="NAME", help="Remove an exercise and its sessions")
    exercises.set_defaults(func=cmd_exercises)

    clear = sub.add_parser("clear", help="Delete all sessions and custom exercises")
    clear.add_argument("--yes", action="store_true")
    clear.set_defaults(func=cmd_clear)

    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    if args.log_level:
        configure_logging(args.log_level.upper())
    else:
        configure_logging()
    return args.func(args)


if __name__ == "__main__":
    raise SystemExit(main())
