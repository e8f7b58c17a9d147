import unittest
from datetime import date, datetime, timedelta, timezone

from gymcounter.models import AngularVelocity, ExerciseType, WorkoutSession, default_exercises

T0 = datetime(2026, 3, 1, 8, 0, tzinfo=timezone.utc)


class WorkoutSessionTests(unittest.TestCase):
    def test_derived_values(self) -> None:
        s = WorkoutSession(start_time=T0, end_time=T0 + timedelta(seconds=125), rep_count=25, exercise_id="squats")
        self.assertEqual(s.duration, 125.0)
        self.assertEqual(s.formatted_duration, "02:05")
        self.assertAlmostEqual(s.average_time_per_rep, 5.0)
        self.assertEqual(s.workout_date, date(2026, 3, 1))
        self.assertTrue(s.is_valid())

    def test_validity_predicate(self) -> None:
        no_reps = WorkoutSession(start_time=T0, end_time=T0 + timedelta(seconds=5), rep_count=0, exercise_id=None)
        no_end = WorkoutSession(start_time=T0, end_time=None, rep_count=3, exercise_id=None)
        same_time = WorkoutSession(start_time=T0, end_time=T0, rep_count=3, exercise_id=None)
        for s in (no_reps, no_end, same_time):
            self.assertFalse(s.is_valid())
        self.assertEqual(no_end.duration, 0.0)
        self.assertEqual(no_reps.average_time_per_rep, 0.0)

    def test_dict_round_trip_and_notes(self) -> None:
        s = WorkoutSession(
            session_id="abc",
            start_time=T0,
            end_time=T0 + timedelta(minutes=3),
            rep_count=12,
            exercise_id="push-ups",
        )
        data = s.to_dict()
        self.assertEqual(data["end_time"], "2026-03-01T08:03:00Z")
        self.assertEqual(WorkoutSession.from_dict(data), s)

        annotated = s.with_notes("slow tempo")
        self.assertEqual(annotated.notes, "slow tempo")
        self.assertIsNone(s.notes)
        self.assertEqual(annotated.session_id, s.session_id)

    def test_session_ids_are_unique(self) -> None:
        a = WorkoutSession(start_time=T0, end_time=None, rep_count=1, exercise_id=None)
        b = WorkoutSession(start_time=T0, end_time=None, rep_count=1, exercise_id=None)
        self.assertNotEqual(a.session_id, b.session_id)


class ExerciseTypeTests(unittest.TestCase):
    def test_defaults(self) -> None:
        exercises = default_exercises()
        self.assertEqual([e.sort_order for e in exercises], [1, 2, 3, 4, 5])
        self.assertFalse(any(e.is_custom for e in exercises))

    def test_from_dict_fills_missing_fields(self) -> None:
        ex = ExerciseType.from_dict({"name": "burpees"})
        self.assertEqual(ex.icon, "figure.mixed.cardio")
        self.assertEqual(ex.sort_order, 0)


class AngularVelocityTests(unittest.TestCase):
    def test_axis_and_magnitude(self) -> None:
        av = AngularVelocity(3.0, 4.0, 0.0)
        self.assertEqual(av.axis("y"), 4.0)
        self.assertAlmostEqual(av.magnitude, 5.0)


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
