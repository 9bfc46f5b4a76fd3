import threading
import time
import unittest

from horarios.engine import optimize
from horarios.exceptions import ConfigurationError, InsufficientDataError
from horarios.model import (
    Classroom,
    Course,
    DayAvailability,
    EligibleTeacher,
    SessionSpec,
    Teacher,
)
from horarios.progress import ProgressReporter
from horarios.slots import parse_time_to_minutes

MORNINGS = {
    day: DayAvailability(True, "09:00", "12:00") for day in ("monday", "tuesday", "wednesday")
}


def feasible_lab_data():
    teachers = [Teacher("T1", "Ana", "CS", ("C1",), MORNINGS)]
    rooms = [Classroom("L1", 30, "lab")]
    courses = [
        Course("C1", "Redes", "CS", (SessionSpec("practical", 2, 2),), 25, (EligibleTeacher("T1", True),))
    ]
    return teachers, rooms, courses


def overbooked_teacher_data():
    # una sola ventana de dos periodos para dos sesiones de dos periodos
    teachers = [Teacher("T1", "Ana", "CS", (), {"monday": DayAvailability(True, "09:00", "10:50")})]
    rooms = [Classroom("R1", 40, "lecture")]
    courses = [
        Course("C1", "Uno", "CS", (SessionSpec("theory", 1, 2),), 20, (EligibleTeacher("T1", True),)),
        Course("C2", "Dos", "CS", (SessionSpec("theory", 1, 2),), 20, (EligibleTeacher("T1", True),)),
    ]
    return teachers, rooms, courses


def assert_sound(test, result):
    problem = result.problem
    grid = problem.grid
    rows = result.schedule
    for i, a in enumerate(rows):
        for b in rows[i + 1:]:
            if a.overlaps(b):
                test.assertNotEqual(a.teacher_id, b.teacher_id)
                test.assertNotEqual(a.room_id, b.room_id)
        sess = problem.sessions[a.session]
        room = problem.rooms[a.room_id]
        test.assertGreaterEqual(room.capacity, sess.enrolled)
        if sess.is_lab:
            test.assertTrue(room.is_lab)
        test.assertTrue(problem.is_available(a.teacher_id, a.day, a.start, a.length))
        test.assertTrue(grid.is_contiguous(a.day, a.start, a.length))


class OptimizeTests(unittest.TestCase):
    def test_feasible_lab_schedule(self):
        teachers, rooms, courses = feasible_lab_data()
        settings = {"populationSize": 20, "maxGenerations": 50, "seed": 7, "workers": 1}
        result = optimize(teachers, rooms, courses, settings)

        self.assertTrue(result.success)
        self.assertIsNone(result.reason)
        self.assertEqual(len(result.schedule), 2)
        self.assertEqual(result.metrics.hard_violation_count, 0)
        assert_sound(self, result)
        for row in result.timetable:
            self.assertEqual(row["classroomId"], "L1")
            self.assertLessEqual(parse_time_to_minutes(row["endTime"]), 12 * 60)
        self.assertEqual(
            set(result.to_dict()),
            {"success", "reason", "schedule", "metrics"},
        )

    def test_overbooked_teacher_is_reported(self):
        teachers, rooms, courses = overbooked_teacher_data()
        result = optimize(teachers, rooms, courses, {"populationSize": 10, "maxGenerations": 20, "seed": 1})
        self.assertFalse(result.success)
        self.assertIn("conflict", result.reason)
        self.assertGreater(result.metrics.hard_violation_count, 0)
        self.assertEqual(len(result.schedule), 2)
        self.assertEqual(result.metrics.generations_run, 20)
        self.assertEqual(result.stop_reason, "max_generations")

    def test_zero_generations_returns_best_initial(self):
        teachers, rooms, courses = overbooked_teacher_data()
        result = optimize(teachers, rooms, courses, {"populationSize": 5, "maxGenerations": 0, "seed": 2})
        self.assertEqual(result.metrics.generations_run, 0)
        self.assertEqual(len(result.history), 1)
        self.assertEqual(len(result.schedule), 2)

    def test_single_individual_population(self):
        teachers, rooms, courses = overbooked_teacher_data()
        result = optimize(teachers, rooms, courses, {"populationSize": 1, "maxGenerations": 15, "seed": 3})
        self.assertEqual(result.metrics.generations_run, 15)
        self.assertEqual(len(result.schedule), 2)

    def test_best_fitness_never_worsens(self):
        teachers, rooms, courses = overbooked_teacher_data()
        result = optimize(
            teachers, rooms, courses,
            {"populationSize": 12, "maxGenerations": 25, "eliteSize": 2, "seed": 4},
        )
        best = [h["best_fitness"] for h in result.history]
        leaders = [h["generation_best"] for h in result.history]
        self.assertEqual(best, sorted(best, reverse=True))
        self.assertEqual(leaders, sorted(leaders, reverse=True))
        self.assertEqual(best[-1], result.metrics.best_fitness)

    def test_same_seed_same_schedule(self):
        teachers, rooms, courses = feasible_lab_data()
        settings = {"populationSize": 10, "maxGenerations": 10, "seed": 99}
        first = optimize(teachers, rooms, courses, settings)
        second = optimize(teachers, rooms, courses, dict(settings, workers=1))
        self.assertEqual(first.schedule, second.schedule)
        self.assertEqual(first.metrics.best_fitness, second.metrics.best_fitness)

    def test_cancel_returns_best_so_far(self):
        teachers, rooms, courses = overbooked_teacher_data()
        cancel = threading.Event()
        cancel.set()
        result = optimize(
            teachers, rooms, courses, {"maxGenerations": 50, "seed": 5}, cancel_event=cancel
        )
        self.assertTrue(result.cancelled)
        self.assertEqual(result.stop_reason, "cancelled")
        self.assertEqual(result.metrics.generations_run, 0)
        self.assertIn("cancelled", result.reason)
        self.assertEqual(len(result.schedule), 2)

    def test_capitalized_availability_days(self):
        _, rooms, courses = feasible_lab_data()
        capitalized = {day.capitalize(): slot for day, slot in MORNINGS.items()}
        teachers = [Teacher("T1", "Ana", "CS", ("C1",), capitalized)]
        result = optimize(
            teachers, rooms, courses, {"populationSize": 20, "maxGenerations": 50, "seed": 7}
        )
        self.assertTrue(result.success)
        self.assertEqual(result.hard_breakdown["teacher_unavailable"], 0)
        assert_sound(self, result)

    def test_missing_inputs(self):
        teachers, rooms, courses = feasible_lab_data()
        with self.assertRaises(InsufficientDataError):
            optimize([], rooms, courses)
        with self.assertRaises(InsufficientDataError):
            optimize(teachers, [Classroom("L9", 30, "lab", "maintenance")], courses)
        with self.assertRaises(InsufficientDataError):
            optimize(teachers, rooms, [Course("C9", sessions=())])

    def test_invalid_configuration(self):
        teachers, rooms, courses = feasible_lab_data()
        with self.assertRaises(ConfigurationError):
            optimize(teachers, rooms, courses, {"algorithm": "tabu"})
        with self.assertRaises(ConfigurationError):
            optimize(teachers, rooms, courses, {"mutationRate": 1.5})
        with self.assertRaises(ConfigurationError):
            optimize(teachers, rooms, courses, working_hours={"startTime": "18:00"})


class TerminationTests(unittest.TestCase):
    def test_conflict_free_population_stops_at_target(self):
        teachers, rooms, courses = feasible_lab_data()
        result = optimize(
            teachers, rooms, courses,
            {"populationSize": 20, "optimizationGoals": ["minimize_conflicts"], "seed": 7},
        )
        self.assertEqual(result.stop_reason, "target_reached")
        self.assertEqual(result.metrics.generations_run, 0)
        self.assertTrue(result.success)
        self.assertFalse(result.cancelled)

    def test_stagnation_window(self):
        teachers, rooms, courses = overbooked_teacher_data()
        result = optimize(
            teachers, rooms, courses,
            {"optimizationGoals": ["minimize_conflicts"], "maxStagnation": 5, "seed": 7},
        )
        self.assertEqual(result.stop_reason, "stagnation")
        self.assertGreaterEqual(result.metrics.generations_run, 5)
        self.assertLess(result.metrics.generations_run, 100)
        self.assertIn("stagnated", result.reason)

    def test_deadline_returns_best_so_far(self):
        teachers, rooms, courses = overbooked_teacher_data()
        result = optimize(teachers, rooms, courses, {"deadlineSeconds": 0, "seed": 7})
        self.assertEqual(result.stop_reason, "deadline")
        self.assertEqual(result.metrics.generations_run, 0)
        self.assertTrue(result.cancelled)
        self.assertIn("deadline reached at generation 0", result.reason)
        self.assertEqual(len(result.schedule), 2)


class ProgressTests(unittest.TestCase):
    def collect(self, asynchronous):
        events = []
        teachers, rooms, courses = overbooked_teacher_data()
        result = optimize(
            teachers, rooms, courses,
            {"populationSize": 6, "maxGenerations": 8, "seed": 6, "asyncProgress": asynchronous},
            lambda *event: events.append(event),
        )
        return result, events

    def check_events(self, result, events):
        self.assertEqual(len(events), result.metrics.generations_run + 1)
        self.assertEqual([e[2] for e in events], list(range(len(events))))
        percents = [e[0] for e in events]
        self.assertEqual(percents, sorted(percents))
        self.assertEqual(percents[-1], 100.0)
        for _, phase, _, fitness in events:
            self.assertEqual(phase, "evaluating")
            self.assertIsNotNone(fitness)

    def test_sync_progress(self):
        self.check_events(*self.collect(False))

    def test_async_progress_delivers_everything_in_order(self):
        self.check_events(*self.collect(True))

    def test_bounded_close_with_slow_consumer(self):
        release = threading.Event()
        reporter = ProgressReporter(lambda *event: release.wait(), asynchronous=True)
        for gen in range(3):
            reporter.report(50.0 * gen, "evaluating", gen, 1.0)
        started = time.monotonic()
        with self.assertLogs("horarios.progress", level="WARNING"):
            reporter.close(timeout=0.05)
        self.assertLess(time.monotonic() - started, 2.0)
        release.set()

    def test_failing_callback_does_not_stop_run(self):
        def boom(*_):
            raise RuntimeError("ui caída")

        teachers, rooms, courses = feasible_lab_data()
        with self.assertLogs("horarios.progress", level="ERROR"):
            result = optimize(teachers, rooms, courses, {"maxGenerations": 3, "seed": 8}, boom)
        self.assertEqual(len(result.schedule), 2)


if __name__ == "__main__":
    unittest.main()
