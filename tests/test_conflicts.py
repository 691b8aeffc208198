import unittest
from datetime import date

from gmpsched.conflicts import EditSession, EditState, check_conflict, commit_edit, resolve_conflict
from gmpsched.engine import CascadeScheduler
from gmpsched.errors import CyclicDependencyError, ScheduleError
from gmpsched.models import Task


def make_task(task_id, start, end, deps=(), **kwargs):
    return Task(id=task_id, name=f"Task {task_id}", start_date=start, end_date=end,
                dependencies=list(deps), **kwargs)


class TestCheckConflict(unittest.TestCase):
    def test_conflict_suggests_day_after_dependency(self):
        a = make_task("A", "2023-10-01", "2023-10-05", ["B"])
        b = make_task("B", "2023-10-01", "2023-10-10")

        conflict = check_conflict(a, [a, b])

        self.assertIsNotNone(conflict)
        self.assertEqual(conflict.dependency_task_id, "B")
        self.assertEqual(conflict.dependency_task_name, "Task B")
        self.assertEqual(conflict.suggested_start_date, date(2023, 10, 11))
        self.assertEqual(conflict.to_dict()["suggestedStartDate"], "2023-10-11")

    def test_start_on_dependency_end_day_conflicts(self):
        b = make_task("B", "2023-10-01", "2023-10-10")
        a = make_task("A", "2023-10-10", "2023-10-12", ["B"])
        self.assertIsNotNone(check_conflict(a, [a, b]))

    def test_no_conflict_when_strictly_after(self):
        b = make_task("B", "2023-10-01", "2023-10-10")
        a = make_task("A", "2023-10-11", "2023-10-12", ["B"])
        self.assertIsNone(check_conflict(a, [a, b]))

    def test_first_violation_in_list_order(self):
        b = make_task("B", "2023-10-01", "2023-10-05")
        c = make_task("C", "2023-10-01", "2023-10-20")
        a = make_task("A", "2023-10-03", "2023-10-04", ["ghost", "B", "C"])

        conflict = check_conflict(a, [a, b, c])

        self.assertEqual(conflict.dependency_task_id, "B")
        self.assertEqual(conflict.suggested_start_date, date(2023, 10, 6))

    def test_no_dependencies(self):
        a = make_task("A", "2023-10-01", "2023-10-05")
        self.assertIsNone(check_conflict(a, [a]))


class TestResolution(unittest.TestCase):
    def setUp(self):
        self.a = make_task("A", "2023-10-01", "2023-10-05")
        self.b = make_task("B", "2023-10-06", "2023-10-08", ["A"])

    def test_resolve_then_cascade_leaves_late_successor(self):
        c = make_task("C", "2023-10-20", "2023-10-22", ["B"])
        tasks = [self.a, self.b, c]
        edited = self.b.copy(start_date=date(2023, 10, 3), end_date=date(2023, 10, 5))

        conflict = check_conflict(edited, tasks)
        self.assertEqual(conflict.suggested_start_date, date(2023, 10, 6))

        result = resolve_conflict(edited, conflict, tasks)

        self.assertEqual(result[1].start_date, date(2023, 10, 6))
        self.assertEqual(result[1].end_date, date(2023, 10, 8))
        self.assertEqual(result[2], c)

    def test_resolve_then_cascade_shifts_successor(self):
        c = make_task("C", "2023-10-10", "2023-10-12", ["B"])
        tasks = [self.a, self.b, c]
        # long edit: 2023-10-03 .. 2023-10-12 (9 day delta)
        edited = self.b.copy(start_date=date(2023, 10, 3), end_date=date(2023, 10, 12))

        conflict = check_conflict(edited, tasks)
        result = resolve_conflict(edited, conflict, tasks)

        self.assertEqual(result[1].start_date, date(2023, 10, 6))
        self.assertEqual(result[1].end_date, date(2023, 10, 15))
        self.assertEqual(result[2].start_date, date(2023, 10, 16))
        self.assertEqual(result[2].end_date, date(2023, 10, 18))

    def test_commit_edit_cascades_downstream(self):
        c = make_task("C", "2023-10-09", "2023-10-10", ["B"])
        tasks = [self.a, self.b, c]
        edited = self.b.copy(end_date=date(2023, 10, 15))

        result = commit_edit(edited, tasks)

        self.assertEqual(result[1].end_date, date(2023, 10, 15))
        self.assertEqual(result[2].start_date, date(2023, 10, 16))
        self.assertEqual(tasks[1].end_date, date(2023, 10, 8))


class TestEditSession(unittest.TestCase):
    def setUp(self):
        self.tasks = [
            make_task("A", "2023-10-01", "2023-10-05"),
            make_task("B", "2023-10-06", "2023-10-08", ["A"]),
        ]

    def test_commit_without_conflict(self):
        session = EditSession(self.tasks)
        edited = self.tasks[1].copy(assignee="QA")

        self.assertIsNone(session.submit(edited))
        self.assertEqual(session.state, EditState.IDLE)
        self.assertEqual(session.last_outcome, EditState.COMMITTED)
        self.assertEqual(session.tasks[1].assignee, "QA")

    def test_conflict_then_cancel(self):
        session = EditSession(self.tasks)
        edited = self.tasks[1].copy(start_date=date(2023, 10, 2), end_date=date(2023, 10, 4))

        conflict = session.submit(edited)

        self.assertIsNotNone(conflict)
        self.assertEqual(session.state, EditState.CONFLICT_PENDING)
        self.assertEqual(session.tasks, self.tasks)

        session.cancel()
        self.assertEqual(session.state, EditState.IDLE)
        self.assertEqual(session.last_outcome, EditState.CANCELLED)
        self.assertEqual(session.tasks, self.tasks)

    def test_conflict_then_resolve(self):
        session = EditSession(self.tasks)
        edited = self.tasks[1].copy(start_date=date(2023, 10, 2), end_date=date(2023, 10, 4))

        session.submit(edited)
        result = session.resolve()

        self.assertEqual(session.last_outcome, EditState.RESOLVED)
        self.assertEqual(result[1].start_date, date(2023, 10, 6))
        self.assertEqual(result[1].end_date, date(2023, 10, 8))

    def test_submit_while_pending_rejected(self):
        session = EditSession(self.tasks)
        edited = self.tasks[1].copy(start_date=date(2023, 10, 2))
        session.submit(edited)
        with self.assertRaises(ScheduleError):
            session.submit(edited)

    def test_failed_commit_returns_to_idle(self):
        session = EditSession(self.tasks, CascadeScheduler(detect_cycles=True))
        # no local conflict, but A <-> B forms a cycle
        cyclic = self.tasks[0].copy(start_date=date(2023, 10, 20),
                                    end_date=date(2023, 10, 21), dependencies=["B"])

        with self.assertRaises(CyclicDependencyError):
            session.submit(cyclic)

        self.assertEqual(session.state, EditState.IDLE)
        self.assertIsNone(session.pending_task)
        self.assertEqual(session.tasks, self.tasks)

        self.assertIsNone(session.submit(self.tasks[1].copy(assignee="QA")))
        self.assertEqual(session.last_outcome, EditState.COMMITTED)
        self.assertEqual(session.tasks[1].assignee, "QA")

    def test_failed_resolve_keeps_conflict_pending(self):
        session = EditSession(self.tasks, CascadeScheduler(detect_cycles=True))
        cyclic = self.tasks[0].copy(start_date=date(2023, 10, 7),
                                    end_date=date(2023, 10, 8), dependencies=["B"])

        self.assertIsNotNone(session.submit(cyclic))
        with self.assertRaises(CyclicDependencyError):
            session.resolve()

        self.assertEqual(session.state, EditState.CONFLICT_PENDING)
        self.assertEqual(session.tasks, self.tasks)
        session.cancel()
        self.assertEqual(session.state, EditState.IDLE)

    def test_resolve_without_conflict_rejected(self):
        session = EditSession(self.tasks)
        with self.assertRaises(ScheduleError):
            session.resolve()
        with self.assertRaises(ScheduleError):
            session.cancel()


if __name__ == "__main__":
    unittest.main()
