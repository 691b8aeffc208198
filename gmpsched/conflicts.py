from __future__ import annotations

from enum import Enum
from typing import List, Optional, Sequence
import logging

from .engine import CascadeScheduler
from .errors import ScheduleError
from .models import ConflictInfo, Task, add_days, day_span, format_day

logger = logging.getLogger(__name__)


def check_conflict(updated_task: Task, all_tasks: Sequence[Task]) -> Optional[ConflictInfo]:
    """
    Check an edited task against its dependencies.

    Dependencies are checked in their stored order and only the first one
    whose end date is on or after the task's start date is reported.
    """
    for dep_id in updated_task.dependencies:
        dep = next((t for t in all_tasks if t.id == dep_id), None)
        if dep is None:
            continue
        if dep.end_date >= updated_task.start_date:
            return ConflictInfo(
                dependency_task_id=dep.id,
                dependency_task_name=dep.name,
                suggested_start_date=add_days(dep.end_date, 1),
            )
    return None


def _replace_task(tasks: Sequence[Task], updated_task: Task) -> List[Task]:
    return [updated_task.copy() if t.id == updated_task.id else t.copy() for t in tasks]


def commit_edit(
    updated_task: Task,
    tasks: Sequence[Task],
    scheduler: Optional[CascadeScheduler] = None,
) -> List[Task]:
    """Apply an edit as-is, then cascade the full task set."""
    scheduler = scheduler or CascadeScheduler()
    return scheduler.cascade(_replace_task(tasks, updated_task))


def resolve_conflict(
    pending_task: Task,
    conflict: ConflictInfo,
    tasks: Sequence[Task],
    scheduler: Optional[CascadeScheduler] = None,
) -> List[Task]:
    """Move the pending task to the suggested start, keep its duration, commit and cascade."""
    shift = day_span(pending_task.start_date, conflict.suggested_start_date)
    fixed = pending_task.shifted(shift)
    logger.debug(
        "Resolved conflict on %s: start -> %s", pending_task.id, format_day(fixed.start_date)
    )
    return commit_edit(fixed, tasks, scheduler)


class EditState(str, Enum):
    IDLE = "Idle"
    EDITING = "Editing"
    CONFLICT_PENDING = "Conflict-Pending"
    CANCELLED = "Cancelled"
    RESOLVED = "Resolved"
    COMMITTED = "Committed"


class EditSession:
    """
    Two-step, user-confirmable manual editing of a task set.

    ``submit`` either commits the edit (followed by a cascade) or holds it
    and returns the conflict. A held edit is then either ``resolve``d with the
    suggested start date or ``cancel``led.
    """

    def __init__(self, tasks: Sequence[Task], scheduler: Optional[CascadeScheduler] = None):
        self._tasks: List[Task] = [t.copy() for t in tasks]
        self.scheduler = scheduler or CascadeScheduler()
        self.state = EditState.IDLE
        self.pending_task: Optional[Task] = None
        self.conflict: Optional[ConflictInfo] = None
        self.history: List[EditState] = []

    @property
    def tasks(self) -> List[Task]:
        return [t.copy() for t in self._tasks]

    @property
    def last_outcome(self) -> Optional[EditState]:
        return self.history[-1] if self.history else None

    def _finish(self, outcome: EditState) -> None:
        self.history.append(outcome)
        self.pending_task = None
        self.conflict = None
        self.state = EditState.IDLE

    def submit(self, updated_task: Task) -> Optional[ConflictInfo]:
        if self.state is not EditState.IDLE:
            raise ScheduleError(f"Cannot submit an edit while {self.state.value}.")
        self.state = EditState.EDITING

        try:
            conflict = check_conflict(updated_task, self._tasks)
            if conflict is not None:
                self.pending_task = updated_task.copy()
                self.conflict = conflict
                self.state = EditState.CONFLICT_PENDING
                logger.info(
                    "Edit of %s conflicts with %s; suggested start %s",
                    updated_task.id,
                    conflict.dependency_task_id,
                    format_day(conflict.suggested_start_date),
                )
                return conflict

            self._tasks = commit_edit(updated_task, self._tasks, self.scheduler)
        except Exception:
            # failed edits are dropped, the committed tasks stay as they were
            self.pending_task = None
            self.conflict = None
            self.state = EditState.IDLE
            raise

        self._finish(EditState.COMMITTED)
        return None

    def resolve(self) -> List[Task]:
        """Apply the suggested fix. If the commit fails the conflict stays pending."""
        if self.state is not EditState.CONFLICT_PENDING:
            raise ScheduleError("No pending conflict to resolve.")
        try:
            resolved = resolve_conflict(
                self.pending_task, self.conflict, self._tasks, self.scheduler
            )
        except Exception:
            self.state = EditState.CONFLICT_PENDING
            raise
        self._tasks = resolved
        self._finish(EditState.RESOLVED)
        return self.tasks

    def cancel(self) -> None:
        if self.state is not EditState.CONFLICT_PENDING:
            raise ScheduleError("No pending conflict to cancel.")
        self._finish(EditState.CANCELLED)
