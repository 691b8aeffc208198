from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional
import re

from .errors import InvalidDateError

_DAY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


class TaskStatus(str, Enum):
    PENDING = "Pending"
    IN_PROGRESS = "In Progress"
    COMPLETED = "Completed"
    BLOCKED = "Blocked"
    DELAYED = "Delayed"


class RiskLevel(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"


def parse_day(value: Any, field_name: str = "date") -> date:
    """Parse a YYYY-MM-DD string (or pass through a date) into a calendar day."""
    if isinstance(value, date):
        # datetime is a date subclass; drop any time of day
        return date(value.year, value.month, value.day)
    if not isinstance(value, str) or not _DAY_RE.match(value.strip()):
        raise InvalidDateError(value, field_name)
    try:
        return date.fromisoformat(value.strip())
    except ValueError:
        raise InvalidDateError(value, field_name) from None


def format_day(day: date) -> str:
    return day.isoformat()


def add_days(day: date, days: int) -> date:
    return day + timedelta(days=days)


def day_span(start: date, end: date) -> int:
    """Whole days from start to end (end - start)."""
    return (end - start).days


@dataclass
class Task:
    """A schedulable unit of work with finish-to-start dependencies."""

    id: str
    name: str
    start_date: date
    end_date: date
    duration: int = 0  # informational, never recomputed by the engine
    status: TaskStatus = TaskStatus.PENDING
    assignee: str = ""
    progress: int = 0
    dependencies: List[str] = field(default_factory=list)
    gmp_critical: bool = False
    category: str = "General"

    # Pending-proposal markers
    is_new: bool = False
    reason: Optional[str] = None

    def __post_init__(self) -> None:
        self.start_date = parse_day(self.start_date, "startDate")
        self.end_date = parse_day(self.end_date, "endDate")
        if isinstance(self.status, str) and not isinstance(self.status, TaskStatus):
            self.status = TaskStatus(self.status)
        self.dependencies = list(self.dependencies or [])

    @property
    def span_days(self) -> int:
        """Inclusive length in days: endDate - startDate + 1."""
        return day_span(self.start_date, self.end_date) + 1

    def copy(self, **changes: Any) -> "Task":
        """Return an unaliased copy, optionally with some fields replaced."""
        changes.setdefault("dependencies", list(self.dependencies))
        return replace(self, **changes)

    def shifted(self, days: int) -> "Task":
        """Copy with start and end moved by the same number of days."""
        return self.copy(
            start_date=add_days(self.start_date, days),
            end_date=add_days(self.end_date, days),
        )

    def committed(self) -> "Task":
        """Copy with the pending-proposal markers stripped."""
        return self.copy(is_new=False, reason=None)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Task":
        if "id" not in data:
            raise KeyError("Task data requires an 'id' field.")
        start = parse_day(data.get("startDate"), "startDate")
        end = parse_day(data.get("endDate"), "endDate")
        duration = data.get("duration")
        return cls(
            id=str(data["id"]),
            name=data.get("name", ""),
            start_date=start,
            end_date=end,
            duration=int(duration) if duration is not None else day_span(start, end) + 1,
            status=TaskStatus(data.get("status", TaskStatus.PENDING.value)),
            assignee=data.get("assignee", ""),
            progress=int(data.get("progress", 0) or 0),
            dependencies=[str(d) for d in data.get("dependencies") or []],
            gmp_critical=bool(data.get("gmpCritical", False)),
            category=data.get("category", "General"),
            is_new=bool(data.get("isNew", False)),
            reason=data.get("reason"),
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "startDate": format_day(self.start_date),
            "endDate": format_day(self.end_date),
            "duration": self.duration,
            "status": self.status.value,
            "assignee": self.assignee,
            "progress": self.progress,
            "dependencies": list(self.dependencies),
            "gmpCritical": self.gmp_critical,
            "category": self.category,
        }
        if self.is_new:
            data["isNew"] = True
        if self.reason is not None:
            data["reason"] = self.reason
        return data


def with_derived_duration(tasks: List[Task]) -> List[Task]:
    """Copies of tasks with duration recomputed from their date range."""
    return [t.copy(duration=t.span_days) for t in tasks]


@dataclass
class ProposedChange:
    """A not-yet-committed date/assignee change to an existing task."""

    task_id: str
    new_start_date: date
    new_end_date: date
    reason: str = ""
    new_assignee: Optional[str] = None

    # Display-only snapshot of the task before the change
    task_name: Optional[str] = None
    original_start_date: Optional[date] = None
    original_end_date: Optional[date] = None
    original_assignee: Optional[str] = None

    def __post_init__(self) -> None:
        self.new_start_date = parse_day(self.new_start_date, "newStartDate")
        self.new_end_date = parse_day(self.new_end_date, "newEndDate")
        if self.original_start_date is not None:
            self.original_start_date = parse_day(self.original_start_date, "originalStartDate")
        if self.original_end_date is not None:
            self.original_end_date = parse_day(self.original_end_date, "originalEndDate")


@dataclass(frozen=True)
class ConflictInfo:
    """First finish-to-start violation found for an edited task."""

    dependency_task_id: str
    dependency_task_name: str
    suggested_start_date: date

    def to_dict(self) -> Dict[str, str]:
        return {
            "dependencyTaskId": self.dependency_task_id,
            "dependencyTaskName": self.dependency_task_name,
            "suggestedStartDate": format_day(self.suggested_start_date),
        }
