"""Merge AI-generated change proposals into a task set."""

from __future__ import annotations

from dataclasses import dataclass, field
from itertools import count
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Set
import logging

from .engine import CascadeScheduler
from .errors import InvalidDateError, ProposalError
from .models import ProposedChange, RiskLevel, Task, TaskStatus, day_span, parse_day

logger = logging.getLogger(__name__)

DEFAULT_AI_ASSIGNEE = "AI 建议"


def apply_proposal(
    tasks: Sequence[Task],
    changes: Sequence[ProposedChange],
    new_tasks: Sequence[Task] = (),
    scheduler: Optional[CascadeScheduler] = None,
) -> List[Task]:
    """
    Merge proposed changes and new tasks, then cascade the merged set.

    Existing tasks get new start/end dates and, if given, a new assignee.
    New tasks are appended with their pending markers stripped. The cascade
    runs unconditionally since proposed dates are not trusted to respect
    dependencies.
    """
    by_id: Dict[str, ProposedChange] = {}
    for change in changes:
        # first change for an id wins
        by_id.setdefault(change.task_id, change)

    merged: List[Task] = []
    for task in tasks:
        change = by_id.get(task.id)
        if change is None:
            merged.append(task.copy())
            continue
        merged.append(
            task.copy(
                start_date=change.new_start_date,
                end_date=change.new_end_date,
                assignee=change.new_assignee or task.assignee,
            )
        )

    missing = set(by_id) - {t.id for t in tasks}
    if missing:
        logger.info("Ignoring changes for unknown task ids: %s", ", ".join(sorted(missing)))

    merged.extend(t.committed() for t in new_tasks)

    scheduler = scheduler or CascadeScheduler()
    return scheduler.cascade(merged)


@dataclass
class Proposal:
    """A pending batch of AI-suggested changes. Rejecting it means discarding it."""

    changes: List[ProposedChange] = field(default_factory=list)
    new_tasks: List[Task] = field(default_factory=list)
    gmp_advice: str = ""
    overall_risk: Optional[RiskLevel] = None
    response_text: str = ""

    @property
    def is_empty(self) -> bool:
        return not self.changes and not self.new_tasks

    def apply(self, tasks: Sequence[Task], scheduler: Optional[CascadeScheduler] = None) -> List[Task]:
        return apply_proposal(tasks, self.changes, self.new_tasks, scheduler)


def _require(item: Mapping[str, Any], key: str, where: str) -> Any:
    value = item.get(key)
    if value is None or value == "":
        raise ProposalError(f"{where} is missing '{key}'.")
    return value


def _parse(value: Any, field_name: str, where: str):
    try:
        return parse_day(value, field_name)
    except InvalidDateError as exc:
        raise ProposalError(f"{where}: {exc}") from exc


def _unused_ids(prefix: str, taken: Set[str]) -> Iterator[str]:
    """Yield <prefix>_0, <prefix>_1, ... skipping ids already in the task set."""
    for n in count():
        candidate = f"{prefix}_{n}"
        if candidate not in taken:
            yield candidate


def build_proposal(
    response: Mapping[str, Any],
    tasks: Sequence[Task],
    id_prefix: str = "new_task",
) -> Proposal:
    """Translate an AI analysis response into a Proposal against ``tasks``."""
    if not isinstance(response, Mapping):
        raise ProposalError(f"response must be a mapping, got {type(response).__name__}")

    lookup = {t.id: t for t in tasks}
    changes: List[ProposedChange] = []
    for idx, item in enumerate(response.get("affected_tasks") or []):
        where = f"affected_tasks[{idx}]"
        task_id = str(_require(item, "task_id", where))
        original = lookup.get(task_id)
        changes.append(
            ProposedChange(
                task_id=task_id,
                new_start_date=_parse(_require(item, "new_start_date", where), "new_start_date", where),
                new_end_date=_parse(_require(item, "new_end_date", where), "new_end_date", where),
                reason=item.get("reason", ""),
                new_assignee=item.get("new_assignee") or None,
                task_name=original.name if original else None,
                original_start_date=original.start_date if original else None,
                original_end_date=original.end_date if original else None,
                original_assignee=original.assignee if original else None,
            )
        )

    new_ids = _unused_ids(id_prefix, {t.id for t in tasks})
    new_tasks: List[Task] = []
    for idx, item in enumerate(response.get("created_tasks") or []):
        where = f"created_tasks[{idx}]"
        start = _parse(_require(item, "start_date", where), "start_date", where)
        end = _parse(_require(item, "end_date", where), "end_date", where)
        new_tasks.append(
            Task(
                id=next(new_ids),
                name=str(_require(item, "name", where)),
                start_date=start,
                end_date=end,
                duration=day_span(start, end) + 1,
                status=TaskStatus.PENDING,
                assignee=item.get("assignee") or DEFAULT_AI_ASSIGNEE,
                progress=0,
                dependencies=[],
                gmp_critical=bool(item.get("gmp_critical", False)),
                category=item.get("category") or "General",
                is_new=True,
                reason=item.get("reason", ""),
            )
        )

    risk_raw = response.get("overall_risk")
    try:
        risk = RiskLevel(risk_raw) if risk_raw else None
    except ValueError:
        logger.warning("Unknown risk level %r in proposal; ignoring", risk_raw)
        risk = None

    return Proposal(
        changes=changes,
        new_tasks=new_tasks,
        gmp_advice=response.get("gmp_advice") or "",
        overall_risk=risk,
        response_text=response.get("response_text") or "",
    )
