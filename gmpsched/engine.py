from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from datetime import date
from typing import Dict, List, Optional, Sequence, Tuple
import logging

import networkx as nx

from .errors import CyclicDependencyError
from .models import Task, add_days, day_span, format_day

logger = logging.getLogger(__name__)

DEFAULT_MAX_PASSES = 50


@dataclass(frozen=True)
class Violation:
    """A finish-to-start constraint that is not satisfied."""

    task_id: str
    dependency_id: str
    required_start: date
    gap_days: int  # days the task would have to move forward


def build_dependency_graph(tasks: Sequence[Task]) -> nx.DiGraph:
    """Directed graph with an edge dependency -> task for every known dependency."""
    graph = nx.DiGraph()
    known = {t.id for t in tasks}
    for task in tasks:
        graph.add_node(task.id)
    for task in tasks:
        for dep_id in task.dependencies:
            if dep_id in known:
                graph.add_edge(dep_id, task.id)
    return graph


def find_cycle(tasks: Sequence[Task]) -> Optional[List[str]]:
    """Return one dependency cycle as a closed id path, or None."""
    graph = build_dependency_graph(tasks)
    try:
        edges = nx.find_cycle(graph)
    except nx.NetworkXNoCycle:
        return None
    cycle = [edges[0][0]] + [v for _, v in edges]
    return cycle


def find_violations(tasks: Sequence[Task]) -> List[Violation]:
    """List every dependency whose end date is not strictly before the task start."""
    lookup = {t.id: t for t in tasks}
    violations: List[Violation] = []
    for task in tasks:
        for dep_id in task.dependencies:
            dep = lookup.get(dep_id)
            if dep is None:
                continue
            required = add_days(dep.end_date, 1)
            if task.start_date < required:
                violations.append(
                    Violation(task.id, dep.id, required, day_span(task.start_date, required))
                )
    return violations


def validate_tasks(tasks: Sequence[Task]) -> Tuple[bool, str]:
    """
    Validate a task set for scheduling.

    Checks for:
    - Duplicate task IDs
    - Tasks that depend on themselves
    - Inverted date ranges (end before start)
    - Circular dependencies

    Unknown dependency ids are tolerated.
    """
    duplicates = sorted(i for i, n in Counter(t.id for t in tasks).items() if n > 1)
    if duplicates:
        return False, f"Duplicate task IDs: {', '.join(duplicates)}."

    for task in tasks:
        if task.id in task.dependencies:
            return False, f"Task '{task.id}' cannot depend on itself."
        if task.end_date < task.start_date:
            return (
                False,
                f"Task '{task.id}' ends ({format_day(task.end_date)}) "
                f"before it starts ({format_day(task.start_date)}).",
            )

    cycle = find_cycle(tasks)
    if cycle:
        return False, f"Circular dependency detected: {' -> '.join(cycle)}"

    return True, "Task network is valid."


class CascadeScheduler:
    """
    Finish-to-start cascade scheduler.

    Repeatedly pushes every task to start at least one day after the latest
    end date among its dependencies, shifting its end date by the same amount,
    until a pass makes no change or ``max_passes`` is reached.
    """

    def __init__(
        self,
        max_passes: int = DEFAULT_MAX_PASSES,
        detect_cycles: bool = False,
        repair_inverted: bool = True,
    ):
        if max_passes < 1:
            raise ValueError("max_passes must be at least 1.")
        self.max_passes = max_passes
        self.detect_cycles = detect_cycles
        self.repair_inverted = repair_inverted
        self.calculation_log: List[str] = []
        self.passes: int = 0
        self.converged: bool = True
        self.shifted_ids: List[str] = []

    def _log(self, message: str) -> None:
        self.calculation_log.append(message)

    def _reset(self) -> None:
        self.calculation_log.clear()
        self.passes = 0
        self.converged = True
        self.shifted_ids = []

    def cascade(self, tasks: Sequence[Task]) -> List[Task]:
        """Return a new task list with all finish-to-start constraints propagated."""
        self._reset()
        self._log("=" * 60)
        self._log("FINISH-TO-START CASCADE")
        self._log("=" * 60)

        if self.detect_cycles:
            cycle = find_cycle(tasks)
            if cycle:
                self._log(f"ERROR: circular dependency {' -> '.join(cycle)}")
                raise CyclicDependencyError(cycle)

        working = [t.copy() for t in tasks]
        if self.repair_inverted:
            self._repair_inverted_ranges(working)

        shifted: Dict[str, None] = {}
        changed = True
        while changed and self.passes < self.max_passes:
            changed = False
            self.passes += 1
            self._log(f"\nPASS {self.passes}")
            self._log("-" * 40)

            # index lookup so later tasks see shifts made earlier in the same pass
            index = {t.id: i for i, t in enumerate(working)}

            for i, task in enumerate(working):
                if not task.dependencies:
                    continue

                dep_ends = [
                    working[index[dep_id]].end_date
                    for dep_id in task.dependencies
                    if dep_id in index
                ]
                if not dep_ends:
                    continue

                min_start = add_days(max(dep_ends), 1)
                if task.start_date < min_start:
                    shift = day_span(task.start_date, min_start)
                    working[i] = task.shifted(shift)
                    shifted[task.id] = None
                    changed = True
                    self._log(
                        f"{task.id}: start {format_day(task.start_date)} -> {format_day(min_start)} "
                        f"(+{shift}d), end -> {format_day(working[i].end_date)}"
                    )
                    logger.debug("Shifted task %s by %d day(s)", task.id, shift)

            if not changed:
                self._log("(no changes)")

        # a shift on the capped pass may still have cleared the last violation
        self.converged = not changed or not find_violations(working)
        self.shifted_ids = list(shifted)

        self._log("")
        self._log("=" * 60)
        if self.converged:
            self._log(f"CONVERGED after {self.passes} pass(es); {len(self.shifted_ids)} task(s) shifted")
        else:
            residual = find_violations(working)
            self._log(
                f"STOPPED at pass cap ({self.max_passes}); {len(residual)} violation(s) remain"
            )
            logger.warning(
                "Cascade did not converge within %d passes; %d violation(s) remain",
                self.max_passes,
                len(residual),
            )
        self._log("=" * 60)

        return working

    def _repair_inverted_ranges(self, working: List[Task]) -> None:
        for i, task in enumerate(working):
            if task.end_date < task.start_date:
                self._log(
                    f"{task.id}: end {format_day(task.end_date)} before start; "
                    f"clamped to {format_day(task.start_date)}"
                )
                working[i] = task.copy(end_date=task.start_date)


def cascade(tasks: Sequence[Task], max_passes: int = DEFAULT_MAX_PASSES) -> List[Task]:
    """Cascade with a throwaway scheduler."""
    return CascadeScheduler(max_passes=max_passes).cascade(tasks)
