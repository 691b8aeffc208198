from __future__ import annotations

from typing import List


class ScheduleError(ValueError):
    """Base class for scheduling input errors."""


class InvalidDateError(ScheduleError):
    """Raised when a date value is not a valid YYYY-MM-DD calendar day."""

    def __init__(self, value: object, field_name: str = "date"):
        self.value = value
        self.field_name = field_name
        super().__init__(f"Invalid {field_name} '{value}'. Expected YYYY-MM-DD.")


class CyclicDependencyError(ScheduleError):
    """Raised when the dependency graph contains a cycle."""

    def __init__(self, cycle: List[str]):
        self.cycle = list(cycle)
        super().__init__(f"Circular dependency detected: {' -> '.join(self.cycle)}")


class ProposalError(ScheduleError):
    """Raised when an AI change proposal is missing required fields."""
