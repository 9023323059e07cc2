"""Completion progress for the client portal and staff views."""

from dataclasses import dataclass
from typing import Any, Iterable, Mapping
from uuid import UUID


@dataclass(frozen=True)
class Progress:
    """Completion counters with a whole-number percentage."""

    percent: int
    completed: int
    total: int


def _field(task: Any, name: str) -> Any:
    if isinstance(task, Mapping):
        return task.get(name)
    return getattr(task, name, None)


def percent_complete(completed: int, total: int) -> int:
    """Whole percentage, rounding halves up. Zero when there is nothing to do."""
    if total <= 0:
        return 0
    # floor(100 * completed / total + 1/2) in integer arithmetic
    return (200 * completed + total) // (2 * total)


def compute_project_progress(tasks: Iterable[Any]) -> Progress:
    """Progress over client-visible (external) tasks only."""
    total = 0
    completed = 0
    for task in tasks:
        if _field(task, "visibility") != "external":
            continue
        total += 1
        if _field(task, "status") == "completed":
            completed += 1
    return Progress(percent=percent_complete(completed, total), completed=completed, total=total)


def compute_stage_progress(stage_id: UUID, tasks: Iterable[Any]) -> Progress:
    """Progress over every task in the stage, internal and external alike.

    Unlike the project bar this counts staff-only work too.
    """
    total = 0
    completed = 0
    for task in tasks:
        if _field(task, "stage_id") != stage_id:
            continue
        total += 1
        if _field(task, "status") == "completed":
            completed += 1
    return Progress(percent=percent_complete(completed, total), completed=completed, total=total)


def compute_overall_progress(tasks: Iterable[Any]) -> Progress:
    """Progress over all tasks regardless of visibility (staff dashboards, CRM)."""
    statuses = [_field(task, "status") for task in tasks]
    completed = sum(1 for s in statuses if s == "completed")
    return Progress(
        percent=percent_complete(completed, len(statuses)),
        completed=completed,
        total=len(statuses),
    )
