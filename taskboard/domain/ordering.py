"""Column ordering for the board.

Every function here is pure: callers own the task list and the persisted
custom orders, and get new lists back.
"""
from __future__ import annotations

from typing import Iterable, Optional, Sequence

from .entities import TaskEntity
from .enums import SortMode, TaskPriority, TaskStatus

COLUMNS = (TaskStatus.BACKLOG, TaskStatus.IN_PROGRESS, TaskStatus.COMPLETED)

_PRIORITY_RANK = {TaskPriority.HIGH: 0, TaskPriority.LOW: 1}


def partition(tasks: Iterable[TaskEntity]) -> dict[TaskStatus, list[TaskEntity]]:
    columns: dict[TaskStatus, list[TaskEntity]] = {status: [] for status in COLUMNS}
    for task in tasks:
        columns[task.status].append(task)
    return columns


def sort_column(
    tasks: Sequence[TaskEntity],
    status: TaskStatus,
    mode: SortMode = SortMode.DEFAULT,
    custom_order: Optional[Sequence[str]] = None,
) -> list[TaskEntity]:
    tasks = list(tasks)

    if mode == SortMode.DEFAULT:
        if status == TaskStatus.IN_PROGRESS:
            by_updated = sorted(tasks, key=lambda task: task.updated_at)
            return sorted(by_updated, key=lambda task: not task.has_active_timer)
        return sorted(tasks, key=lambda task: task.created_at, reverse=True)

    if mode == SortMode.PRIORITY:
        return sorted(tasks, key=lambda task: _PRIORITY_RANK[task.priority])

    if mode == SortMode.CATEGORY:
        return sorted(tasks, key=lambda task: task.category.name if task.category else "")

    if mode == SortMode.START_TIME:
        return _sort_by_timestamp(tasks, "start_time", descending=False)

    if mode == SortMode.END_TIME:
        return _sort_by_timestamp(tasks, "end_time", descending=True)

    if mode in (SortMode.EXPECTED_ASC, SortMode.EXPECTED_DESC):
        return sorted(
            tasks,
            key=lambda task: task.expected_time or 0,
            reverse=mode == SortMode.EXPECTED_DESC,
        )

    if mode in (SortMode.ACTUAL_ASC, SortMode.ACTUAL_DESC):
        return sorted(
            tasks,
            key=lambda task: task.actual_time,
            reverse=mode == SortMode.ACTUAL_DESC,
        )

    by_id = {task.id: task for task in tasks}
    order = reconcile_order(custom_order or [], [task.id for task in tasks])
    return [by_id[task_id] for task_id in order]


def _sort_by_timestamp(tasks: list[TaskEntity], field: str, descending: bool) -> list[TaskEntity]:
    present = [task for task in tasks if getattr(task, field) is not None]
    missing = [task for task in tasks if getattr(task, field) is None]
    present.sort(key=lambda task: getattr(task, field), reverse=descending)
    return present + missing


def reconcile_order(order: Sequence[str], current_ids: Iterable[str]) -> list[str]:
    """Drop ids that disappeared, append new ones, keep the rest in place."""
    current = list(dict.fromkeys(current_ids))
    live = set(current)
    kept = [task_id for task_id in dict.fromkeys(order) if task_id in live]
    seen = set(kept)
    return kept + [task_id for task_id in current if task_id not in seen]


def move_to_index(order: Sequence[str], task_id: str, index: int) -> list[str]:
    result = [item for item in order if item != task_id]
    index = max(0, min(index, len(result)))
    result.insert(index, task_id)
    return result


def move_between(
    source: Sequence[str],
    destination: Sequence[str],
    task_id: str,
    before_id: str | None = None,
) -> tuple[list[str], list[str]]:
    """Move ``task_id`` from one column order into another.

    Dropping on a task inserts in front of it; dropping on the column
    itself (``before_id`` is None or unknown) appends.
    """
    new_source = [item for item in source if item != task_id]
    new_destination = [item for item in destination if item != task_id]
    if before_id is not None and before_id in new_destination:
        new_destination.insert(new_destination.index(before_id), task_id)
    else:
        new_destination.append(task_id)
    return new_source, new_destination
