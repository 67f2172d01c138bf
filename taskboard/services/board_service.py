from __future__ import annotations

import logging
from typing import Optional

from taskboard.domain.entities import TaskEntity
from taskboard.domain.enums import SortMode, TaskStatus, UserRole
from taskboard.domain.errors import ValidationError
from taskboard.domain.ordering import (
    move_between,
    move_to_index,
    partition,
    reconcile_order,
    sort_column,
)
from taskboard.infra.local_storage import LocalStorage

from .task_service import TaskService
from .timer_engine import TimerEngine

logger = logging.getLogger(__name__)


class BoardService:
    """Column views of the board plus the per-column sort and manual order.

    Sort modes and custom orders are UI preferences, so they stay in local
    storage in both operating modes.
    """

    def __init__(
        self,
        storage: LocalStorage,
        tasks: TaskService,
        timer: Optional[TimerEngine] = None,
    ) -> None:
        self._storage = storage
        self._tasks = tasks
        self._timer = timer

    def sort_mode(self, status: TaskStatus) -> SortMode:
        raw = self._storage.get_json(_sort_key(status), SortMode.DEFAULT.value)
        try:
            return SortMode(raw)
        except ValueError:
            logger.warning("Unknown sort mode %r for %s, using default", raw, status)
            return SortMode.DEFAULT

    def set_sort_mode(self, status: TaskStatus, mode: SortMode) -> None:
        self._storage.set_json(_sort_key(status), SortMode(mode).value)

    def custom_order(self, status: TaskStatus) -> list[str]:
        return list(self._storage.get_json(_order_key(status), []))

    def columns(
        self, tasks: Optional[list[TaskEntity]] = None
    ) -> dict[TaskStatus, list[TaskEntity]]:
        if tasks is None:
            tasks = self._tasks.list_tasks()
        result = {}
        for status, column in partition(tasks).items():
            order = self._reconciled(status, [task.id for task in column])
            result[status] = sort_column(column, status, self.sort_mode(status), order)
        return result

    def reorder(self, status: TaskStatus, task_id: str, index: int) -> list[str]:
        if self.sort_mode(status) != SortMode.CUSTOM:
            raise ValidationError("Switch the column to custom order to arrange tasks by hand")
        ids = [task.id for task in self._tasks.list_tasks() if task.status == status]
        if task_id not in ids:
            raise ValidationError("Task is not in this column")
        order = move_to_index(self._reconciled(status, ids), task_id, index)
        self._save_order(status, order)
        return order

    def drop(
        self,
        task_id: str,
        target: TaskStatus,
        before_id: str | None = None,
        role: UserRole = UserRole.USER,
    ) -> TaskEntity:
        """Handle a drag that ends on ``target``.

        A rejected status change raises before any order list is touched.
        """
        task = self._tasks.get_task(task_id)
        target = TaskStatus(target)

        if task.status == target:
            if self.sort_mode(target) == SortMode.CUSTOM:
                order = [item for item in self.custom_order(target) if item != task_id]
                index = order.index(before_id) if before_id in order else len(order)
                self.reorder(target, task_id, index)
            return task

        updated = self._change_status(task, target, role)
        source, destination = move_between(
            self.custom_order(task.status), self.custom_order(target), task_id, before_id
        )
        self._save_order(task.status, source)
        self._save_order(target, destination)
        return updated

    def _change_status(self, task: TaskEntity, target: TaskStatus, role: UserRole) -> TaskEntity:
        if self._timer is not None:
            if target == TaskStatus.COMPLETED and self._timer.active_task_id == task.id:
                return self._timer.complete(task.id, role)
            if target == TaskStatus.IN_PROGRESS and task.status == TaskStatus.COMPLETED:
                return self._timer.reopen(task.id, role).task
            if target == TaskStatus.BACKLOG and self._timer.active_task_id == task.id:
                self._tasks.change_status(task.id, target, role)
                return self._timer.stop(task.id)
        return self._tasks.change_status(task.id, target, role)

    def _reconciled(self, status: TaskStatus, ids: list[str]) -> list[str]:
        stored = self.custom_order(status)
        order = reconcile_order(stored, ids)
        if order != stored:
            self._save_order(status, order)
        return order

    def _save_order(self, status: TaskStatus, order: list[str]) -> None:
        self._storage.set_json(_order_key(status), order)


def _sort_key(status: TaskStatus) -> str:
    return f"sort_{TaskStatus(status).value.lower()}"


def _order_key(status: TaskStatus) -> str:
    return f"order_{TaskStatus(status).value.lower()}"
