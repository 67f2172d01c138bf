from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Callable, Optional

from taskboard.domain.entities import TaskEntity
from taskboard.domain.enums import TaskStatus, UserRole
from taskboard.domain.filters import TaskFilters
from taskboard.domain.progress import DayProgress, weekly_progress
from taskboard.domain.transitions import check_delete, check_transition
from taskboard.infra.models import utcnow
from taskboard.infra.stores import TaskStore

logger = logging.getLogger(__name__)


class TaskService:
    def __init__(self, store: TaskStore, clock: Callable[[], datetime] = utcnow) -> None:
        self._store = store
        self._clock = clock

    @property
    def store(self) -> TaskStore:
        return self._store

    def list_tasks(self, filters: TaskFilters = TaskFilters()) -> list[TaskEntity]:
        return self._store.list_tasks(filters)

    def get_task(self, task_id: str) -> TaskEntity:
        return self._store.get_task(task_id)

    def create_task(self, data: dict) -> TaskEntity:
        task = self._store.create_task(self._normalize_data(data))
        logger.info("Created task %s (%s)", task.id, task.status)
        return task

    def update_task(
        self, task_id: str, data: dict, role: UserRole = UserRole.USER
    ) -> TaskEntity:
        normalized = self._normalize_data(data)
        status = normalized.pop("status", None)
        task = None
        if status is not None:
            task = self.change_status(task_id, status, role)
        if normalized:
            task = self._store.update_task(task_id, normalized)
        return task or self._store.get_task(task_id)

    def change_status(
        self,
        task_id: str,
        status: TaskStatus,
        role: UserRole = UserRole.USER,
        end_time: Optional[datetime] = None,
        completed_at: Optional[datetime] = None,
        changes: Optional[dict] = None,
    ) -> TaskEntity:
        """Move a task to another column after checking the transition rules.

        ``changes`` are written before the status itself, so a completing
        timer lands its final ``actual_time`` first.
        """
        task = self._store.get_task(task_id)
        target = TaskStatus(status)
        check_transition(task, target, role)
        if task.status == target and not changes:
            return task
        if changes:
            self._store.update_task(task_id, changes)
        updated = self._store.set_status(task_id, target, end_time, completed_at)
        logger.info("Task %s moved %s -> %s", task_id, task.status, target)
        return updated

    def delete_task(self, task_id: str, role: UserRole = UserRole.USER) -> None:
        check_delete(self._store.get_task(task_id), role)
        self._store.delete_task(task_id, role)
        logger.info("Deleted task %s", task_id)

    def get_weekly_progress(self, today: Optional[date] = None) -> list[DayProgress]:
        return weekly_progress(self._store.list_tasks(), today or self._clock().date())

    def _normalize_data(self, data: dict) -> dict:
        normalized = dict(data)
        if "status" in normalized and isinstance(normalized["status"], str):
            normalized["status"] = TaskStatus(normalized["status"])
        return normalized
