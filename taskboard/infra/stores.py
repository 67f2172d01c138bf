"""Task Store Adapter: one contract, a local and a remote backend.

Callers never branch on the backend. Which one is used is decided once in
``taskboard.main`` from the session state.
"""
from __future__ import annotations

import functools
import logging
import random
import string
import time
from dataclasses import replace
from datetime import date, datetime
from typing import Callable, Optional, Protocol

from sqlalchemy.exc import SQLAlchemyError

from taskboard.domain.entities import CategoryEntity, TaskEntity
from taskboard.domain.enums import TaskPriority, TaskStatus, UserRole
from taskboard.domain.errors import ConflictError, NotFoundError, TransientIOError
from taskboard.domain.filters import TaskFilters
from taskboard.domain.transitions import check_delete, status_changes
from taskboard.domain.validation import (
    normalize_category_data,
    normalize_task_data,
    parse_day,
    parse_timestamp,
)

from .local_storage import LocalStorage
from .models import utcnow
from .repository import CategoryRepository, TaskRepository

logger = logging.getLogger(__name__)

TASKS_KEY = "tasks"
CATEGORIES_KEY = "categories"
TASK_COUNTER_KEY = "task_counter"

TASK_DEFAULTS = {
    "description": "",
    "status": TaskStatus.BACKLOG,
    "priority": TaskPriority.LOW,
    "expected_time": None,
    "actual_time": 0,
    "start_time": None,
    "end_time": None,
    "scheduled_start_time": None,
    "completed_at": None,
    "category_id": None,
}


class TaskStore(Protocol):
    def list_tasks(self, filters: TaskFilters = TaskFilters()) -> list[TaskEntity]: ...

    def get_task(self, task_id: str) -> TaskEntity: ...

    def create_task(self, data: dict) -> TaskEntity: ...

    def update_task(self, task_id: str, data: dict) -> TaskEntity: ...

    def set_status(
        self,
        task_id: str,
        status: TaskStatus,
        end_time: Optional[datetime] = None,
        completed_at: Optional[datetime] = None,
    ) -> TaskEntity: ...

    def delete_task(self, task_id: str, role: UserRole = UserRole.USER) -> None: ...

    def list_categories(self) -> list[CategoryEntity]: ...

    def create_category(self, data: dict) -> CategoryEntity: ...

    def update_category(self, category_id: str, data: dict) -> CategoryEntity: ...

    def delete_category(self, category_id: str) -> int: ...

    def is_empty(self) -> bool: ...

    def clear(self) -> None: ...


def generate_temp_id() -> str:
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=9))
    return f"temp_{int(time.time() * 1000)}_{suffix}"


def _iso(value: Optional[datetime]) -> str | None:
    return value.isoformat() if value else None


def _serialize_category(category: CategoryEntity) -> dict:
    return {
        "id": category.id,
        "name": category.name,
        "color": category.color,
        "createdAt": _iso(category.created_at),
        "updatedAt": _iso(category.updated_at),
    }


def _deserialize_category(raw: dict) -> CategoryEntity:
    return CategoryEntity(
        id=raw["id"],
        name=raw["name"],
        color=raw["color"],
        created_at=parse_timestamp(raw["createdAt"]),
        updated_at=parse_timestamp(raw["updatedAt"]),
    )


def _serialize_task(task: TaskEntity) -> dict:
    return {
        "id": task.id,
        "title": task.title,
        "description": task.description,
        "status": task.status.value,
        "priority": task.priority.value,
        "expectedTime": task.expected_time,
        "actualTime": task.actual_time,
        "startTime": _iso(task.start_time),
        "endTime": _iso(task.end_time),
        "scheduledStartTime": _iso(task.scheduled_start_time),
        "completedAt": _iso(task.completed_at),
        "categoryId": task.category_id,
        "day": task.day.isoformat(),
        "createdAt": _iso(task.created_at),
        "updatedAt": _iso(task.updated_at),
    }


def _deserialize_task(raw: dict, categories: dict[str, CategoryEntity]) -> TaskEntity:
    category_id = raw.get("categoryId")
    return TaskEntity(
        id=raw["id"],
        title=raw["title"],
        description=raw.get("description") or "",
        status=TaskStatus(raw["status"]),
        priority=TaskPriority(raw.get("priority") or TaskPriority.LOW),
        expected_time=raw.get("expectedTime"),
        actual_time=raw.get("actualTime") or 0,
        start_time=parse_timestamp(raw.get("startTime")),
        end_time=parse_timestamp(raw.get("endTime")),
        scheduled_start_time=parse_timestamp(raw.get("scheduledStartTime")),
        completed_at=parse_timestamp(raw.get("completedAt")),
        category_id=category_id,
        category=categories.get(category_id) if category_id else None,
        day=parse_day(raw["day"]),
        created_at=parse_timestamp(raw["createdAt"]),
        updated_at=parse_timestamp(raw["updatedAt"]),
    )


def _sorted_categories(
    categories: list[CategoryEntity], tasks: list[TaskEntity]
) -> list[CategoryEntity]:
    usage: dict[str, int] = {}
    for task in tasks:
        if task.category_id:
            usage[task.category_id] = usage.get(task.category_id, 0) + 1
    by_created = sorted(categories, key=lambda category: category.created_at, reverse=True)
    return sorted(by_created, key=lambda category: usage.get(category.id, 0), reverse=True)


class LocalTaskStore:
    """Anonymous mode: everything lives in ``LocalStorage``."""

    def __init__(self, storage: LocalStorage, clock: Callable[[], datetime] = utcnow) -> None:
        self.storage = storage
        self._clock = clock

    # ----- tasks -----

    def list_tasks(self, filters: TaskFilters = TaskFilters()) -> list[TaskEntity]:
        tasks = [task for task in self._load_tasks() if filters.matches(task.day, task.status)]
        return sorted(tasks, key=lambda task: task.created_at, reverse=True)

    def get_task(self, task_id: str) -> TaskEntity:
        for task in self._load_tasks():
            if task.id == task_id:
                return task
        raise NotFoundError("Task not found")

    def create_task(self, data: dict) -> TaskEntity:
        normalized = normalize_task_data(data, creating=True)
        with self.storage.lock:
            categories = self._category_map()
            self._check_category(categories, normalized.get("category_id"))
            now = self._clock()
            raw = _serialize_task(
                TaskEntity(
                    id=generate_temp_id(),
                    title=normalized["title"],
                    day=normalized.get("day") or date.today(),
                    category=None,
                    created_at=now,
                    updated_at=now,
                    **{key: normalized.get(key, default) for key, default in TASK_DEFAULTS.items()},
                )
            )
            raw_tasks = self.storage.get_json(TASKS_KEY, [])
            raw_tasks.append(raw)
            self.storage.set_json(TASKS_KEY, raw_tasks)
            self.storage.set_json(TASK_COUNTER_KEY, self.task_counter() + 1)
            return _deserialize_task(raw, categories)

    def update_task(self, task_id: str, data: dict) -> TaskEntity:
        normalized = normalize_task_data(data)
        with self.storage.lock:
            categories = self._category_map()
            if normalized.get("category_id"):
                self._check_category(categories, normalized["category_id"])
            tasks = self._load_tasks(categories)
            index = self._index_of(tasks, task_id)
            updated = _apply(tasks[index], {**normalized, "updated_at": self._clock()})
            if _claims_timer(updated, normalized):
                tasks = self._clear_other_active_timers(tasks, task_id)
            tasks[index] = _apply(
                updated,
                {"category": categories.get(updated.category_id) if updated.category_id else None},
            )
            self._save_tasks(tasks)
            return tasks[index]

    def set_status(
        self,
        task_id: str,
        status: TaskStatus,
        end_time: Optional[datetime] = None,
        completed_at: Optional[datetime] = None,
    ) -> TaskEntity:
        with self.storage.lock:
            task = self.get_task(task_id)
            changes = status_changes(
                task.status, TaskStatus(status), self._clock(), end_time, completed_at
            )
            return self.update_task(task_id, changes)

    def delete_task(self, task_id: str, role: UserRole = UserRole.USER) -> None:
        with self.storage.lock:
            tasks = self._load_tasks()
            check_delete(tasks[self._index_of(tasks, task_id)], role)
            self._save_tasks([task for task in tasks if task.id != task_id])

    def task_counter(self) -> int:
        return int(self.storage.get_json(TASK_COUNTER_KEY, 0) or 0)

    # ----- categories -----

    def list_categories(self) -> list[CategoryEntity]:
        with self.storage.lock:
            return _sorted_categories(list(self._category_map().values()), self._load_tasks())

    def create_category(self, data: dict) -> CategoryEntity:
        normalized = normalize_category_data(data, creating=True)
        with self.storage.lock:
            categories = list(self._category_map().values())
            self._check_unique_name(categories, normalized["name"])
            now = self._clock()
            category = CategoryEntity(
                id=generate_temp_id(),
                name=normalized["name"],
                color=normalized["color"],
                created_at=now,
                updated_at=now,
            )
            self._save_categories(categories + [category])
            return category

    def update_category(self, category_id: str, data: dict) -> CategoryEntity:
        normalized = normalize_category_data(data)
        with self.storage.lock:
            categories = list(self._category_map().values())
            index = next(
                (i for i, category in enumerate(categories) if category.id == category_id), None
            )
            if index is None:
                raise NotFoundError("Category not found")
            name = normalized.get("name")
            if name and name != categories[index].name:
                self._check_unique_name(categories, name)
            updated = CategoryEntity(
                id=category_id,
                name=normalized.get("name", categories[index].name),
                color=normalized.get("color") or categories[index].color,
                created_at=categories[index].created_at,
                updated_at=self._clock(),
            )
            categories[index] = updated
            self._save_categories(categories)
            return updated

    def delete_category(self, category_id: str) -> int:
        with self.storage.lock:
            categories = self._category_map()
            if category_id not in categories:
                raise NotFoundError("Category not found")
            now = self._clock()
            detached = 0
            raw_tasks = self.storage.get_json(TASKS_KEY, [])
            for raw in raw_tasks:
                if raw.get("categoryId") == category_id:
                    raw["categoryId"] = None
                    raw["updatedAt"] = _iso(now)
                    detached += 1
            self.storage.set_json(TASKS_KEY, raw_tasks)
            self._save_categories(
                [category for category in categories.values() if category.id != category_id]
            )
            return detached

    # ----- whole store -----

    def is_empty(self) -> bool:
        with self.storage.lock:
            return not self.storage.get_json(TASKS_KEY, []) and not self.storage.get_json(
                CATEGORIES_KEY, []
            )

    def clear(self) -> None:
        with self.storage.lock:
            self.storage.remove(TASKS_KEY)
            self.storage.remove(TASK_COUNTER_KEY)
            self.storage.remove(CATEGORIES_KEY)

    def restore(self, categories: list[CategoryEntity], tasks: list[TaskEntity]) -> None:
        """Write entities back verbatim, keeping their ids."""
        with self.storage.lock:
            self._save_categories(list(self._category_map().values()) + list(categories))
            self._save_tasks(self._load_tasks() + list(tasks))

    # ----- helpers -----

    def _category_map(self) -> dict[str, CategoryEntity]:
        return {
            raw["id"]: _deserialize_category(raw)
            for raw in self.storage.get_json(CATEGORIES_KEY, [])
        }

    def _load_tasks(self, categories: dict[str, CategoryEntity] | None = None) -> list[TaskEntity]:
        if categories is None:
            categories = self._category_map()
        return [_deserialize_task(raw, categories) for raw in self.storage.get_json(TASKS_KEY, [])]

    def _save_tasks(self, tasks: list[TaskEntity]) -> None:
        self.storage.set_json(TASKS_KEY, [_serialize_task(task) for task in tasks])

    def _save_categories(self, categories: list[CategoryEntity]) -> None:
        self.storage.set_json(CATEGORIES_KEY, [_serialize_category(c) for c in categories])

    def _clear_other_active_timers(self, tasks: list[TaskEntity], task_id: str) -> list[TaskEntity]:
        now = self._clock()
        result = []
        for task in tasks:
            if (
                task.id != task_id
                and task.has_active_timer
                and task.status == TaskStatus.IN_PROGRESS
            ):
                logger.info("Clearing stale active timer on local task %s", task.id)
                task = _apply(task, {"start_time": None, "end_time": None, "updated_at": now})
            result.append(task)
        return result

    @staticmethod
    def _index_of(tasks: list[TaskEntity], task_id: str) -> int:
        for index, task in enumerate(tasks):
            if task.id == task_id:
                return index
        raise NotFoundError("Task not found")

    @staticmethod
    def _check_category(categories: dict[str, CategoryEntity], category_id: str | None) -> None:
        if category_id and category_id not in categories:
            raise NotFoundError("Category not found")

    @staticmethod
    def _check_unique_name(categories: list[CategoryEntity], name: str) -> None:
        if any(category.name == name for category in categories):
            raise ConflictError("Category with this name already exists")


def _apply(task: TaskEntity, changes: dict) -> TaskEntity:
    return replace(task, **changes)


def _claims_timer(task: TaskEntity, changes: dict) -> bool:
    """Setting a start time, or reopening a task that kept one, takes the timer slot."""
    if changes.get("start_time") is not None:
        return True
    return changes.get("status") == TaskStatus.IN_PROGRESS and task.has_active_timer


def _translate_errors(method):
    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        try:
            return method(self, *args, **kwargs)
        except SQLAlchemyError as exc:
            logger.warning("Remote store call %s failed: %s", method.__name__, exc)
            raise TransientIOError(f"Remote store is unavailable: {exc}") from exc

    return wrapper


class RemoteTaskStore:
    """Authenticated mode: tasks and categories in the relational database."""

    def __init__(self, user_id: str, role: UserRole = UserRole.USER, session_factory=None) -> None:
        self.user_id = user_id
        self.role = role
        kwargs = {"session_factory": session_factory} if session_factory else {}
        self._tasks = TaskRepository(user_id, **kwargs)
        self._categories = CategoryRepository(user_id, **kwargs)

    @_translate_errors
    def list_tasks(self, filters: TaskFilters = TaskFilters()) -> list[TaskEntity]:
        return self._tasks.list_tasks(filters)

    @_translate_errors
    def get_task(self, task_id: str) -> TaskEntity:
        return self._tasks.get_task(task_id)

    @_translate_errors
    def create_task(self, data: dict) -> TaskEntity:
        normalized = normalize_task_data(data, creating=True)
        for key, default in TASK_DEFAULTS.items():
            normalized.setdefault(key, default)
        return self._tasks.create_task(normalized)

    @_translate_errors
    def update_task(self, task_id: str, data: dict) -> TaskEntity:
        return self._tasks.update_task(task_id, normalize_task_data(data))

    @_translate_errors
    def set_status(
        self,
        task_id: str,
        status: TaskStatus,
        end_time: Optional[datetime] = None,
        completed_at: Optional[datetime] = None,
    ) -> TaskEntity:
        return self._tasks.update_status(task_id, TaskStatus(status), end_time, completed_at)

    @_translate_errors
    def delete_task(self, task_id: str, role: UserRole | None = None) -> None:
        self._tasks.delete_task(task_id, role or self.role)

    @_translate_errors
    def list_categories(self) -> list[CategoryEntity]:
        return self._categories.list_categories()

    @_translate_errors
    def create_category(self, data: dict) -> CategoryEntity:
        return self._categories.create_category(normalize_category_data(data, creating=True))

    @_translate_errors
    def update_category(self, category_id: str, data: dict) -> CategoryEntity:
        return self._categories.update_category(category_id, normalize_category_data(data))

    @_translate_errors
    def delete_category(self, category_id: str) -> int:
        return self._categories.delete_category(category_id)

    @_translate_errors
    def is_empty(self) -> bool:
        return self._tasks.count_tasks() == 0 and self._categories.count_categories() == 0

    @_translate_errors
    def clear(self) -> None:
        self._tasks.delete_all()
        self._categories.delete_all()
