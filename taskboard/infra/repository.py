from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError

from taskboard.domain.entities import CategoryEntity, TaskEntity
from taskboard.domain.enums import TaskPriority, TaskStatus, UserRole
from taskboard.domain.errors import ConflictError, NotFoundError
from taskboard.domain.filters import TaskFilters
from taskboard.domain.transitions import check_delete, status_changes

from .db import SessionLocal
from .models import CategoryModel, TaskModel, utcnow

logger = logging.getLogger(__name__)

STATUS_IN_PROGRESS = TaskStatus.IN_PROGRESS.value


def _to_category(model: CategoryModel) -> CategoryEntity:
    return CategoryEntity(
        id=model.id,
        name=model.name,
        color=model.color,
        created_at=model.created_at,
        updated_at=model.updated_at,
    )


def _to_entity(model: TaskModel) -> TaskEntity:
    return TaskEntity(
        id=model.id,
        title=model.title,
        description=model.description,
        status=TaskStatus(model.status),
        priority=TaskPriority(model.priority),
        expected_time=model.expected_time,
        actual_time=model.actual_time,
        start_time=model.start_time,
        end_time=model.end_time,
        scheduled_start_time=model.scheduled_start_time,
        completed_at=model.completed_at,
        category_id=model.category_id,
        category=_to_category(model.category) if model.category else None,
        day=model.day,
        created_at=model.created_at,
        updated_at=model.updated_at,
    )


def _column_values(data: dict) -> dict:
    values = dict(data)
    for key in ("status", "priority"):
        if key in values and values[key] is not None:
            values[key] = str(values[key])
    return values


class TaskRepository:
    """Tasks of a single user in the relational store."""

    def __init__(self, user_id: str, session_factory=SessionLocal) -> None:
        self.user_id = user_id
        self._session_factory = session_factory

    def list_tasks(self, filters: TaskFilters) -> list[TaskEntity]:
        with self._session_factory() as session:
            stmt = select(TaskModel).where(TaskModel.user_id == self.user_id)
            if filters.day:
                stmt = stmt.where(TaskModel.day == filters.day)
            if filters.status:
                stmt = stmt.where(TaskModel.status == filters.status.value)
            stmt = stmt.order_by(TaskModel.created_at.desc())
            return [_to_entity(task) for task in session.scalars(stmt).unique()]

    def get_task(self, task_id: str) -> TaskEntity:
        with self._session_factory() as session:
            return _to_entity(self._owned_task(session, task_id))

    def create_task(self, data: dict) -> TaskEntity:
        with self._session_factory() as session:
            values = _column_values(data)
            values.setdefault("day", date.today())
            self._check_category(session, values.get("category_id"))
            task = TaskModel(user_id=self.user_id, **values)
            session.add(task)
            session.commit()
            session.refresh(task)
            return _to_entity(task)

    def update_task(self, task_id: str, data: dict) -> TaskEntity:
        with self._session_factory() as session:
            task = self._owned_task(session, task_id)
            if data.get("category_id"):
                self._check_category(session, data["category_id"])

            if data.get("start_time") is not None:
                self._clear_other_active_timers(session, task_id)

            for key, value in _column_values(data).items():
                setattr(task, key, value)
            session.commit()
            session.refresh(task)
            return _to_entity(task)

    def update_status(
        self,
        task_id: str,
        status: TaskStatus,
        end_time: Optional[datetime] = None,
        completed_at: Optional[datetime] = None,
    ) -> TaskEntity:
        with self._session_factory() as session:
            task = self._owned_task(session, task_id)
            changes = status_changes(
                TaskStatus(task.status), status, utcnow(), end_time, completed_at
            )
            reopening = status == TaskStatus.IN_PROGRESS and task.start_time is not None
            if reopening and changes.get("end_time", task.end_time) is None:
                self._clear_other_active_timers(session, task_id)
            for key, value in _column_values(changes).items():
                setattr(task, key, value)
            session.commit()
            session.refresh(task)
            return _to_entity(task)

    def delete_task(self, task_id: str, role: UserRole = UserRole.USER) -> None:
        with self._session_factory() as session:
            task = self._owned_task(session, task_id)
            check_delete(_to_entity(task), role)
            session.delete(task)
            session.commit()

    def count_tasks(self) -> int:
        with self._session_factory() as session:
            return session.scalar(
                select(func.count()).select_from(TaskModel).where(TaskModel.user_id == self.user_id)
            ) or 0

    def delete_all(self) -> None:
        with self._session_factory() as session:
            session.execute(delete(TaskModel).where(TaskModel.user_id == self.user_id))
            session.commit()

    def _owned_task(self, session, task_id: str) -> TaskModel:
        task = session.get(TaskModel, task_id)
        if not task or task.user_id != self.user_id:
            raise NotFoundError("Task not found")
        return task

    def _check_category(self, session, category_id: str | None) -> None:
        if not category_id:
            return
        category = session.get(CategoryModel, category_id)
        if not category or category.user_id != self.user_id:
            raise NotFoundError("Category not found")

    def _clear_other_active_timers(self, session, task_id: str) -> None:
        result = session.execute(
            update(TaskModel)
            .where(
                TaskModel.user_id == self.user_id,
                TaskModel.id != task_id,
                TaskModel.start_time.is_not(None),
                TaskModel.end_time.is_(None),
                TaskModel.status == STATUS_IN_PROGRESS,
            )
            .values(start_time=None, end_time=None, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount:
            logger.info(
                "Cleared %s stale active timer(s) for user %s", result.rowcount, self.user_id
            )


class CategoryRepository:
    def __init__(self, user_id: str, session_factory=SessionLocal) -> None:
        self.user_id = user_id
        self._session_factory = session_factory

    def list_categories(self) -> list[CategoryEntity]:
        with self._session_factory() as session:
            usage = func.count(TaskModel.id).label("usage")
            stmt = (
                select(CategoryModel, usage)
                .outerjoin(TaskModel, TaskModel.category_id == CategoryModel.id)
                .where(CategoryModel.user_id == self.user_id)
                .group_by(CategoryModel.id)
                .order_by(usage.desc(), CategoryModel.created_at.desc())
            )
            return [_to_category(row[0]) for row in session.execute(stmt)]

    def get_category(self, category_id: str) -> CategoryEntity:
        with self._session_factory() as session:
            return _to_category(self._owned_category(session, category_id))

    def create_category(self, data: dict) -> CategoryEntity:
        with self._session_factory() as session:
            self._check_unique_name(session, data["name"])
            category = CategoryModel(user_id=self.user_id, **data)
            session.add(category)
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise ConflictError("Category with this name already exists") from exc
            session.refresh(category)
            return _to_category(category)

    def update_category(self, category_id: str, data: dict) -> CategoryEntity:
        with self._session_factory() as session:
            category = self._owned_category(session, category_id)
            name = data.get("name")
            if name and name != category.name:
                self._check_unique_name(session, name, exclude_id=category_id)
            for key, value in data.items():
                setattr(category, key, value)
            session.commit()
            session.refresh(category)
            return _to_category(category)

    def delete_category(self, category_id: str) -> int:
        """Delete a category and detach its tasks. Returns the number detached."""
        with self._session_factory() as session:
            category = self._owned_category(session, category_id)
            detached = session.execute(
                update(TaskModel)
                .where(TaskModel.category_id == category_id)
                .values(category_id=None, updated_at=utcnow())
                .execution_options(synchronize_session=False)
            ).rowcount
            session.delete(category)
            session.commit()
            return detached or 0

    def count_categories(self) -> int:
        with self._session_factory() as session:
            return session.scalar(
                select(func.count())
                .select_from(CategoryModel)
                .where(CategoryModel.user_id == self.user_id)
            ) or 0

    def delete_all(self) -> None:
        with self._session_factory() as session:
            session.execute(delete(CategoryModel).where(CategoryModel.user_id == self.user_id))
            session.commit()

    def _owned_category(self, session, category_id: str) -> CategoryModel:
        category = session.get(CategoryModel, category_id)
        if not category or category.user_id != self.user_id:
            raise NotFoundError("Category not found")
        return category

    def _check_unique_name(self, session, name: str, exclude_id: str | None = None) -> None:
        stmt = select(CategoryModel.id).where(
            CategoryModel.user_id == self.user_id, CategoryModel.name == name
        )
        if exclude_id:
            stmt = stmt.where(CategoryModel.id != exclude_id)
        if session.scalar(stmt) is not None:
            raise ConflictError("Category with this name already exists")
