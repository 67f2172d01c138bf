from __future__ import annotations

from datetime import date, datetime

import pytest

from taskboard.domain.enums import TaskStatus, UserRole
from taskboard.domain.errors import (
    ConflictError,
    NotFoundError,
    PermissionDenied,
    TransientIOError,
)
from taskboard.domain.filters import TaskFilters
from taskboard.infra.db import Base
from taskboard.infra.stores import RemoteTaskStore


def test_create_and_list(remote_store: RemoteTaskStore) -> None:
    task = remote_store.create_task(
        {"title": "Deploy", "priority": "HIGH", "expected_time": 1800, "day": "2026-03-02"}
    )

    assert len(task.id) == 32
    assert task.status == TaskStatus.BACKLOG
    assert task.actual_time == 0
    assert task.day == date(2026, 3, 2)
    assert remote_store.list_tasks(TaskFilters(day=date(2026, 3, 2))) == [task]
    assert remote_store.list_tasks(TaskFilters(status=TaskStatus.COMPLETED)) == []


def test_day_defaults_to_today(remote_store: RemoteTaskStore) -> None:
    assert remote_store.create_task({"title": "Today"}).day == date.today()


def test_tasks_are_scoped_to_their_owner(remote_store, session_factory) -> None:
    task = remote_store.create_task({"title": "Mine"})
    other = RemoteTaskStore("user-2", session_factory=session_factory)

    assert other.list_tasks() == []
    with pytest.raises(NotFoundError):
        other.get_task(task.id)
    assert not remote_store.is_empty()
    assert other.is_empty()


def test_setting_start_time_clears_other_active_timers(remote_store: RemoteTaskStore) -> None:
    first = remote_store.create_task({"title": "First", "status": "IN_PROGRESS"})
    second = remote_store.create_task({"title": "Second", "status": "IN_PROGRESS"})
    remote_store.update_task(first.id, {"start_time": datetime(2026, 3, 2, 9, 0)})

    remote_store.update_task(second.id, {"start_time": datetime(2026, 3, 2, 9, 30)})

    active = [task.id for task in remote_store.list_tasks() if task.has_active_timer]
    assert active == [second.id]


def test_reopening_keeps_start_and_takes_timer_slot(remote_store: RemoteTaskStore) -> None:
    started = datetime(2026, 3, 2, 8, 0)
    done = remote_store.create_task({"title": "Done", "status": "IN_PROGRESS"})
    remote_store.update_task(done.id, {"start_time": started})
    remote_store.set_status(done.id, TaskStatus.COMPLETED)
    running = remote_store.create_task({"title": "Running", "status": "IN_PROGRESS"})
    remote_store.update_task(running.id, {"start_time": datetime(2026, 3, 2, 10, 0)})

    reopened = remote_store.set_status(done.id, TaskStatus.IN_PROGRESS)

    assert reopened.start_time == started
    assert reopened.end_time is None
    assert reopened.completed_at is None
    assert not remote_store.get_task(running.id).has_active_timer


def test_completing_records_end_time(remote_store: RemoteTaskStore) -> None:
    task = remote_store.create_task({"title": "Finish", "status": "IN_PROGRESS"})
    end = datetime(2026, 3, 2, 11, 0)

    done = remote_store.set_status(task.id, TaskStatus.COMPLETED, end_time=end, completed_at=end)

    assert done.status == TaskStatus.COMPLETED
    assert (done.end_time, done.completed_at) == (end, end)


def test_delete_outside_backlog_is_forbidden(remote_store: RemoteTaskStore) -> None:
    task = remote_store.create_task({"title": "Busy", "status": "IN_PROGRESS"})

    with pytest.raises(PermissionDenied):
        remote_store.delete_task(task.id)
    remote_store.delete_task(task.id, UserRole.DEVELOPER)

    with pytest.raises(NotFoundError):
        remote_store.get_task(task.id)


def test_categories(remote_store: RemoteTaskStore) -> None:
    idle = remote_store.create_category({"name": "Idle"})
    work = remote_store.create_category({"name": "Work", "color": "#3B82F6"})
    task = remote_store.create_task({"title": "Email", "category_id": work.id})

    assert task.category == work
    assert [c.name for c in remote_store.list_categories()] == ["Work", "Idle"]

    with pytest.raises(ConflictError):
        remote_store.create_category({"name": "Work"})
    with pytest.raises(ConflictError):
        remote_store.update_category(idle.id, {"name": "Work"})

    assert remote_store.delete_category(work.id) == 1
    assert remote_store.get_task(task.id).category_id is None
    assert [c.name for c in remote_store.list_categories()] == ["Idle"]


def test_unknown_category_is_rejected(remote_store: RemoteTaskStore) -> None:
    with pytest.raises(NotFoundError):
        remote_store.create_task({"title": "Orphan", "category_id": "nope"})


def test_clear_removes_only_own_rows(remote_store, session_factory) -> None:
    other = RemoteTaskStore("user-2", session_factory=session_factory)
    other.create_task({"title": "Theirs"})
    remote_store.create_category({"name": "Work"})
    remote_store.create_task({"title": "Mine"})

    remote_store.clear()

    assert remote_store.is_empty()
    assert [task.title for task in other.list_tasks()] == ["Theirs"]


def test_database_errors_become_transient(remote_store, session_factory) -> None:
    Base.metadata.drop_all(session_factory.kw["bind"])

    with pytest.raises(TransientIOError):
        remote_store.list_tasks()
