from __future__ import annotations

from datetime import date, datetime

from taskboard.domain.entities import TaskEntity
from taskboard.domain.enums import TaskPriority, TaskStatus
from taskboard.domain.progress import (
    completion_percentage,
    is_overdue,
    percentage_color,
    plan_fact_percentage,
    weekly_progress,
)


def make_task(task_id: str, day: date, status: TaskStatus) -> TaskEntity:
    stamp = datetime(2026, 3, 1)
    return TaskEntity(
        id=task_id,
        title=task_id,
        description="",
        status=status,
        priority=TaskPriority.LOW,
        expected_time=None,
        actual_time=0,
        start_time=None,
        end_time=None,
        scheduled_start_time=None,
        completed_at=None,
        category_id=None,
        category=None,
        day=day,
        created_at=stamp,
        updated_at=stamp,
    )


def test_completion_percentage_rounds_half_up() -> None:
    assert completion_percentage(0, 0) == 0
    assert completion_percentage(1, 1) == 50
    assert completion_percentage(1, 2) == 33
    assert completion_percentage(2, 1) == 67
    assert completion_percentage(1, 7) == 13


def test_percentage_color_bands() -> None:
    assert percentage_color(100) == "#10B981"
    assert percentage_color(67) == "#10B981"
    assert percentage_color(34) == "#F59E0B"
    assert percentage_color(33) == "#EF4444"


def test_plan_fact_percentage() -> None:
    assert plan_fact_percentage(None, 100) is None
    assert plan_fact_percentage(600, 0) == 0
    assert plan_fact_percentage(600, 1200) == 50


def test_overdue_ignores_time_of_day() -> None:
    today = date(2026, 3, 2)
    assert is_overdue(datetime(2026, 3, 1, 23, 59), today)
    assert not is_overdue(datetime(2026, 3, 2, 0, 1), today)
    assert not is_overdue(None, today)


def test_weekly_progress_counts_per_day() -> None:
    today = date(2026, 3, 7)
    tasks = [
        make_task("a", date(2026, 3, 7), TaskStatus.COMPLETED),
        make_task("b", date(2026, 3, 7), TaskStatus.IN_PROGRESS),
        make_task("c", date(2026, 3, 7), TaskStatus.BACKLOG),
        make_task("d", date(2026, 3, 1), TaskStatus.COMPLETED),
        make_task("e", date(2026, 2, 28), TaskStatus.COMPLETED),
    ]
    days = weekly_progress(tasks, today)
    assert [item.day for item in days][0] == date(2026, 3, 1)
    assert days[-1].day == today
    assert (days[-1].completed, days[-1].in_progress, days[-1].percentage) == (1, 1, 50)
    assert days[0].percentage == 100
    assert sum(item.completed for item in days) == 2
