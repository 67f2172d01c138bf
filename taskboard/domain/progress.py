from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Iterable, Optional

from .entities import TaskEntity
from .enums import TaskStatus

GREEN = "#10B981"
YELLOW = "#F59E0B"
RED = "#EF4444"


@dataclass(frozen=True)
class DayProgress:
    day: date
    completed: int
    in_progress: int

    @property
    def percentage(self) -> int:
        return completion_percentage(self.completed, self.in_progress)


def completion_percentage(completed: int, in_progress: int) -> int:
    total = completed + in_progress
    if total == 0:
        return 0
    # round half up, not banker's rounding
    return int(completed * 100 / total + 0.5)


def percentage_color(percentage: int) -> str:
    if percentage >= 67:
        return GREEN
    if percentage >= 34:
        return YELLOW
    return RED


def plan_fact_percentage(expected_time: Optional[int], actual_time: int) -> Optional[int]:
    if not expected_time:
        return None
    if actual_time == 0:
        return 0
    return int(expected_time * 100 / actual_time + 0.5)


def is_overdue(scheduled_start_time: Optional[datetime], today: date) -> bool:
    """Planned start lies on a past calendar day. Time of day is ignored."""
    if scheduled_start_time is None:
        return False
    return scheduled_start_time.date() < today


def weekly_progress(tasks: Iterable[TaskEntity], today: date, days: int = 7) -> list[DayProgress]:
    tasks = list(tasks)
    result = []
    for offset in range(days - 1, -1, -1):
        day = today - timedelta(days=offset)
        day_tasks = [task for task in tasks if task.day == day]
        result.append(
            DayProgress(
                day=day,
                completed=sum(1 for task in day_tasks if task.status == TaskStatus.COMPLETED),
                in_progress=sum(1 for task in day_tasks if task.status == TaskStatus.IN_PROGRESS),
            )
        )
    return result
