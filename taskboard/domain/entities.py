from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional

from .enums import TaskPriority, TaskStatus


@dataclass(frozen=True)
class CategoryEntity:
    id: str
    name: str
    color: str
    created_at: datetime
    updated_at: datetime


@dataclass(frozen=True)
class TaskEntity:
    id: str
    title: str
    description: str
    status: TaskStatus
    priority: TaskPriority
    expected_time: Optional[int]
    actual_time: int
    start_time: Optional[datetime]
    end_time: Optional[datetime]
    scheduled_start_time: Optional[datetime]
    completed_at: Optional[datetime]
    category_id: str | None
    category: Optional[CategoryEntity]
    day: date
    created_at: datetime
    updated_at: datetime

    @property
    def has_active_timer(self) -> bool:
        """A timer is active while ``start_time`` is set and ``end_time`` is not."""
        return self.start_time is not None and self.end_time is None
