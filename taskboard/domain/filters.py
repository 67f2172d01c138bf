from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Optional

from .enums import TaskStatus


@dataclass(frozen=True)
class TaskFilters:
    day: Optional[date] = None
    status: TaskStatus | None = None

    def matches(self, day: date, status: TaskStatus) -> bool:
        if self.day is not None and day != self.day:
            return False
        if self.status is not None and status != self.status:
            return False
        return True
