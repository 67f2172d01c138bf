from __future__ import annotations

from enum import StrEnum


class TaskStatus(StrEnum):
    BACKLOG = "BACKLOG"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"


class TaskPriority(StrEnum):
    LOW = "LOW"
    HIGH = "HIGH"


class UserRole(StrEnum):
    USER = "USER"
    DEVELOPER = "DEVELOPER"
    ADMIN = "ADMIN"

    @property
    def is_privileged(self) -> bool:
        return self in (UserRole.DEVELOPER, UserRole.ADMIN)


class SortMode(StrEnum):
    DEFAULT = "default"
    PRIORITY = "priority"
    CATEGORY = "category"
    START_TIME = "startTime"
    END_TIME = "endTime"
    EXPECTED_ASC = "expectedTime-asc"
    EXPECTED_DESC = "expectedTime-desc"
    ACTUAL_ASC = "actualTime-asc"
    ACTUAL_DESC = "actualTime-desc"
    CUSTOM = "custom"


class TimerState(StrEnum):
    STOPPED = "stopped"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED_OUT = "completed"


class TimerMode(StrEnum):
    COUNTDOWN = "countdown"
    STOPWATCH = "stopwatch"
