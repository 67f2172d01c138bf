from __future__ import annotations

from datetime import datetime
from typing import Optional

from .entities import TaskEntity
from .enums import TaskStatus, UserRole
from .errors import PermissionDenied

BACKLOG = TaskStatus.BACKLOG
IN_PROGRESS = TaskStatus.IN_PROGRESS
COMPLETED = TaskStatus.COMPLETED


def check_transition(
    task: TaskEntity,
    target: TaskStatus,
    role: UserRole = UserRole.USER,
) -> None:
    """Raise ``PermissionDenied`` if ``task`` may not move to ``target``."""
    current = task.status
    if current == target:
        return

    if current == BACKLOG:
        return

    if current == IN_PROGRESS and target == COMPLETED:
        if not task.has_active_timer:
            raise PermissionDenied(
                "An in-progress task can only be completed while its timer is running"
            )
        return

    if current == IN_PROGRESS and target == BACKLOG:
        if not role.is_privileged:
            raise PermissionDenied(
                "In-progress tasks cannot be moved back to the backlog"
            )
        return

    if current == COMPLETED and target == IN_PROGRESS:
        return

    raise PermissionDenied("Completed tasks cannot be moved back to the backlog")


def can_transition(
    task: TaskEntity,
    target: TaskStatus,
    role: UserRole = UserRole.USER,
) -> bool:
    try:
        check_transition(task, target, role)
    except PermissionDenied:
        return False
    return True


def status_changes(
    current: TaskStatus,
    target: TaskStatus,
    now: datetime,
    end_time: Optional[datetime] = None,
    completed_at: Optional[datetime] = None,
) -> dict:
    """Field changes that accompany a status move.

    ``start_time`` is never touched: reopening a completed task keeps the
    first actual start.
    """
    changes: dict = {"status": target}
    if target == COMPLETED and current != COMPLETED:
        changes["end_time"] = end_time or now
        changes["completed_at"] = completed_at or now
    if target == IN_PROGRESS and current == COMPLETED:
        changes["end_time"] = None
        changes["completed_at"] = None
    return changes


def check_delete(task: TaskEntity, role: UserRole = UserRole.USER) -> None:
    if task.status == BACKLOG or role.is_privileged:
        return
    raise PermissionDenied("Can only delete tasks in BACKLOG status")
