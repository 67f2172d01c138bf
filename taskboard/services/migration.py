"""One-shot transfer of anonymous local data into the signed-in user's store."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field

from taskboard.domain.entities import CategoryEntity, TaskEntity
from taskboard.domain.errors import TaskboardError
from taskboard.infra.stores import LocalTaskStore, TaskStore

logger = logging.getLogger(__name__)


@dataclass
class MigrationReport:
    categories_migrated: int = 0
    tasks_migrated: int = 0
    category_ids: dict[str, str] = field(default_factory=dict)
    failed_categories: list[CategoryEntity] = field(default_factory=list)
    failed_tasks: list[TaskEntity] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return not self.failed_categories and not self.failed_tasks


class MigrationReconciler:
    """Drains a ``LocalTaskStore`` into a remote ``TaskStore``.

    The local store is cleared even after partial failures. With
    ``keep_failed`` the items that did not make it are written back locally
    so the next sign-in can retry them.
    """

    def __init__(self, local: LocalTaskStore, remote: TaskStore, keep_failed: bool = False) -> None:
        self._local = local
        self._remote = remote
        self._keep_failed = keep_failed
        self._handled_events: set[str] = set()

    def on_authenticated(self, auth_event_id: str) -> MigrationReport | None:
        if auth_event_id in self._handled_events:
            return None
        self._handled_events.add(auth_event_id)
        if self._local.is_empty():
            return None
        return self.migrate()

    def migrate(self) -> MigrationReport:
        report = MigrationReport()
        categories = sorted(self._local.list_categories(), key=lambda c: c.created_at)
        tasks = sorted(self._local.list_tasks(), key=lambda t: t.created_at)

        for category in categories:
            try:
                created = self._remote.create_category(
                    {"name": category.name, "color": category.color}
                )
            except TaskboardError as exc:
                logger.error("Failed to migrate category %r: %s", category.name, exc)
                report.failed_categories.append(category)
                continue
            report.category_ids[category.id] = created.id
            report.categories_migrated += 1

        for task in tasks:
            try:
                self._remote.create_task(_task_payload(task, report.category_ids))
            except TaskboardError as exc:
                logger.error("Failed to migrate task %r: %s", task.title, exc)
                report.failed_tasks.append(task)
                continue
            report.tasks_migrated += 1

        self._local.clear()
        if self._keep_failed and not report.complete:
            self._local.restore(report.failed_categories, report.failed_tasks)
            logger.warning(
                "Kept %s category(ies) and %s task(s) locally after failed migration",
                len(report.failed_categories),
                len(report.failed_tasks),
            )

        logger.info(
            "Migrated %s category(ies) and %s task(s) to the remote store",
            report.categories_migrated,
            report.tasks_migrated,
        )
        return report


def _task_payload(task: TaskEntity, category_ids: dict[str, str]) -> dict:
    return {
        "title": task.title,
        "description": task.description,
        "status": task.status,
        "priority": task.priority,
        "expected_time": task.expected_time,
        "actual_time": task.actual_time,
        "start_time": task.start_time,
        "end_time": task.end_time,
        "scheduled_start_time": task.scheduled_start_time,
        "completed_at": task.completed_at,
        "category_id": category_ids.get(task.category_id) if task.category_id else None,
        "day": task.day,
    }
