from __future__ import annotations

import pytest

from taskboard.domain.errors import TransientIOError
from taskboard.infra.stores import LocalTaskStore, RemoteTaskStore
from taskboard.services.migration import MigrationReconciler


class BrokenCategoryStore(RemoteTaskStore):
    def create_category(self, data: dict):
        if data["name"] == "Broken":
            raise TransientIOError("offline")
        return super().create_category(data)


def seed(local: LocalTaskStore, clock) -> dict:
    work = local.create_category({"name": "Work"})
    clock.advance(1)
    home = local.create_category({"name": "Home"})
    clock.advance(1)
    linked = local.create_task({"title": "Email", "category_id": work.id})
    clock.advance(1)
    local.create_task({"title": "Gym", "status": "IN_PROGRESS", "actual_time": 300})
    clock.advance(1)
    local.create_task({"title": "Read", "expected_time": 1200})
    return {"work": work, "home": home, "linked": linked}


def test_migration_moves_everything_and_remaps_categories(local_store, remote_store, clock) -> None:
    seeded = seed(local_store, clock)
    reconciler = MigrationReconciler(local_store, remote_store)

    report = reconciler.on_authenticated("login-1")

    assert report.complete
    assert (report.categories_migrated, report.tasks_migrated) == (2, 3)
    assert local_store.is_empty()

    remote_tasks = {task.title: task for task in remote_store.list_tasks()}
    assert set(remote_tasks) == {"Email", "Gym", "Read"}
    assert remote_tasks["Gym"].actual_time == 300
    email = remote_tasks["Email"]
    assert email.category_id == report.category_ids[seeded["work"].id]
    assert email.category_id != seeded["work"].id
    assert email.category.name == "Work"


def test_migration_runs_once_per_auth_event(local_store, remote_store, clock) -> None:
    seed(local_store, clock)
    reconciler = MigrationReconciler(local_store, remote_store)

    assert reconciler.on_authenticated("login-1") is not None
    local_store.create_task({"title": "After"})

    assert reconciler.on_authenticated("login-1") is None
    assert not local_store.is_empty()


def test_empty_local_store_is_skipped(local_store, remote_store) -> None:
    assert MigrationReconciler(local_store, remote_store).on_authenticated("login-1") is None
    assert remote_store.is_empty()


def test_failed_category_leaves_task_uncategorized(local_store, session_factory, clock) -> None:
    remote = BrokenCategoryStore("user-1", session_factory=session_factory)
    broken = local_store.create_category({"name": "Broken"})
    local_store.create_task({"title": "Linked", "category_id": broken.id})

    report = MigrationReconciler(local_store, remote).migrate()

    assert not report.complete
    assert [c.name for c in report.failed_categories] == ["Broken"]
    assert report.tasks_migrated == 1
    assert remote.list_tasks()[0].category_id is None
    assert local_store.is_empty()


def test_keep_failed_writes_failures_back(local_store, session_factory, clock) -> None:
    remote = BrokenCategoryStore("user-1", session_factory=session_factory)
    local_store.create_category({"name": "Broken"})
    local_store.create_category({"name": "Fine"})

    report = MigrationReconciler(local_store, remote, keep_failed=True).migrate()

    assert report.categories_migrated == 1
    assert [c.name for c in local_store.list_categories()] == ["Broken"]
    assert [c.name for c in remote.list_categories()] == ["Fine"]


@pytest.mark.parametrize("keep_failed", [False, True])
def test_successful_migration_never_keeps_anything(
    local_store, remote_store, clock, keep_failed
) -> None:
    seed(local_store, clock)

    MigrationReconciler(local_store, remote_store, keep_failed=keep_failed).migrate()

    assert local_store.is_empty()
