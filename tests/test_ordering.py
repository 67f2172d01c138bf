from __future__ import annotations

from datetime import date, datetime, timedelta

from taskboard.domain.entities import CategoryEntity, TaskEntity
from taskboard.domain.enums import SortMode, TaskPriority, TaskStatus
from taskboard.domain.ordering import (
    move_between,
    move_to_index,
    partition,
    reconcile_order,
    sort_column,
)

BASE = datetime(2026, 3, 2, 8, 0, 0)


def make_task(task_id: str, minute: int = 0, **overrides) -> TaskEntity:
    values = dict(
        id=task_id,
        title=task_id,
        description="",
        status=TaskStatus.BACKLOG,
        priority=TaskPriority.LOW,
        expected_time=None,
        actual_time=0,
        start_time=None,
        end_time=None,
        scheduled_start_time=None,
        completed_at=None,
        category_id=None,
        category=None,
        day=date(2026, 3, 2),
        created_at=BASE + timedelta(minutes=minute),
        updated_at=BASE + timedelta(minutes=minute),
    )
    values.update(overrides)
    return TaskEntity(**values)


def ids(tasks: list[TaskEntity]) -> list[str]:
    return [task.id for task in tasks]


def test_reconcile_drops_missing_and_appends_new() -> None:
    assert reconcile_order(["a", "b", "c"], {"b", "c", "d"}) == ["b", "c", "d"]


def test_reconcile_keeps_stored_positions() -> None:
    assert reconcile_order(["c", "a"], ["a", "b", "c"]) == ["c", "a", "b"]
    assert reconcile_order([], ["x", "y"]) == ["x", "y"]


def test_move_to_index_clamps() -> None:
    assert move_to_index(["a", "b", "c"], "c", 0) == ["c", "a", "b"]
    assert move_to_index(["a", "b", "c"], "a", 99) == ["b", "c", "a"]


def test_move_between_inserts_before_target() -> None:
    source, destination = move_between(["a", "b"], ["x", "y"], "a", before_id="y")
    assert source == ["b"]
    assert destination == ["x", "a", "y"]


def test_move_between_appends_on_unknown_target() -> None:
    _, destination = move_between(["a"], ["x"], "a", before_id="missing")
    assert destination == ["x", "a"]


def test_partition_groups_by_status() -> None:
    tasks = [
        make_task("a"),
        make_task("b", status=TaskStatus.IN_PROGRESS),
        make_task("c", status=TaskStatus.COMPLETED),
    ]
    columns = partition(tasks)
    assert [ids(columns[status]) for status in columns] == [["a"], ["b"], ["c"]]


def test_default_backlog_is_newest_first() -> None:
    tasks = [make_task("old", 0), make_task("new", 5)]
    assert ids(sort_column(tasks, TaskStatus.BACKLOG)) == ["new", "old"]


def test_default_in_progress_puts_running_timer_first() -> None:
    tasks = [
        make_task("idle", 0, status=TaskStatus.IN_PROGRESS),
        make_task("running", 1, status=TaskStatus.IN_PROGRESS, start_time=BASE),
    ]
    assert ids(sort_column(tasks, TaskStatus.IN_PROGRESS)) == ["running", "idle"]


def test_priority_is_stable_high_first() -> None:
    tasks = [
        make_task("a"),
        make_task("b", priority=TaskPriority.HIGH),
        make_task("c"),
    ]
    assert ids(sort_column(tasks, TaskStatus.BACKLOG, SortMode.PRIORITY)) == ["b", "a", "c"]


def test_category_sorts_uncategorized_first() -> None:
    work = CategoryEntity("k1", "Work", "#3B82F6", BASE, BASE)
    home = CategoryEntity("k2", "Home", "#10B981", BASE, BASE)
    tasks = [
        make_task("w", category_id="k1", category=work),
        make_task("n"),
        make_task("h", category_id="k2", category=home),
    ]
    assert ids(sort_column(tasks, TaskStatus.BACKLOG, SortMode.CATEGORY)) == ["n", "h", "w"]


def test_time_sorts_put_missing_values_last() -> None:
    tasks = [
        make_task("none"),
        make_task("late", start_time=BASE + timedelta(hours=2), end_time=BASE + timedelta(hours=3)),
        make_task("early", start_time=BASE, end_time=BASE + timedelta(hours=1)),
    ]
    assert ids(sort_column(tasks, TaskStatus.COMPLETED, SortMode.START_TIME)) == [
        "early",
        "late",
        "none",
    ]
    assert ids(sort_column(tasks, TaskStatus.COMPLETED, SortMode.END_TIME)) == [
        "late",
        "early",
        "none",
    ]


def test_duration_sorts() -> None:
    tasks = [
        make_task("a", expected_time=600, actual_time=30),
        make_task("b", expected_time=60, actual_time=90),
        make_task("c"),
    ]
    assert ids(sort_column(tasks, TaskStatus.BACKLOG, SortMode.EXPECTED_ASC)) == ["c", "b", "a"]
    assert ids(sort_column(tasks, TaskStatus.BACKLOG, SortMode.EXPECTED_DESC)) == ["a", "b", "c"]
    assert ids(sort_column(tasks, TaskStatus.BACKLOG, SortMode.ACTUAL_DESC)) == ["b", "a", "c"]


def test_custom_order_reconciles_against_column() -> None:
    tasks = [make_task("b"), make_task("c"), make_task("d")]
    result = sort_column(tasks, TaskStatus.BACKLOG, SortMode.CUSTOM, ["a", "c", "b"])
    assert ids(result) == ["c", "b", "d"]
