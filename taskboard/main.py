from __future__ import annotations

import argparse
import logging
import signal
import sys
import uuid
from dataclasses import dataclass
from datetime import date
from typing import Optional

from PySide6.QtCore import QCoreApplication, QTimer

from taskboard.config import PROJECT_ROOT, SETTINGS
from taskboard.domain.entities import TaskEntity
from taskboard.domain.enums import SortMode, TaskPriority, TaskStatus, UserRole
from taskboard.domain.errors import TaskboardError
from taskboard.domain.filters import TaskFilters
from taskboard.domain.progress import is_overdue, percentage_color, plan_fact_percentage
from taskboard.domain.time_codec import format_duration, parse_duration
from taskboard.infra.db import init_db
from taskboard.infra.local_storage import LocalStorage
from taskboard.infra.logging import setup_logging
from taskboard.infra.stores import LocalTaskStore, RemoteTaskStore, TaskStore
from taskboard.services.board_service import BoardService
from taskboard.services.category_service import CategoryService
from taskboard.services.migration import MigrationReconciler
from taskboard.services.task_service import TaskService
from taskboard.services.timer_engine import TimerEngine
from taskboard.ui.ticker import QtTicker

logger = logging.getLogger("taskboard")

COLUMN_TITLES = {
    TaskStatus.BACKLOG: "Tasks",
    TaskStatus.IN_PROGRESS: "In Progress",
    TaskStatus.COMPLETED: "Completed",
}


@dataclass
class AppContext:
    store: TaskStore
    storage: LocalStorage
    tasks: TaskService
    categories: CategoryService
    timer: TimerEngine
    board: BoardService
    role: UserRole


def build_context(
    user: str | None, role: UserRole, ticker: Optional[QtTicker] = None
) -> AppContext:
    storage = LocalStorage(PROJECT_ROOT / SETTINGS.local_storage_path, SETTINGS.storage_namespace)
    local = LocalTaskStore(storage)
    store: TaskStore = local

    if user:
        init_db()
        store = RemoteTaskStore(user, role)
        reconciler = MigrationReconciler(local, store, keep_failed=SETTINGS.migration_keep_failed)
        report = reconciler.on_authenticated(uuid.uuid4().hex)
        if report is not None:
            print(
                f"Moved {report.tasks_migrated} task(s) and "
                f"{report.categories_migrated} category(ies) to your account."
            )
            if not report.complete:
                print("Some items could not be moved, see the log for details.")

    tasks = TaskService(store)
    timer = TimerEngine(tasks, ticker=ticker)
    timer.restore(store.list_tasks())
    return AppContext(
        store=store,
        storage=storage,
        tasks=tasks,
        categories=CategoryService(store),
        timer=timer,
        board=BoardService(storage, tasks, timer),
        role=role,
    )


def _format_task(task: TaskEntity, ctx: AppContext) -> str:
    parts = [f"[{task.id}] {task.title}"]
    if task.priority == TaskPriority.HIGH:
        parts.append("!")
    if task.category:
        parts.append(f"#{task.category.name}")
    if task.status != TaskStatus.COMPLETED and is_overdue(task.scheduled_start_time, date.today()):
        parts.append("overdue")
    session = ctx.timer.session(task.id)
    if session is not None and ctx.timer.active_task_id == task.id:
        parts.append(f"timer {session.display()}")
    else:
        parts.append(format_duration(task.actual_time))
    if task.expected_time:
        parts.append(f"/ {format_duration(task.expected_time)}")
        ratio = plan_fact_percentage(task.expected_time, task.actual_time)
        if ratio is not None:
            parts.append(f"({ratio}%)")
    return " ".join(parts)


def cmd_list(args, ctx: AppContext) -> int:
    day = date.fromisoformat(args.day) if args.day else None
    tasks = ctx.tasks.list_tasks(TaskFilters(day=day))
    for status, column in ctx.board.columns(tasks).items():
        print(f"== {COLUMN_TITLES[status]} ({ctx.board.sort_mode(status)}) ==")
        for task in column:
            print(f"  {_format_task(task, ctx)}")
    return 0


def cmd_add(args, ctx: AppContext) -> int:
    data = {
        "title": args.title,
        "description": args.description or "",
        "priority": args.priority,
        "status": args.status,
    }
    if args.expected:
        data["expected_time"] = parse_duration(args.expected)
    if args.category:
        data["category_id"] = args.category
    if args.day:
        data["day"] = args.day
    if args.scheduled:
        data["scheduled_start_time"] = args.scheduled
    task = ctx.tasks.create_task(data)
    print(f"Created {task.id}")
    return 0


def cmd_move(args, ctx: AppContext) -> int:
    task = ctx.board.drop(args.task_id, TaskStatus(args.status), args.before, ctx.role)
    print(f"{task.title}: {task.status}")
    return 0


def cmd_delete(args, ctx: AppContext) -> int:
    ctx.tasks.delete_task(args.task_id, ctx.role)
    print("Deleted")
    return 0


def cmd_start(args, ctx: AppContext) -> int:
    app = QCoreApplication.instance() or QCoreApplication(sys.argv[:1])
    result = ctx.timer.start(args.task_id)
    if result.notice:
        print(result.notice)
    session = ctx.timer.session(args.task_id)

    display = QTimer()
    display.setInterval(SETTINGS.timer_tick_ms)
    display.timeout.connect(
        lambda: print(f"\r{result.task.title} {session.display()}", end="", flush=True)
    )
    display.start()

    signal.signal(signal.SIGINT, lambda *_: app.quit())
    print("Timer running, Ctrl-C to stop.")
    app.exec()
    display.stop()
    print()

    task = ctx.timer.stop(args.task_id)
    print(f"Stopped at {format_duration(task.actual_time)}")
    return 0


def cmd_stop(args, ctx: AppContext) -> int:
    task = ctx.timer.stop(args.task_id)
    print(f"Stopped at {format_duration(task.actual_time)}")
    return 0


def cmd_complete(args, ctx: AppContext) -> int:
    task = ctx.timer.complete(args.task_id, ctx.role)
    print(f"Completed in {format_duration(task.actual_time)}")
    return 0


def cmd_categories(args, ctx: AppContext) -> int:
    for category in ctx.categories.list_categories():
        print(f"[{category.id}] {category.name} {category.color}")
    return 0


def cmd_add_category(args, ctx: AppContext) -> int:
    category = ctx.categories.create_category(args.name, args.color)
    print(f"Created {category.id}")
    return 0


def cmd_delete_category(args, ctx: AppContext) -> int:
    detached = ctx.categories.delete_category(args.category_id)
    print(f"Deleted, {detached} task(s) left without a category")
    return 0


def cmd_sort(args, ctx: AppContext) -> int:
    ctx.board.set_sort_mode(TaskStatus(args.status), SortMode(args.mode))
    return cmd_list(argparse.Namespace(day=None), ctx)


def cmd_progress(args, ctx: AppContext) -> int:
    for day in ctx.tasks.get_weekly_progress():
        print(
            f"{day.day:%a %d.%m}  {day.percentage:3d}%  "
            f"{day.completed}/{day.completed + day.in_progress}  {percentage_color(day.percentage)}"
        )
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="taskboard", description="Personal task board")
    parser.add_argument("--user", help="signed-in user id; omit for local-only mode")
    parser.add_argument(
        "--role", default=UserRole.USER.value, choices=[role.value for role in UserRole]
    )
    parser.add_argument("--log-level", default=None)
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("list", help="show the board")
    p.add_argument("--day", help="YYYY-MM-DD")
    p.set_defaults(func=cmd_list)

    p = sub.add_parser("add", help="create a task")
    p.add_argument("title")
    p.add_argument("--description")
    p.add_argument(
        "--priority",
        default=TaskPriority.LOW.value,
        choices=[level.value for level in TaskPriority],
    )
    p.add_argument(
        "--status", default=TaskStatus.BACKLOG.value, choices=[s.value for s in TaskStatus]
    )
    p.add_argument("--scheduled", help="planned start, ISO date and time")
    p.add_argument("--expected", help="planned time, HH:MM:SS or MM:SS")
    p.add_argument("--category")
    p.add_argument("--day")
    p.set_defaults(func=cmd_add)

    p = sub.add_parser("move", help="move a task to another column")
    p.add_argument("task_id")
    p.add_argument("status", choices=[s.value for s in TaskStatus])
    p.add_argument("--before", help="drop in front of this task")
    p.set_defaults(func=cmd_move)

    p = sub.add_parser("delete", help="delete a task")
    p.add_argument("task_id")
    p.set_defaults(func=cmd_delete)

    for name, func in (("start", cmd_start), ("stop", cmd_stop), ("complete", cmd_complete)):
        p = sub.add_parser(name, help=f"{name} the timer of a task")
        p.add_argument("task_id")
        p.set_defaults(func=func)

    p = sub.add_parser("categories", help="list categories")
    p.set_defaults(func=cmd_categories)

    p = sub.add_parser("add-category", help="create a category")
    p.add_argument("name")
    p.add_argument("--color")
    p.set_defaults(func=cmd_add_category)

    p = sub.add_parser("delete-category", help="delete a category")
    p.add_argument("category_id")
    p.set_defaults(func=cmd_delete_category)

    p = sub.add_parser("sort", help="choose how a column is sorted")
    p.add_argument("status", choices=[s.value for s in TaskStatus])
    p.add_argument("mode", choices=[m.value for m in SortMode])
    p.set_defaults(func=cmd_sort)

    p = sub.add_parser("progress", help="completion over the last seven days")
    p.set_defaults(func=cmd_progress)
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level)

    ticker = None
    if args.command == "start":
        QCoreApplication.instance() or QCoreApplication(sys.argv[:1])
        ticker = QtTicker(SETTINGS.timer_tick_ms)

    ctx = None
    try:
        ctx = build_context(args.user, UserRole(args.role), ticker)
        return args.func(args, ctx)
    except TaskboardError as exc:
        logger.info("Command %s failed: %s", args.command, exc)
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    finally:
        if ctx is not None:
            ctx.timer.shutdown()


if __name__ == "__main__":
    sys.exit(main())
