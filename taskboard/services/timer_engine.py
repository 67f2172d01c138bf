"""Per-task countdown/stopwatch timers.

At most one task may hold a running timer. The engine keeps that slot as an
explicit reference (``active_task_id``). Only ``start``, ``reopen``, ``stop``,
``complete`` and ``close`` change it, all under one lock.

Pause suspends accrual: a paused timer neither advances its display nor
writes ``actual_time``. Persisted ``start_time``/``end_time`` are untouched.
"""
from __future__ import annotations

import logging
import threading
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Iterable, Optional, Protocol

from taskboard.domain.entities import TaskEntity
from taskboard.domain.enums import TaskStatus, TimerMode, TimerState, UserRole
from taskboard.domain.errors import (
    NotFoundError,
    PermissionDenied,
    TaskboardError,
    ValidationError,
)
from taskboard.domain.time_codec import format_duration, format_overrun
from taskboard.domain.transitions import check_transition
from taskboard.infra.models import utcnow
from taskboard.infra.stores import TaskStore

from .task_service import TaskService

logger = logging.getLogger(__name__)

DRAIN_TIMEOUT_S = 5.0


class Ticker(Protocol):
    def start(self, callback: Callable[[], None]) -> None: ...

    def stop(self) -> None: ...

    def is_active(self) -> bool: ...


@dataclass
class TimerSession:
    task_id: str
    mode: TimerMode
    expected_time: Optional[int]
    actual_time: int
    state: TimerState = TimerState.STOPPED

    @classmethod
    def for_task(cls, task: TaskEntity) -> "TimerSession":
        countdown = bool(task.expected_time) and task.expected_time > 0 and task.actual_time == 0
        return cls(
            task_id=task.id,
            mode=TimerMode.COUNTDOWN if countdown else TimerMode.STOPWATCH,
            expected_time=task.expected_time,
            actual_time=task.actual_time,
        )

    @property
    def remaining(self) -> int:
        return (self.expected_time or 0) - self.actual_time

    @property
    def is_overrun(self) -> bool:
        return self.mode == TimerMode.COUNTDOWN and self.remaining <= 0

    def display(self) -> str:
        if self.mode == TimerMode.STOPWATCH:
            return format_duration(self.actual_time)
        if self.is_overrun:
            return format_overrun(-self.remaining)
        return format_duration(self.remaining)


@dataclass(frozen=True)
class StartResult:
    task: TaskEntity
    stopped_task: Optional[TaskEntity] = None

    @property
    def notice(self) -> str | None:
        if self.stopped_task is None:
            return None
        return f"Timer for '{self.stopped_task.title}' was stopped"


class _TickWriter:
    """Single-flight ``actual_time`` writer, one in-flight write per task.

    A tick that finds a write still in flight skips; the next tick carries
    the newer value, so an older value can never land after a newer one.
    """

    def __init__(self, store: TaskStore, executor: Executor, failure_threshold: int) -> None:
        self._store = store
        self._executor = executor
        self._failure_threshold = failure_threshold
        self._lock = threading.Lock()
        self._in_flight: dict[str, Future] = {}
        self._failures: dict[str, int] = {}

    def submit(self, task_id: str, actual_time: int) -> bool:
        with self._lock:
            pending = self._in_flight.get(task_id)
            if pending is not None and not pending.done():
                return False
            self._in_flight[task_id] = self._executor.submit(self._write, task_id, actual_time)
            return True

    def drain(self, task_id: str) -> None:
        with self._lock:
            pending = self._in_flight.pop(task_id, None)
        if pending is None:
            return
        exc = pending.exception(timeout=DRAIN_TIMEOUT_S)
        if exc is not None:
            logger.error("Timer write for task %s crashed: %s", task_id, exc)

    def failures(self, task_id: str) -> int:
        return self._failures.get(task_id, 0)

    def _write(self, task_id: str, actual_time: int) -> bool:
        try:
            self._store.update_task(task_id, {"actual_time": actual_time})
        except TaskboardError as exc:
            count = self._failures.get(task_id, 0) + 1
            self._failures[task_id] = count
            if count >= self._failure_threshold:
                logger.error(
                    "Timer for task %s failed to persist %s times in a row: %s",
                    task_id,
                    count,
                    exc,
                )
            else:
                logger.warning("Timer write for task %s failed, retrying: %s", task_id, exc)
            return False
        self._failures.pop(task_id, None)
        return True


class TimerEngine:
    def __init__(
        self,
        tasks: TaskService,
        ticker: Optional[Ticker] = None,
        executor: Optional[Executor] = None,
        clock: Callable[[], datetime] = utcnow,
        failure_threshold: int = 5,
    ) -> None:
        self._tasks = tasks
        self._store = tasks.store
        self._ticker = ticker
        self._executor = executor or ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="timer-writer"
        )
        self._clock = clock
        self._writer = _TickWriter(self._store, self._executor, failure_threshold)
        self._lock = threading.Lock()
        self._sessions: dict[str, TimerSession] = {}
        self._active_id: str | None = None

    @property
    def active_task_id(self) -> str | None:
        return self._active_id

    def session(self, task_id: str) -> Optional[TimerSession]:
        return self._sessions.get(task_id)

    def open(self, task: TaskEntity) -> TimerSession:
        """Attach a timer session to a task card. The display mode is fixed here."""
        session = self._sessions.get(task.id)
        if session is None:
            session = TimerSession.for_task(task)
            self._sessions[task.id] = session
            if self._active_id == task.id:
                session.state = TimerState.RUNNING
                self._start_ticking()
        return session

    def close(self, task_id: str) -> None:
        """The task card went away: no more ticks may write to it.

        The slot is released. The persisted timer keeps running, and a later
        ``start`` or ``restore`` adopts it with its original ``start_time``.
        """
        with self._lock:
            self._writer.drain(task_id)
            session = self._sessions.pop(task_id, None)
            if session is not None and session.state in (TimerState.RUNNING, TimerState.PAUSED):
                try:
                    self._store.update_task(task_id, {"actual_time": session.actual_time})
                except TaskboardError as exc:
                    logger.warning("Could not save timer of task %s on close: %s", task_id, exc)
            self._vacate(task_id)

    def restore(self, tasks: Iterable[TaskEntity]) -> Optional[TaskEntity]:
        """Adopt a timer left running by a previous run."""
        with self._lock:
            active = sorted(
                (task for task in tasks if task.has_active_timer),
                key=lambda task: task.start_time,
            )
            if not active:
                return None
            current = active[-1]
            for stale in active[:-1]:
                logger.warning("Clearing stale active timer on task %s", stale.id)
                self._store.update_task(stale.id, {"start_time": None, "end_time": None})
            self._claim(current)
            logger.info("Restored running timer for task %s", current.id)
            return current

    def start(self, task_id: str) -> StartResult:
        """Give the slot to ``task_id``.

        The new ``start_time`` is written before the previous holder is
        stopped, so a failed write leaves the running timer as it was.
        """
        with self._lock:
            task = self._store.get_task(task_id)
            if task.status != TaskStatus.IN_PROGRESS:
                raise PermissionDenied("Only in-progress tasks can run a timer")

            if self._active_id == task_id:
                session = self.open(task)
                session.state = TimerState.RUNNING
                self._start_ticking()
                return StartResult(task)

            previous = self._active_id
            if previous is not None:
                self._writer.drain(previous)
            if task.has_active_timer:
                logger.info("Adopting running timer of task %s", task_id)
            else:
                task = self._store.update_task(
                    task_id, {"start_time": self._clock(), "end_time": None}
                )

            stopped = None
            if previous is not None:
                stopped = self._release(previous)
                logger.info("Stopped timer of task %s to start task %s", previous, task_id)
            self._claim(task)
            logger.info("Timer started for task %s", task_id)
            return StartResult(task, stopped)

    def reopen(self, task_id: str, role: UserRole = UserRole.USER) -> StartResult:
        """Move a completed task back to in progress.

        Its first ``start_time`` is kept, so the reopened task holds a running
        timer again and takes the slot from whichever task had it.
        """
        with self._lock:
            task = self._store.get_task(task_id)
            check_transition(task, TaskStatus.IN_PROGRESS, role)
            previous = self._active_id if self._active_id != task_id else None
            if previous is not None:
                self._writer.drain(previous)
            updated = self._tasks.change_status(task_id, TaskStatus.IN_PROGRESS, role)
            stopped = None
            if updated.has_active_timer:
                if previous is not None:
                    stopped = self._release(previous)
                self._sessions.pop(task_id, None)
                self._claim(updated)
            return StartResult(updated, stopped)

    def pause(self, task_id: str) -> TimerSession:
        session = self._sessions.get(task_id)
        if session is None or session.state != TimerState.RUNNING:
            raise ValidationError("Timer is not running")
        session.state = TimerState.PAUSED
        return session

    def resume(self, task_id: str) -> TimerSession:
        session = self._sessions.get(task_id)
        if session is None or session.state != TimerState.PAUSED:
            raise ValidationError("Timer is not paused")
        session.state = TimerState.RUNNING
        return session

    def stop(self, task_id: str) -> TaskEntity:
        with self._lock:
            task = self._persist_stop(task_id)
            logger.info("Timer stopped for task %s at %ss", task_id, task.actual_time)
            return task

    def complete(self, task_id: str, role: UserRole = UserRole.USER) -> TaskEntity:
        with self._lock:
            session = self._sessions.get(task_id)
            self._writer.drain(task_id)
            now = self._clock()
            changes = {"actual_time": session.actual_time} if session else None
            task = self._tasks.change_status(
                task_id,
                TaskStatus.COMPLETED,
                role,
                end_time=now,
                completed_at=now,
                changes=changes,
            )
            if session is not None:
                session.state = TimerState.COMPLETED_OUT
                session.actual_time = task.actual_time
            self._vacate(task_id)
            return task

    def tick(self) -> None:
        task_id = self._active_id
        if task_id is None:
            return
        session = self._sessions.get(task_id)
        if session is None or session.state != TimerState.RUNNING:
            return
        session.actual_time += 1
        self._writer.submit(task_id, session.actual_time)

    def write_failures(self, task_id: str) -> int:
        return self._writer.failures(task_id)

    def shutdown(self) -> None:
        if self._active_id is not None:
            self._writer.drain(self._active_id)
        self._stop_ticking()
        self._executor.shutdown(wait=True)

    def _claim(self, task: TaskEntity) -> None:
        session = self.open(task)
        session.actual_time = task.actual_time
        session.state = TimerState.RUNNING
        self._active_id = task.id
        self._start_ticking()

    def _release(self, task_id: str) -> Optional[TaskEntity]:
        """Stop the previous slot holder while another task takes the slot."""
        try:
            return self._persist_stop(task_id)
        except NotFoundError:
            logger.warning("Task %s held the timer but no longer exists", task_id)
        except TaskboardError as exc:
            logger.warning("Could not save the stopped timer of task %s: %s", task_id, exc)
            self._vacate(task_id)
        return None

    def _persist_stop(self, task_id: str) -> TaskEntity:
        session = self._sessions.get(task_id)
        self._writer.drain(task_id)
        data = {"start_time": None, "end_time": None}
        if session is not None:
            data["actual_time"] = session.actual_time
        try:
            task = self._store.update_task(task_id, data)
        except NotFoundError:
            self._sessions.pop(task_id, None)
            self._vacate(task_id)
            raise
        self._vacate(task_id)
        if session is not None:
            session.actual_time = task.actual_time
        return task

    def _vacate(self, task_id: str) -> None:
        session = self._sessions.get(task_id)
        if session is not None and session.state != TimerState.COMPLETED_OUT:
            session.state = TimerState.STOPPED
        if self._active_id == task_id:
            self._active_id = None
            self._stop_ticking()

    def _start_ticking(self) -> None:
        if self._ticker is not None and not self._ticker.is_active():
            self._ticker.start(self.tick)

    def _stop_ticking(self) -> None:
        if self._ticker is not None and self._ticker.is_active():
            self._ticker.stop()
