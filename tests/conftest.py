from __future__ import annotations

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")

from concurrent.futures import Executor, Future
from datetime import datetime, timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from taskboard.infra.db import create_schema
from taskboard.infra.local_storage import LocalStorage
from taskboard.infra.stores import LocalTaskStore, RemoteTaskStore


class InlineExecutor(Executor):
    """Runs submitted work immediately so tick writes are deterministic."""

    def submit(self, fn, /, *args, **kwargs) -> Future:
        future: Future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as exc:
            future.set_exception(exc)
        return future


class FakeClock:
    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: int) -> datetime:
        self.now += timedelta(seconds=seconds)
        return self.now


class FakeTicker:
    def __init__(self) -> None:
        self.callback = None

    def start(self, callback) -> None:
        self.callback = callback

    def stop(self) -> None:
        self.callback = None

    def is_active(self) -> bool:
        return self.callback is not None

    def fire(self, times: int = 1) -> None:
        for _ in range(times):
            if self.callback is not None:
                self.callback()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 3, 2, 9, 0, 0))


@pytest.fixture
def storage(tmp_path) -> LocalStorage:
    return LocalStorage(tmp_path / "local_storage.json")


@pytest.fixture
def local_store(storage, clock) -> LocalTaskStore:
    return LocalTaskStore(storage, clock=clock)


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    create_schema(engine)
    yield sessionmaker(bind=engine, autoflush=False, autocommit=False)
    engine.dispose()


@pytest.fixture
def remote_store(session_factory) -> RemoteTaskStore:
    return RemoteTaskStore("user-1", session_factory=session_factory)


@pytest.fixture
def ticker() -> FakeTicker:
    return FakeTicker()


@pytest.fixture
def inline_executor() -> InlineExecutor:
    return InlineExecutor()
