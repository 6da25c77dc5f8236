"""Shared fakes and fixtures for the lock coordinator tests."""

import os
import time
import asyncio
import logging
from pathlib import Path
from typing import Callable, NoReturn

import pytest

from instance_lock.domain.lock_config import LockSettings
from instance_lock.domain.lock_coordinator import LockCoordinator

OWN_PID = 4242
OTHER_PID = 9999


class FakeStore:
    """In-memory lock store; None content means no file."""

    def __init__(self, path: Path, content: str | None = None):
        self.path = path
        self.content = content
        self.read_error: Exception | None = None
        self.create_failures: list[Exception] = []
        self.create_delay = 0.0
        self.create_calls = 0
        self.replace_calls = 0
        self.delete_calls = 0

    def read(self) -> str:
        if self.read_error is not None:
            raise self.read_error
        if self.content is None:
            raise FileNotFoundError(str(self.path))
        return self.content

    def create(self, content: str) -> None:
        self.create_calls += 1
        if self.create_delay:
            time.sleep(self.create_delay)
        if self.create_failures:
            raise self.create_failures.pop(0)
        if self.content is not None:
            raise FileExistsError(str(self.path))
        self.content = content

    def replace(self, content: str) -> None:
        self.replace_calls += 1
        self.content = content

    def delete(self) -> None:
        self.delete_calls += 1
        if self.content is None:
            raise FileNotFoundError(str(self.path))
        self.content = None


class FakeOracle:
    """Scripted liveness answers per PID. The last answer repeats."""

    def __init__(self, states: dict[int, list[bool | Exception]] | None = None):
        self.states = states or {}
        self.calls: list[int] = []

    async def is_running(self, pid: int) -> bool:
        self.calls.append(pid)
        script = self.states.get(pid, [False])
        answer = script.pop(0) if len(script) > 1 else script[0]
        if isinstance(answer, Exception):
            raise answer
        return answer


class FakePrompt:
    """Answers immediately, or never answers when answer is None."""

    def __init__(self, answer: str | None = None):
        self.answer = answer
        self.questions: list[str] = []
        self.cancelled = False

    async def ask(self, question: str) -> str | None:
        self.questions.append(question)
        if self.answer is not None:
            return self.answer
        try:
            await asyncio.Event().wait()
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        return None


class FakeRuntime:
    def __init__(self, terminate: Callable[[int], None] | None = None):
        self.signal_handlers: dict[int, Callable[[int], None]] = {}
        self.exit_handlers: list[Callable[[], None]] = []
        self.terminated: list[int] = []
        self.exit_codes: list[int] = []
        self.terminate_error: Exception | None = None
        self._terminate = terminate

    def on_signal(self, signum: int, handler: Callable[[int], None]) -> None:
        self.signal_handlers[signum] = handler

    def on_exit(self, handler: Callable[[], None]) -> None:
        self.exit_handlers.append(handler)

    def terminate(self, pid: int) -> None:
        self.terminated.append(pid)
        if self.terminate_error is not None:
            raise self.terminate_error
        if self._terminate is not None:
            self._terminate(pid)

    def exit(self, code: int) -> NoReturn:
        self.exit_codes.append(code)
        raise SystemExit(code)


@pytest.fixture(autouse=True)
def log_level(caplog):
    caplog.set_level(logging.INFO)


@pytest.fixture
def logger() -> logging.Logger:
    return logging.getLogger("tests.instance_lock")


@pytest.fixture
def settings(tmp_path) -> LockSettings:
    return LockSettings(
        lock_file_name="test.lock",
        lock_file_dir=tmp_path,
        kill_timeout=50,
        wait_for_exit_timeout=300,
        check_interval=10,
        max_retries=3,
    )


@pytest.fixture
def store(settings) -> FakeStore:
    return FakeStore(settings.lock_file_path)


@pytest.fixture
def oracle() -> FakeOracle:
    return FakeOracle()


@pytest.fixture
def prompt() -> FakePrompt:
    return FakePrompt()


@pytest.fixture
def runtime() -> FakeRuntime:
    return FakeRuntime()


@pytest.fixture
def coordinator(settings, store, oracle, prompt, runtime, logger) -> LockCoordinator:
    return LockCoordinator(
        settings=settings,
        store=store,
        oracle=oracle,
        prompt=prompt,
        runtime=runtime,
        logger=logger,
        pid=OWN_PID,
    )


def make_coordinator(settings, store, oracle, prompt, runtime, logger, pid=None) -> LockCoordinator:
    return LockCoordinator(
        settings=settings,
        store=store,
        oracle=oracle,
        prompt=prompt,
        runtime=runtime,
        logger=logger,
        pid=pid if pid is not None else os.getpid(),
    )
