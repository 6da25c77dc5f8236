# src/instance_lock/domain/lock_coordinator.py
import os
import signal
import asyncio
import logging
from pathlib import Path
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator, Awaitable, Callable, Final, NoReturn, TypeVar

from returns.io import IOFailure, IOResult
from returns.pipeline import is_successful
from returns.result import safe
from returns.future import future_safe
from returns.unsafe import unsafe_perform_io

from .lock_config import LockSettings
from .models import AFFIRMATIVE_ANSWER, InvalidLockRecordError, LockError, LockRecord
from ..infrastructure.fs import ILockStore
from ..infrastructure.console import IPrompt
from ..infrastructure.process import ILivenessOracle
from ..infrastructure.runtime import IRuntimeHost

RETRY_DELAY_SECONDS: Final[float] = 0.1
TERMINATION_SIGNALS: Final[tuple[signal.Signals, ...]] = (signal.SIGINT, signal.SIGTERM)

_T = TypeVar("_T")


@dataclass
class LockCoordinator:
    """
    Keeps a single instance of an application running on this host.

    Ownership is a PID written to the lock file. check_lock() resolves an
    existing owner (orphaned, or alive and displaced after confirmation),
    create_lock() claims the file, and the termination handlers release it.
    Every fatal condition logs a diagnostic and ends the process through the
    runtime host with status 1.
    """

    settings: LockSettings
    store: ILockStore
    oracle: ILivenessOracle
    prompt: IPrompt
    runtime: IRuntimeHost
    logger: logging.Logger
    pid: int = field(default_factory=os.getpid)
    lock_acquired: bool = field(default=False, init=False)
    other_process_exited: bool = field(default=False, init=False)
    termination_hooks: list[Callable[[int], None]] = field(default_factory=list, init=False)

    @property
    def lock_file_path(self) -> Path:
        return self.settings.lock_file_path

    # ------------------------ Acquisition ------------------------

    async def check_lock(self) -> None:
        read = await asyncio.to_thread(self._read_record)

        if not is_successful(read):
            error = read.failure()
            if isinstance(error, FileNotFoundError):
                self.logger.info("Lock not held. Proceeding to acquire the lock.")
                return
            self._fatal("Error reading lock file %s: %s", self.lock_file_path, error)

        try:
            record = LockRecord.parse(read.unwrap())
        except InvalidLockRecordError:
            self._fatal("Error: Invalid PID found in the lock file. Exiting.")

        stored_pid = record.owner_pid
        if stored_pid == self.pid:
            self.logger.info("Lock file already holds this process (PID: %d).", stored_pid)
            return

        try:
            running = await self.oracle.is_running(stored_pid)
        except Exception as e:
            self._fatal("Error checking whether PID %d is running: %s", stored_pid, e)

        if not running:
            self.logger.info(
                "Lock file found, but the process (PID: %d) is not running. "
                "Proceeding to acquire the lock.",
                stored_pid,
            )
            return

        await self._displace(stored_pid)

    async def create_lock(
        self,
        timeout: int | None = None,
        retries: int | None = None,
    ) -> None:
        """
        Write our PID to the lock file, retrying failed attempts every 100 ms.

        timeout is in milliseconds and bounds the whole acquisition, including
        a single slow attempt; None waits indefinitely. retries counts attempts
        beyond the first and defaults to the configured max_retries.
        """
        max_retries = self.settings.max_retries if retries is None else retries
        loop = asyncio.get_running_loop()
        started = loop.time()
        attempts = 0

        def elapsed_ms() -> float:
            return (loop.time() - started) * 1000

        result: IOResult[None, Exception]
        while not self.lock_acquired:
            if timeout is None:
                result = await self._claim().awaitable()
            else:
                result = await self._first_of(
                    self._claim().awaitable(),
                    max(timeout - elapsed_ms(), 0),
                    IOFailure(TimeoutError("lock write did not complete in time")),
                )

            if is_successful(result):
                self.lock_acquired = True
                self.logger.info("Lock acquired (PID: %d).", self.pid)
                return

            attempts += 1
            self.logger.warning(
                "Attempt %d to acquire %s failed: %s",
                attempts,
                self.lock_file_path,
                unsafe_perform_io(result.failure()),
            )

            if timeout is not None and elapsed_ms() >= timeout:
                self._fatal("Error: Lock acquisition timed out. Unable to acquire the lock. Exiting.")

            if attempts > max_retries:
                self._fatal("Error: Maximum retries reached. Unable to acquire the lock. Exiting.")

            await asyncio.sleep(RETRY_DELAY_SECONDS)

    async def acquire(self, timeout: int | None = None) -> None:
        await self.check_lock()
        await self.create_lock(timeout)

    @asynccontextmanager
    async def held(self, timeout: int | None = None) -> AsyncIterator["LockCoordinator"]:
        await self.acquire(timeout)
        try:
            yield self
        finally:
            await self.remove_lock()

    # ------------------------ Release ------------------------

    async def remove_lock(self) -> None:
        await asyncio.to_thread(self.release)

    def release(self) -> None:
        """Delete the lock file now. Failures are logged, never raised."""
        self._delete_record().map(self._on_released).alt(self._on_release_failed)

    def initialize_termination_handlers(self, *hooks: Callable[[int], None]) -> None:
        """
        Release the lock on SIGINT, SIGTERM and normal exit.

        hooks run with the signal number before the lock is released, e.g. to
        stop work this process started.
        """
        self.termination_hooks.extend(hooks)
        for sig in TERMINATION_SIGNALS:
            self.runtime.on_signal(sig, self._handle_termination)
        self.runtime.on_exit(self._handle_exit)

    def _handle_termination(self, signum: int) -> None:
        self.logger.info("Received %s, handling termination...", signal.Signals(signum).name)
        for hook in self.termination_hooks:
            try:
                hook(signum)
            except Exception:
                self.logger.exception("Termination hook failed")
        if self.lock_acquired:
            self.release()
        else:
            self.logger.info("Lock was not acquired. Exiting without removing lock file.")
        self.runtime.exit(0)

    def _handle_exit(self) -> None:
        if self.lock_acquired:
            self.logger.info("Process exiting, releasing lock.")
            self.release()

    def _on_released(self, _: None) -> None:
        self.lock_acquired = False
        self.logger.info("Lock released.")

    def _on_release_failed(self, error: Exception) -> None:
        self.logger.error("Error releasing the lock: %s", error)

    # ------------------------ Displacement ------------------------

    async def _displace(self, stored_pid: int) -> None:
        question = (
            f"Another instance is already running (PID: {stored_pid}). "
            "Do you want to kill it and start a new one? (yes/no) "
        )
        answer = await self._first_of(self.prompt.ask(question), self.settings.kill_timeout, None)
        if answer is None:
            self.logger.info("No answer received, using default answer %r.", self.settings.default_answer)
            answer = self.settings.default_answer

        if answer.lower() != AFFIRMATIVE_ANSWER:
            self.logger.info("Exiting without starting a new instance.")
            self.runtime.exit(0)

        self.logger.info("Killing the old instance (PID: %d)...", stored_pid)
        try:
            self.runtime.terminate(stored_pid)
        except OSError as e:
            self._fatal("Error killing the old instance (PID: %d): %s", stored_pid, e)

        await self.wait_for_other_process_exit(stored_pid)

        if not self.other_process_exited:
            self._fatal("Error: Timeout waiting for the old instance to exit. Exiting.")

    async def wait_for_other_process_exit(self, pid: int) -> None:
        """Poll until pid is gone or wait_for_exit_timeout elapses; checks at least once."""
        loop = asyncio.get_running_loop()
        interval = self.settings.check_interval / 1000
        deadline = loop.time() + self.settings.wait_for_exit_timeout / 1000
        self.other_process_exited = False

        while True:
            try:
                if not await self.oracle.is_running(pid):
                    self.other_process_exited = True
                    self.logger.info("Old instance (PID: %d) has exited.", pid)
                    return
            except (ProcessLookupError, PermissionError) as e:
                self.logger.error("Unrecoverable error checking PID %d: %s. Stopping wait.", pid, e)
                break
            except Exception as e:
                self.logger.error("Error checking if the other process has exited: %s", e)

            remaining = deadline - loop.time()
            if remaining <= 0:
                break
            await asyncio.sleep(min(interval, remaining))

        self.logger.error("Timeout waiting for the other process (PID: %d) to exit.", pid)

    # ------------------------ Helpers ------------------------

    @future_safe
    async def _claim(self) -> None:
        """
        Exclusive create first. An existing file is only taken over when it
        names a dead process or garbage, and the takeover is read back so a
        concurrent winner makes this attempt fail.
        """
        content = LockRecord(owner_pid=self.pid).encode()
        created = await asyncio.to_thread(self._create_record, content)
        if is_successful(created):
            return

        error = created.failure()
        if not isinstance(error, FileExistsError):
            raise error

        owner = await self._current_owner()
        if owner == self.pid:
            return
        if owner is not None and await self.oracle.is_running(owner):
            raise LockError(f"Lock is held by running process {owner}")

        self.logger.info("Replacing stale lock file %s.", self.lock_file_path)
        await asyncio.to_thread(self.store.replace, content)

        if await self._current_owner() != self.pid:
            raise LockError("Lock was claimed by another process")

    async def _current_owner(self) -> int | None:
        """PID in the lock file, or None when it is missing or unreadable as a PID."""
        read = await asyncio.to_thread(self._read_record)
        if not is_successful(read):
            error = read.failure()
            if isinstance(error, FileNotFoundError):
                return None
            raise error
        try:
            return LockRecord.parse(read.unwrap()).owner_pid
        except InvalidLockRecordError:
            self.logger.warning("Lock file %s holds an invalid PID.", self.lock_file_path)
            return None

    async def _first_of(self, operation: Awaitable[_T], timeout_ms: float, fallback: _T) -> _T:
        """Await operation, or return fallback once timeout_ms passes. The loser is cancelled."""
        try:
            return await asyncio.wait_for(operation, timeout_ms / 1000)
        except asyncio.TimeoutError:
            return fallback

    @safe
    def _read_record(self) -> str:
        return self.store.read()

    @safe
    def _create_record(self, content: str) -> None:
        self.store.create(content)

    @safe
    def _delete_record(self) -> None:
        self.store.delete()

    def _fatal(self, message: str, *args: object) -> NoReturn:
        self.logger.error(message, *args)
        self.runtime.exit(1)
