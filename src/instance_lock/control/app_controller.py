# src/instance_lock/control/app_controller.py
import signal
import asyncio
import logging
import subprocess
from dataclasses import dataclass, field
from typing import Callable, Final, Sequence

from ..domain.lock_coordinator import LockCoordinator

CHILD_POLL_SECONDS: Final[float] = 0.1


@dataclass(frozen=True)
class AppController:
    coordinator: LockCoordinator
    logger: logging.Logger
    acquire_timeout: int | None = None
    _children: list[subprocess.Popen[bytes]] = field(default_factory=list, init=False)

    async def acquire(self, *termination_hooks: Callable[[int], None]) -> None:
        # Handlers first, so an interrupt during the prompt still exits cleanly
        self.coordinator.initialize_termination_handlers(*termination_hooks)
        await self.coordinator.acquire(self.acquire_timeout)

    def run_guarded(self, command: Sequence[str]) -> int:
        """Hold the lock while command runs and return its exit status."""
        asyncio.run(self.acquire(self._stop_children))

        try:
            if not command:
                self.logger.info(
                    "Lock acquired for %s, no command given.",
                    self.coordinator.lock_file_path,
                )
                return 0

            self.logger.info("Running guarded command: %s", " ".join(command))
            process = subprocess.Popen(list(command))
            self._children.append(process)
            returncode = self._wait(process)
            if returncode != 0:
                self.logger.warning("Command exited with code %d", returncode)
            return returncode
        finally:
            # A termination signal may already have released it
            if self.coordinator.lock_acquired:
                self.coordinator.release()

    def _stop_children(self, signum: int) -> None:
        """Forward the signal and give the command until wait_for_exit_timeout to stop."""
        timeout = self.coordinator.settings.wait_for_exit_timeout / 1000
        for process in self._children:
            if process.poll() is not None:
                continue

            self.logger.info(
                "Forwarding %s to guarded command (PID: %d)",
                signal.Signals(signum).name,
                process.pid,
            )
            process.send_signal(signum)
            try:
                process.wait(timeout=timeout)
            except subprocess.TimeoutExpired:
                self.logger.warning(
                    "Guarded command (PID: %d) did not stop within %.1fs, killing it",
                    process.pid,
                    timeout,
                )
                process.kill()
                try:
                    process.wait(timeout=timeout)
                except subprocess.TimeoutExpired:
                    self.logger.error("Guarded command (PID: %d) survived SIGKILL", process.pid)

    @staticmethod
    def _wait(process: subprocess.Popen[bytes]) -> int:
        # Short timed waits leave the reaping lock free for the signal handler
        while True:
            try:
                return process.wait(timeout=CHILD_POLL_SECONDS)
            except subprocess.TimeoutExpired:
                continue
