# src/instance_lock/infrastructure/runtime.py
import os
import sys
import atexit
import signal
from types import FrameType
from dataclasses import dataclass
from typing import Callable, NoReturn, Protocol


class IRuntimeHost(Protocol):
    """Process-level side effects the lock coordinator needs."""

    def on_signal(self, signum: int, handler: Callable[[int], None]) -> None:
        ...

    def on_exit(self, handler: Callable[[], None]) -> None:
        ...

    def terminate(self, pid: int) -> None:
        """Ask another process to shut down gracefully."""
        ...

    def exit(self, code: int) -> NoReturn:
        ...


@dataclass(frozen=True)
class OsRuntimeHost:
    def on_signal(self, signum: int, handler: Callable[[int], None]) -> None:
        def handle_signal(received: int, _: FrameType | None) -> None:
            handler(received)

        signal.signal(signum, handle_signal)

    def on_exit(self, handler: Callable[[], None]) -> None:
        atexit.register(handler)

    def terminate(self, pid: int) -> None:
        os.kill(pid, signal.SIGTERM)

    def exit(self, code: int) -> NoReturn:
        sys.exit(code)
