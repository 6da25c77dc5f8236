# src/instance_lock/infrastructure/console.py
import io
import sys
import asyncio
from typing import Protocol, TextIO
from dataclasses import dataclass, field


class IPrompt(Protocol):
    async def ask(self, question: str) -> str | None:
        """Return the answer line, or None when no answer can arrive."""
        ...


@dataclass(frozen=True)
class ConsolePrompt:
    """
    Line-based question on stdout, answer read from stdin.

    The read is registered with the running event loop instead of a worker
    thread, so cancelling ask() leaves nothing blocked on stdin and a late
    answer is never consumed.
    """

    stdin: TextIO = field(default_factory=lambda: sys.stdin)
    stdout: TextIO = field(default_factory=lambda: sys.stdout)

    async def ask(self, question: str) -> str | None:
        if self.stdin is None or self.stdin.closed:
            return None

        self.stdout.write(question)
        self.stdout.flush()

        try:
            fd = self.stdin.fileno()
        except (io.UnsupportedOperation, ValueError):
            return None

        loop = asyncio.get_running_loop()
        answer: asyncio.Future[str | None] = loop.create_future()

        def on_readable() -> None:
            line = self.stdin.readline()
            if not answer.done():
                answer.set_result(line.strip() if line else None)

        try:
            loop.add_reader(fd, on_readable)
        except NotImplementedError:
            # Loop without reader support (Windows proactor)
            return None
        except OSError:
            # Regular files cannot be polled; reading them never blocks
            line = self.stdin.readline()
            return line.strip() if line else None

        try:
            return await answer
        finally:
            loop.remove_reader(fd)
