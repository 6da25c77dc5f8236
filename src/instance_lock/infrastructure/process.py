# src/instance_lock/infrastructure/process.py
import asyncio
from typing import Protocol

import psutil


class ILivenessOracle(Protocol):
    async def is_running(self, pid: int) -> bool:
        ...


class PsutilLivenessOracle:
    """
    Answers whether a PID exists on this host, regardless of who owns it.
    A process we may not inspect still exists, so AccessDenied counts as running.
    """

    async def is_running(self, pid: int) -> bool:
        return await asyncio.to_thread(self._is_alive, pid)

    @staticmethod
    def _is_alive(pid: int) -> bool:
        try:
            return psutil.Process(pid).status() != psutil.STATUS_ZOMBIE
        except psutil.NoSuchProcess:
            return False
        except psutil.AccessDenied:
            return True
