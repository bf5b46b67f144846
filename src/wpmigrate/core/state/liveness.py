"""Process liveness checks for migration lock ownership.

A lock file only guards a migration while the process that wrote it is
still running. Liveness is checked through psutil so the same code works
on Linux, macOS and Windows.
"""

from __future__ import annotations

from typing import Protocol

import psutil


class ProcessLivenessChecker(Protocol):
    """Reports whether a process id belongs to a running process."""

    def is_alive(self, pid: int) -> bool: ...


class PsutilLivenessChecker:
    """Production liveness checker backed by psutil.

    Zombie processes count as dead: they will never release their lock.
    """

    def is_alive(self, pid: int) -> bool:
        if pid <= 0:
            return False
        if not psutil.pid_exists(pid):
            return False
        try:
            return psutil.Process(pid).status() != psutil.STATUS_ZOMBIE
        except psutil.NoSuchProcess:
            return False
        except psutil.AccessDenied:
            # Exists but owned by someone else: still alive
            return True
