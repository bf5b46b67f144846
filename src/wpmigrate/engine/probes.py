# src/wpmigrate/engine/probes.py
"""Diagnostic probes used by health checks.

Each probe is a small synchronous port with a production implementation:
- ConnectionTester: open a database connection and run a trivial query
- NetworkProbe: TCP reachability of a database host
- MemorySampler: resident memory of this process

All calls block the run for their duration, bounded only by their own
timeouts. Tests inject fakes instead of touching real databases.
"""

from __future__ import annotations

import socket
from typing import TYPE_CHECKING, Any, Protocol

import psutil
from sqlalchemy import create_engine, text
from sqlalchemy.engine import make_url
from sqlalchemy.pool import NullPool

if TYPE_CHECKING:
    from wpmigrate.core.config import DatabaseSettings

_BYTES_PER_MB = 1024 * 1024


class ConnectionTester(Protocol):
    """Tests that a database accepts connections.

    test() returns on success and raises on any failure; the exception
    message is recorded in the health check result.
    """

    def test(self, name: str, database: DatabaseSettings) -> None: ...


class NetworkProbe(Protocol):
    """Checks basic network reachability of a host."""

    def reachable(self, host: str, port: int, timeout: float) -> bool: ...


class MemorySampler(Protocol):
    """Samples memory usage of the running process, in megabytes."""

    def sample_mb(self) -> float: ...


def _connect_args(database: DatabaseSettings) -> dict[str, Any]:
    """Driver-specific connect timeout argument."""
    backend = make_url(database.url).get_backend_name()
    if backend in ("mysql", "mariadb", "postgresql"):
        return {"connect_timeout": database.connect_timeout_seconds}
    if backend == "sqlite":
        return {"timeout": database.connect_timeout_seconds}
    return {}


class SqlAlchemyConnectionTester:
    """Connection tester that runs SELECT 1 through SQLAlchemy.

    A fresh engine without pooling is used per test so a broken connection
    from an earlier check can never make a later one pass or fail.
    """

    def test(self, name: str, database: DatabaseSettings) -> None:
        engine = create_engine(database.url, poolclass=NullPool, connect_args=_connect_args(database))
        try:
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        finally:
            engine.dispose()


class SocketNetworkProbe:
    """Network probe that opens (and immediately closes) a TCP connection."""

    def reachable(self, host: str, port: int, timeout: float) -> bool:
        try:
            with socket.create_connection((host, port), timeout=timeout):
                return True
        except OSError:
            return False


class PsutilMemorySampler:
    """Resident set size of the current process via psutil."""

    def __init__(self) -> None:
        self._process = psutil.Process()

    def sample_mb(self) -> float:
        return self._process.memory_info().rss / _BYTES_PER_MB
