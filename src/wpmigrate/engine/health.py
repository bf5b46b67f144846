# src/wpmigrate/engine/health.py
"""Health checks for the databases a migration depends on.

A health check tests the migration database and every configured
environment database, then samples process memory:

- migration database failure: issue, unhealthy
- critical environment failure (prod, pprd by default): issue, unhealthy
- other environment failure: issue plus warning, still healthy
- memory above the warning threshold: warning
- memory above the critical threshold: issue, unhealthy
- the check itself slower than the slow threshold: warning
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

from sqlalchemy.engine import make_url

from wpmigrate.contracts import HealthCheckResult
from wpmigrate.core.logging import get_logger
from wpmigrate.engine.clock import DEFAULT_CLOCK
from wpmigrate.engine.probes import (
    PsutilMemorySampler,
    SocketNetworkProbe,
    SqlAlchemyConnectionTester,
)

if TYPE_CHECKING:
    from collections.abc import Mapping

    from wpmigrate.core.config import DatabaseSettings, HealthSettings, WpMigrateSettings
    from wpmigrate.engine.clock import Clock
    from wpmigrate.engine.probes import ConnectionTester, MemorySampler, NetworkProbe

logger = get_logger(__name__)

MIGRATION_TARGET = "migration"


class SupportsHealthCheck(Protocol):
    """What the failure detector needs from a health checker."""

    def check(self) -> HealthCheckResult: ...

    def probe_connectivity(self) -> list[str]: ...


class HealthChecker:
    """Runs connection tests and resource sampling against configured targets."""

    def __init__(
        self,
        settings: HealthSettings,
        migration_database: DatabaseSettings | None = None,
        environments: Mapping[str, DatabaseSettings] | None = None,
        *,
        connection_tester: ConnectionTester | None = None,
        network_probe: NetworkProbe | None = None,
        memory_sampler: MemorySampler | None = None,
        clock: Clock | None = None,
    ) -> None:
        """Initialize health checker.

        Args:
            settings: Thresholds and critical environment names
            migration_database: Intermediate migration database, if any
            environments: Environment databases in the order to test them
            connection_tester: Defaults to SQLAlchemy SELECT 1
            network_probe: Defaults to a TCP connect probe
            memory_sampler: Defaults to psutil RSS
            clock: Clock for timing the check. Defaults to system clock.
        """
        self._settings = settings
        self._migration_database = migration_database
        self._environments = dict(environments or {})
        self._tester = connection_tester if connection_tester is not None else SqlAlchemyConnectionTester()
        self._probe = network_probe if network_probe is not None else SocketNetworkProbe()
        self._memory = memory_sampler if memory_sampler is not None else PsutilMemorySampler()
        self._clock = clock if clock is not None else DEFAULT_CLOCK

    @classmethod
    def from_settings(
        cls,
        settings: WpMigrateSettings,
        *,
        connection_tester: ConnectionTester | None = None,
        network_probe: NetworkProbe | None = None,
        memory_sampler: MemorySampler | None = None,
        clock: Clock | None = None,
    ) -> HealthChecker:
        return cls(
            settings.health,
            settings.migration_database,
            settings.environments,
            connection_tester=connection_tester,
            network_probe=network_probe,
            memory_sampler=memory_sampler,
            clock=clock,
        )

    def targets(self) -> list[tuple[str, DatabaseSettings]]:
        """All configured databases, migration database first."""
        targets: list[tuple[str, DatabaseSettings]] = []
        if self._migration_database is not None:
            targets.append((MIGRATION_TARGET, self._migration_database))
        targets.extend(self._environments.items())
        return targets

    def check(self) -> HealthCheckResult:
        """Run one health check. Never raises for probe failures."""
        started = self._clock.monotonic()
        result = HealthCheckResult()

        if self._migration_database is not None:
            try:
                self._tester.test(MIGRATION_TARGET, self._migration_database)
            except Exception as e:
                result.healthy = False
                result.issues.append(f"Migration database connection failed: {e}")

        for name, database in self._environments.items():
            try:
                self._tester.test(name, database)
            except Exception as e:
                result.issues.append(f"{name} database connection failed: {e}")
                if name in self._settings.critical_environments:
                    result.healthy = False
                else:
                    result.warnings.append(f"Non-critical environment {name} connection issue")

        self._check_memory(result)

        result.response_time_ms = (self._clock.monotonic() - started) * 1000
        if result.response_time_ms > self._settings.slow_health_check_ms:
            result.warnings.append(f"Slow health check response: {result.response_time_ms:.0f}ms")

        logger.debug(
            "health_check_completed",
            healthy=result.healthy,
            issues=len(result.issues),
            warnings=len(result.warnings),
            response_time_ms=result.response_time_ms,
        )
        return result

    def _check_memory(self, result: HealthCheckResult) -> None:
        try:
            memory_mb = self._memory.sample_mb()
        except Exception as e:
            result.warnings.append(f"Could not check memory usage: {e}")
            return

        if memory_mb > self._settings.memory_warning_mb:
            result.warnings.append(f"High memory usage: {memory_mb:.0f}MB")
        if memory_mb > self._settings.memory_critical_mb:
            result.healthy = False
            result.issues.append(f"Very high memory usage: {memory_mb:.0f}MB - potential memory leak")

    def probe_connectivity(self) -> list[str]:
        """Probe TCP reachability of every configured database host.

        Returns a description per unreachable host. Targets without a
        network host (e.g. SQLite files) are skipped.
        """
        failures: list[str] = []
        for name, database in self.targets():
            url = make_url(database.url)
            if not url.host:
                continue
            port = url.port or self._settings.default_port
            if not self._probe.reachable(url.host, port, self._settings.probe_timeout_seconds):
                failures.append(f"Network connectivity issue to {name} database host: {url.host}:{port}")
        return failures
