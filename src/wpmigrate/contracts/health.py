# src/wpmigrate/contracts/health.py
"""Health check result contract."""

from dataclasses import dataclass, field


@dataclass
class HealthCheckResult:
    """Outcome of one health check.

    issues contribute to an unhealthy verdict only where the checker says
    so (critical environments, the migration database). warnings never do.
    """

    healthy: bool = True
    issues: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    response_time_ms: float = 0.0

    def to_dict(self) -> dict[str, object]:
        return {
            "healthy": self.healthy,
            "issues": list(self.issues),
            "warnings": list(self.warnings),
            "response_time_ms": self.response_time_ms,
        }
