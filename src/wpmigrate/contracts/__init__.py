# src/wpmigrate/contracts/__init__.py
"""Shared contracts for cross-boundary data types.

This package is a LEAF MODULE with no outbound dependencies to core/engine.
Settings classes are NOT re-exported here - import them from
wpmigrate.core.config.
"""

from wpmigrate.contracts.enums import (
    OUTCOME_SITE_STATUSES,
    PHASE_ORDER,
    TERMINAL_MIGRATION_STATUSES,
    Decision,
    MigrationStatus,
    Phase,
    SiteStatus,
    StateLocation,
)
from wpmigrate.contracts.errors import (
    ActiveMigrationError,
    PhaseNotFoundError,
    SiteNotFoundError,
    StateCorruptionError,
)
from wpmigrate.contracts.health import HealthCheckResult
from wpmigrate.contracts.migration import (
    STATE_VERSION,
    LockInfo,
    MigrationState,
    MigrationSummary,
    PhaseProgress,
    ResumeOptions,
    SiteProgress,
    initial_phases,
)

__all__ = [
    "OUTCOME_SITE_STATUSES",
    "PHASE_ORDER",
    "STATE_VERSION",
    "TERMINAL_MIGRATION_STATUSES",
    "ActiveMigrationError",
    "Decision",
    "HealthCheckResult",
    "LockInfo",
    "MigrationState",
    "MigrationStatus",
    "MigrationSummary",
    "Phase",
    "PhaseNotFoundError",
    "PhaseProgress",
    "ResumeOptions",
    "SiteNotFoundError",
    "SiteProgress",
    "StateCorruptionError",
    "StateLocation",
    "initial_phases",
]
