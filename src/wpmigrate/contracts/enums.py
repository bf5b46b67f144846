# src/wpmigrate/contracts/enums.py
"""All status codes and decisions used across subsystem boundaries.

Values are persisted verbatim in migration-state.json, so they must stay
compatible with state directories written by earlier releases.
"""

from enum import StrEnum


class MigrationStatus(StrEnum):
    """Status of a migration run.

    Stored in migration-state.json (status).
    """

    INITIALIZING = "initializing"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    PAUSED = "paused"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_MIGRATION_STATUSES


TERMINAL_MIGRATION_STATUSES = frozenset({MigrationStatus.COMPLETED, MigrationStatus.FAILED, MigrationStatus.CANCELLED})


class SiteStatus(StrEnum):
    """Status of a single site within a run.

    Also reused (loosely) for phases, where only PENDING, IN_PROGRESS,
    COMPLETED and FAILED are meaningful.
    """

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"
    TIMEOUT = "timeout"

    @property
    def is_outcome(self) -> bool:
        """True for statuses that end an attempt (and stamp end_time)."""
        return self in OUTCOME_SITE_STATUSES


OUTCOME_SITE_STATUSES = frozenset({SiteStatus.COMPLETED, SiteStatus.FAILED, SiteStatus.SKIPPED, SiteStatus.TIMEOUT})


class Phase(StrEnum):
    """The five fixed stages of a migration, in execution order."""

    PREFLIGHT = "preflight"
    NETWORK_TABLES = "network_tables"
    SITES = "sites"
    POST_MIGRATION = "post_migration"
    CLEANUP = "cleanup"


PHASE_ORDER: tuple[Phase, ...] = (
    Phase.PREFLIGHT,
    Phase.NETWORK_TABLES,
    Phase.SITES,
    Phase.POST_MIGRATION,
    Phase.CLEANUP,
)


class Decision(StrEnum):
    """Verdict returned by the systemic failure detector after each site.

    Values:
        CONTINUE: Keep processing sites
        PAUSE: Persist state and stop; the run can be resumed later
        ABORT: Stop immediately; caller should finalize as cancelled
    """

    CONTINUE = "continue"
    PAUSE = "pause"
    ABORT = "abort"


class StateLocation(StrEnum):
    """Which root a migration directory was found under."""

    CANONICAL = "canonical"
    LEGACY = "legacy"
