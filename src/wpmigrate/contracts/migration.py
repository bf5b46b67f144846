# src/wpmigrate/contracts/migration.py
"""Migration run domain contracts.

MigrationState is the root aggregate persisted to migration-state.json.
It is deliberately a plain mutable dataclass: the state manager mutates it
in place and persists a full snapshot after every change.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from wpmigrate.contracts.enums import (
    PHASE_ORDER,
    MigrationStatus,
    Phase,
    SiteStatus,
    StateLocation,
)

STATE_VERSION = "1.0.0"


@dataclass
class SiteProgress:
    """Progress of one site within a run.

    counted_as records which outcome bucket (completed/failed/skipped/timeout)
    the site currently contributes to in the run's rollup counters. It is
    kept separately from status because a retried site is in_progress while
    its earlier failure is still counted.
    """

    site_id: int
    status: SiteStatus = SiteStatus.PENDING
    attempts: int = 0
    start_time: datetime | None = None
    end_time: datetime | None = None
    last_attempt_time: datetime | None = None
    error: str | None = None
    estimated_size: float | None = None
    actual_size: float | None = None
    counted_as: SiteStatus | None = None


@dataclass
class PhaseProgress:
    """Progress of one of the five fixed phases."""

    phase: Phase
    status: SiteStatus = SiteStatus.PENDING
    start_time: datetime | None = None
    end_time: datetime | None = None
    error: str | None = None


def initial_phases() -> list[PhaseProgress]:
    """Fresh pending records for every phase, in execution order."""
    return [PhaseProgress(phase=phase) for phase in PHASE_ORDER]


@dataclass
class MigrationState:
    """Complete persisted state of one migration run.

    Invariant: completed_sites + failed_sites + skipped_sites + timeout_sites
    never exceeds total_sites; the remainder are pending or in progress.
    """

    migration_id: str
    source_env: str
    target_env: str
    start_time: datetime
    last_save_time: datetime
    work_dir: str
    log_dir: str
    process_id: int
    version: str = STATE_VERSION
    status: MigrationStatus = MigrationStatus.INITIALIZING
    current_phase: Phase = Phase.PREFLIGHT
    phases: list[PhaseProgress] = field(default_factory=initial_phases)
    sites: dict[int, SiteProgress] = field(default_factory=dict)
    total_sites: int = 0
    completed_sites: int = 0
    failed_sites: int = 0
    skipped_sites: int = 0
    timeout_sites: int = 0
    options: dict[str, Any] = field(default_factory=dict)
    end_time: datetime | None = None
    backup_id: str | None = None
    estimated_duration: float | None = None
    actual_duration: float | None = None  # milliseconds

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def outcome_count(self) -> int:
        """Sites that have reached an outcome bucket."""
        return self.completed_sites + self.failed_sites + self.skipped_sites + self.timeout_sites

    def phase(self, phase: Phase) -> PhaseProgress:
        """Return the progress record for a phase.

        Raises:
            KeyError: If the phase record is missing (corrupt state)
        """
        for progress in self.phases:
            if progress.phase == phase:
                return progress
        raise KeyError(phase)


@dataclass(frozen=True)
class MigrationSummary:
    """Lightweight listing entry for a migration found on disk."""

    migration_id: str
    source_env: str
    target_env: str
    status: MigrationStatus
    start_time: datetime
    end_time: datetime | None
    total_sites: int
    completed_sites: int
    failed_sites: int
    timeout_sites: int
    duration_ms: float
    can_resume: bool
    location: StateLocation = StateLocation.CANONICAL


@dataclass(frozen=True)
class ResumeOptions:
    """Filters applied when deriving a resume worklist.

    only_failed takes precedence over skip_failed and skip_timeouts.
    retry_failed is accepted for compatibility with saved run options and
    has no effect on the worklist.
    """

    skip_failed: bool = False
    skip_timeouts: bool = False
    retry_failed: bool = False
    only_failed: bool = False


@dataclass(frozen=True)
class LockInfo:
    """Contents of a .migration-lock file."""

    migration_id: str
    process_id: int
    start_time: datetime
    source_env: str
    target_env: str
