# src/wpmigrate/core/state/cleanup.py
"""Cleanup of migration state directories.

The state manager never deletes a migration directory. Removing old runs
and relocating directories left in the legacy root is an explicit operator
action, performed here.
"""

from __future__ import annotations

import shutil
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from wpmigrate.contracts import MigrationStatus, MigrationSummary, StateCorruptionError, StateLocation
from wpmigrate.core.logging import get_logger
from wpmigrate.core.state.serialization import lock_loads
from wpmigrate.core.state.store import LOCK_FILE

if TYPE_CHECKING:
    from pathlib import Path

    from wpmigrate.core.state.manager import MigrationStateManager

logger = get_logger(__name__)


@dataclass
class CleanupResult:
    """Outcome of a removal or relocation pass."""

    processed: list[str] = field(default_factory=list)
    missing: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)


class MigrationCleaner:
    """Removes or relocates migration directories found by the state manager."""

    def __init__(self, manager: MigrationStateManager) -> None:
        self._manager = manager
        self._store = manager.store

    def select(self, *, include_active: bool = False) -> list[MigrationSummary]:
        """Incomplete migrations eligible for removal.

        By default only stale running migrations are selected: status
        running with no live lock owner. Paused and initializing runs are
        kept for a later resume. include_active selects every incomplete
        migration, locked or not, except one owned by this very process.
        """
        own = self._own_active_migration()
        selected = []
        for summary in self._manager.find_incomplete():
            if summary.migration_id == own:
                continue
            if include_active or (summary.status == MigrationStatus.RUNNING and summary.can_resume):
                selected.append(summary)
        return selected

    def summary_for(self, migration_id: str) -> MigrationSummary | None:
        """Summary for one migration regardless of status."""
        state = self._manager.load(migration_id)
        if state is None:
            return None
        located = self._store.locate(migration_id)
        location = located[1] if located is not None else StateLocation.CANONICAL
        duration = state.actual_duration
        if duration is None:
            end = state.end_time if state.end_time is not None else state.last_save_time
            duration = (end - state.start_time).total_seconds() * 1000
        return MigrationSummary(
            migration_id=state.migration_id,
            source_env=state.source_env,
            target_env=state.target_env,
            status=state.status,
            start_time=state.start_time,
            end_time=state.end_time,
            total_sites=state.total_sites,
            completed_sites=state.completed_sites,
            failed_sites=state.failed_sites,
            timeout_sites=state.timeout_sites,
            duration_ms=duration,
            can_resume=state.status != MigrationStatus.COMPLETED,
            location=location,
        )

    def _own_active_migration(self) -> str | None:
        """Migration id whose lock names this process, if any."""
        for directory, _location in self._store.iter_migration_directories():
            try:
                text = self._store.read_text(directory / LOCK_FILE)
            except OSError:
                continue
            if text is None:
                continue
            try:
                lock = lock_loads(text)
            except StateCorruptionError:
                continue
            if lock.process_id == self._manager.process_id:
                return directory.name
        return None

    def remove(self, migration_ids: list[str]) -> CleanupResult:
        """Delete the directories of the given migrations.

        Canonical root is tried first, then legacy. Failures are collected
        per migration rather than aborting the pass.
        """
        result = CleanupResult()
        for migration_id in migration_ids:
            directory = self._existing_directory(migration_id)
            if directory is None:
                result.missing.append(migration_id)
                continue
            try:
                shutil.rmtree(directory)
            except OSError as e:
                result.errors[migration_id] = str(e)
                logger.warning("migration_directory_remove_failed", migration_id=migration_id, error=str(e))
                continue
            result.processed.append(migration_id)
            logger.info("migration_directory_removed", migration_id=migration_id, path=str(directory))
        return result

    def _existing_directory(self, migration_id: str) -> Path | None:
        try:
            self._store.directory_for(migration_id)
        except ValueError:
            return None
        for root, _location in self._store.roots():
            directory = root / migration_id
            if directory.is_dir():
                return directory
        return None

    def legacy_directories(self) -> list[Path]:
        return [directory for directory, location in self._store.iter_migration_directories() if location == StateLocation.LEGACY]

    def relocate_legacy(self) -> CleanupResult:
        """Move every legacy migration directory into the canonical root.

        A directory whose name already exists in the canonical root is
        skipped, never merged or overwritten.
        """
        result = CleanupResult()
        for source in self.legacy_directories():
            destination = self._store.root / source.name
            if destination.exists():
                result.skipped.append(source.name)
                logger.warning("legacy_relocation_skipped", migration_id=source.name, reason="destination exists")
                continue
            try:
                self._store.root.mkdir(parents=True, exist_ok=True)
                shutil.move(str(source), str(destination))
            except OSError as e:
                result.errors[source.name] = str(e)
                logger.warning("legacy_relocation_failed", migration_id=source.name, error=str(e))
                continue
            result.processed.append(source.name)
            logger.info("legacy_migration_relocated", migration_id=source.name, path=str(destination))
        return result
