# src/wpmigrate/core/state/manager.py
"""MigrationStateManager: lifecycle of persisted migration state.

Owns creation, mutation, persistence, discovery and finalization of
migration runs, plus the lock that keeps two live runs from colliding.

Every mutation persists a full snapshot before returning, so whatever the
caller observed last is what a resumed run will see after a crash. A site
that was in_progress when the process died stays in_progress on disk; the
resuming caller treats it as not yet done.

Usage:
    manager = MigrationStateManager(MigrationStateStore(root, legacy_root))

    manager.ensure_no_active_migration()
    state = manager.create("prod", "uat", site_ids, options)
    manager.update_phase_status(state, Phase.SITES, SiteStatus.IN_PROGRESS)
    for site_id in manager.sites_to_process(state):
        manager.update_site_status(state, site_id, SiteStatus.IN_PROGRESS)
        ...
    manager.finalize(state, MigrationStatus.COMPLETED)
"""

from __future__ import annotations

import os
import secrets
import string
import tempfile
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import TYPE_CHECKING, Any

from wpmigrate.contracts import (
    ActiveMigrationError,
    LockInfo,
    MigrationState,
    MigrationStatus,
    MigrationSummary,
    Phase,
    PhaseNotFoundError,
    ResumeOptions,
    SiteNotFoundError,
    SiteProgress,
    SiteStatus,
    StateCorruptionError,
    StateLocation,
)
from wpmigrate.core.logging import get_logger
from wpmigrate.core.state.liveness import PsutilLivenessChecker
from wpmigrate.core.state.serialization import (
    config_snapshot_to_dict,
    dumps,
    format_timestamp,
    lock_loads,
    lock_to_dict,
    state_dumps,
    state_loads,
    summary_to_dict,
)
from wpmigrate.core.state.store import (
    CONFIG_FILE,
    LOCK_FILE,
    PROGRESS_LOG,
    STATE_FILE,
    SUMMARY_FILE,
    MigrationStateStore,
)
from wpmigrate.engine.clock import DEFAULT_CLOCK

if TYPE_CHECKING:
    from wpmigrate.core.config import StateSettings
    from wpmigrate.core.state.liveness import ProcessLivenessChecker
    from wpmigrate.engine.clock import Clock

logger = get_logger(__name__)

_ID_SUFFIX_ALPHABET = string.ascii_lowercase + string.digits
_ID_SUFFIX_LENGTH = 6

# Rollup counter for each outcome bucket
_BUCKET_COUNTERS: dict[SiteStatus, str] = {
    SiteStatus.COMPLETED: "completed_sites",
    SiteStatus.FAILED: "failed_sites",
    SiteStatus.SKIPPED: "skipped_sites",
    SiteStatus.TIMEOUT: "timeout_sites",
}


class MigrationStateManager:
    """Operations surface over the migration state store."""

    def __init__(
        self,
        store: MigrationStateStore,
        liveness: ProcessLivenessChecker | None = None,
        clock: Clock | None = None,
        process_id: int | None = None,
    ) -> None:
        """Initialize manager.

        Args:
            store: Filesystem layout for state directories
            liveness: Process liveness checker for lock ownership.
                Defaults to psutil.
            clock: Clock for timestamps. Inject MockClock in tests.
            process_id: Id recorded as lock owner. Defaults to this process.
        """
        self._store = store
        self._liveness = liveness if liveness is not None else PsutilLivenessChecker()
        self._clock = clock if clock is not None else DEFAULT_CLOCK
        self._process_id = process_id if process_id is not None else os.getpid()

    @classmethod
    def from_settings(cls, settings: StateSettings, **kwargs: Any) -> MigrationStateManager:
        store = MigrationStateStore(
            root=settings.resolved_root(),
            legacy_root=settings.resolved_legacy_root(),
            id_prefix=settings.id_prefix,
        )
        return cls(store, **kwargs)

    @property
    def store(self) -> MigrationStateStore:
        return self._store

    @property
    def process_id(self) -> int:
        return self._process_id

    # ------------------------------------------------------------------
    # Identity and paths
    # ------------------------------------------------------------------

    def generate_migration_id(self) -> str:
        """Timestamp (second resolution) plus a short random suffix.

        The timestamp is for humans browsing the log root; nothing parses it.
        """
        timestamp = self._clock.now().strftime("%Y-%m-%dT%H-%M-%S")
        suffix = "".join(secrets.choice(_ID_SUFFIX_ALPHABET) for _ in range(_ID_SUFFIX_LENGTH))
        return f"{self._store.id_prefix}{timestamp}-{suffix}"

    def migration_directory(self, migration_id: str) -> Path:
        """Canonical directory for a migration id."""
        return self._store.directory_for(migration_id)

    def directories(self) -> dict[str, Path | None]:
        return {"current": self._store.root, "legacy": self._store.legacy_root}

    # ------------------------------------------------------------------
    # Creation and persistence
    # ------------------------------------------------------------------

    def create(
        self,
        source_env: str,
        target_env: str,
        site_ids: Iterable[int],
        options: Mapping[str, Any] | None = None,
    ) -> MigrationState:
        """Create and persist a new migration run.

        Writes, in order: state file, config snapshot, lock file. The three
        writes are individually atomic but not transactional as a group.

        Raises:
            ValueError: If site_ids contains duplicates
        """
        ids = list(site_ids)
        sites = {site_id: SiteProgress(site_id=site_id) for site_id in ids}
        if len(sites) != len(ids):
            raise ValueError("site_ids must be unique")

        run_options = dict(options or {})
        migration_id = self.generate_migration_id()
        log_dir = self._store.ensure_directory(migration_id)
        now = self._clock.now()

        state = MigrationState(
            migration_id=migration_id,
            source_env=source_env,
            target_env=target_env,
            start_time=now,
            last_save_time=now,
            work_dir=str(run_options.get("work_dir") or tempfile.gettempdir()),
            log_dir=str(log_dir),
            process_id=self._process_id,
            sites=sites,
            total_sites=len(ids),
            options=run_options,
        )

        self.save(state)
        self._write_config(state, run_options)
        self._write_lock(state)

        logger.info(
            "migration_created",
            migration_id=migration_id,
            source_env=source_env,
            target_env=target_env,
            total_sites=state.total_sites,
        )
        return state

    def save(self, state: MigrationState) -> None:
        """Persist a full snapshot of state, stamping last_save_time first.

        Raises:
            OSError: If the state file cannot be written
        """
        state.last_save_time = self._clock.now()
        self._store.write_text_atomic(Path(state.log_dir) / STATE_FILE, state_dumps(state))

    def load(self, migration_id: str) -> MigrationState | None:
        """Load a migration's state, canonical root first, then legacy.

        Returns None when the state does not exist OR cannot be parsed.
        A None result does not prove the migration never existed.
        """
        if not migration_id or "/" in migration_id or "\\" in migration_id:
            logger.warning("invalid_migration_id", migration_id=migration_id)
            return None
        located = self._store.locate(migration_id)
        if located is None:
            return None
        directory, location = located
        if location == StateLocation.LEGACY:
            logger.warning(
                "migration_state_in_legacy_location",
                migration_id=migration_id,
                path=str(directory / STATE_FILE),
                hint="run `wpmigrate cleanup --legacy` to move it to the current location",
            )
        return self._load_from(directory)

    def _load_from(self, directory: Path) -> MigrationState | None:
        state_file = directory / STATE_FILE
        try:
            text = self._store.read_text(state_file)
            if text is None:
                return None
            state = state_loads(text)
        except (OSError, StateCorruptionError) as e:
            logger.warning("migration_state_unreadable", path=str(state_file), error=str(e))
            return None
        # The directory actually read from is authoritative (legacy runs move)
        state.log_dir = str(directory)
        return state

    def _write_config(self, state: MigrationState, options: Mapping[str, Any]) -> None:
        path = Path(state.log_dir) / CONFIG_FILE
        self._store.write_text_atomic(path, dumps(config_snapshot_to_dict(state, options)))

    def _write_lock(self, state: MigrationState) -> None:
        lock = LockInfo(
            migration_id=state.migration_id,
            process_id=self._process_id,
            start_time=state.start_time,
            source_env=state.source_env,
            target_env=state.target_env,
        )
        self._store.write_text_atomic(Path(state.log_dir) / LOCK_FILE, dumps(lock_to_dict(lock)))

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def update_site_status(
        self,
        state: MigrationState,
        site_id: int,
        status: SiteStatus,
        error: str | None = None,
    ) -> None:
        """Record a site status change and persist.

        Raises:
            SiteNotFoundError: If site_id is not part of this run
        """
        site = state.sites.get(site_id)
        if site is None:
            raise SiteNotFoundError(site_id, state.migration_id)

        status = SiteStatus(status)
        now = self._clock.now()
        site.status = status
        site.last_attempt_time = now

        if status == SiteStatus.IN_PROGRESS:
            site.start_time = now
            site.attempts += 1
        elif status.is_outcome:
            site.end_time = now
            if error is not None:
                site.error = error
            self._move_to_bucket(state, site, status)

        self.save(state)

    def _move_to_bucket(self, state: MigrationState, site: SiteProgress, bucket: SiteStatus) -> None:
        """Count site under bucket, un-counting whatever it was counted as before.

        A site is counted in at most one bucket, so the rollup counters
        always sum to at most total_sites. Repeating the same outcome is a
        no-op; a later success un-counts an earlier failure or timeout.
        When the counters are already full, an uncounted site takes over a
        count no site is recorded under (left by files without countedAs).
        """
        previous = site.counted_as
        if previous == bucket:
            return
        if previous is None and state.outcome_count >= state.total_sites:
            previous = self._unattributed_bucket(state)
            if previous is not None:
                logger.warning(
                    "unattributed_count_reassigned",
                    migration_id=state.migration_id,
                    site_id=site.site_id,
                    from_bucket=previous.value,
                    to_bucket=bucket.value,
                )
        if previous is not None:
            counter = _BUCKET_COUNTERS[previous]
            setattr(state, counter, getattr(state, counter) - 1)
        counter = _BUCKET_COUNTERS[bucket]
        setattr(state, counter, getattr(state, counter) + 1)
        site.counted_as = bucket

    @staticmethod
    def _unattributed_bucket(state: MigrationState) -> SiteStatus | None:
        """A bucket whose counter exceeds the sites recorded under it, if any."""
        for bucket, counter in _BUCKET_COUNTERS.items():
            members = sum(1 for site in state.sites.values() if site.counted_as == bucket)
            if getattr(state, counter) > members:
                return bucket
        return None

    def update_phase_status(
        self,
        state: MigrationState,
        phase: Phase | str,
        status: SiteStatus,
        error: str | None = None,
    ) -> None:
        """Record a phase status change and persist.

        Raises:
            PhaseNotFoundError: If phase is not one of the five fixed phases
        """
        try:
            phase_key = Phase(phase)
            progress = state.phase(phase_key)
        except (ValueError, KeyError):
            raise PhaseNotFoundError(str(phase)) from None

        status = SiteStatus(status)
        now = self._clock.now()
        progress.status = status
        if status == SiteStatus.IN_PROGRESS:
            progress.start_time = now
            state.current_phase = phase_key
        elif status.is_outcome:
            progress.end_time = now
            if error is not None:
                progress.error = error

        self.save(state)

    def set_status(self, state: MigrationState, status: MigrationStatus) -> None:
        """Move a run between non-terminal statuses (running, paused) and persist.

        Raises:
            ValueError: For terminal statuses; use finalize() instead
        """
        status = MigrationStatus(status)
        if status.is_terminal:
            raise ValueError(f"Use finalize() to set terminal status {status.value!r}")
        state.status = status
        self.save(state)

    def sites_to_process(self, state: MigrationState, options: ResumeOptions | None = None) -> list[int]:
        """Derive the worklist for a (resumed) run, ascending by site id.

        Completed sites are always excluded. With only_failed, the result is
        exactly the failed and timed-out sites and the skip flags are ignored.
        """
        opts = options if options is not None else ResumeOptions()
        selected: list[int] = []
        for site_id, progress in state.sites.items():
            if progress.status == SiteStatus.COMPLETED:
                continue
            if opts.only_failed:
                if progress.status in (SiteStatus.FAILED, SiteStatus.TIMEOUT):
                    selected.append(site_id)
                continue
            if progress.status == SiteStatus.FAILED and opts.skip_failed:
                continue
            if progress.status == SiteStatus.TIMEOUT and opts.skip_timeouts:
                continue
            selected.append(site_id)
        return sorted(selected)

    def finalize(self, state: MigrationState, status: MigrationStatus) -> None:
        """End a run: persist terminal status, write the summary, release the lock.

        Raises:
            ValueError: If status is not completed, failed or cancelled
        """
        status = MigrationStatus(status)
        if not status.is_terminal:
            raise ValueError(f"finalize() requires a terminal status, got {status.value!r}")

        state.status = status
        state.end_time = self._clock.now()
        state.actual_duration = (state.end_time - state.start_time).total_seconds() * 1000

        self.save(state)
        directory = Path(state.log_dir)
        self._store.write_text_atomic(directory / SUMMARY_FILE, dumps(summary_to_dict(state)))
        self._store.remove(directory / LOCK_FILE)

        logger.info(
            "migration_finalized",
            migration_id=state.migration_id,
            status=status.value,
            completed_sites=state.completed_sites,
            failed_sites=state.failed_sites,
            skipped_sites=state.skipped_sites,
            timeout_sites=state.timeout_sites,
            duration_ms=state.actual_duration,
        )

    def append_log(self, state: MigrationState, message: str) -> None:
        """Append a timestamped line to the human-readable progress log."""
        line = f"[{format_timestamp(self._clock.now())}] {message}"
        self._store.append_line(Path(state.log_dir) / PROGRESS_LOG, line)

    # ------------------------------------------------------------------
    # Locks and discovery
    # ------------------------------------------------------------------

    def _live_lock(self, directory: Path) -> LockInfo | None:
        """Return the directory's lock if its owner is alive.

        Locks owned by dead processes, and unreadable lock documents, are
        deleted. A lock path that cannot be read at all is ignored.
        """
        lock_path = directory / LOCK_FILE
        try:
            text = self._store.read_text(lock_path)
        except OSError as e:
            # Not a file we can read or replace; leave it for the operator
            logger.warning("unreadable_lock_ignored", path=str(lock_path), error=str(e))
            return None
        if text is None:
            return None
        try:
            lock = lock_loads(text)
        except StateCorruptionError as e:
            self._store.remove(lock_path)
            logger.info("unreadable_lock_reclaimed", path=str(lock_path), error=str(e))
            return None
        if self._liveness.is_alive(lock.process_id):
            return lock
        self._store.remove(lock_path)
        logger.info(
            "stale_lock_reclaimed",
            migration_id=lock.migration_id,
            process_id=lock.process_id,
            path=str(lock_path),
        )
        return None

    def find_active_migration(self) -> str | None:
        """Return the id of a migration whose lock owner is alive, if any.

        Scans the canonical root, then the legacy root. Stale locks met
        along the way are reclaimed.
        """
        for directory, _location in self._store.iter_migration_directories():
            if self._live_lock(directory) is not None:
                return directory.name
        return None

    def ensure_no_active_migration(self) -> None:
        """Raises ActiveMigrationError if a live migration holds a lock."""
        active = self.find_active_migration()
        if active is not None:
            raise ActiveMigrationError(active)

    def find_incomplete(self) -> list[MigrationSummary]:
        """Summaries of every non-terminal migration on disk, newest first.

        can_resume is False while a live process holds the migration's
        lock. Stale locks are reclaimed as a side effect. An id present in
        both roots is reported once, from the canonical root.
        """
        now = self._clock.now()
        seen: set[str] = set()
        summaries: list[MigrationSummary] = []

        for directory, location in self._store.iter_migration_directories():
            if directory.name in seen:
                continue
            state = self._load_from(directory)
            if state is None:
                continue
            seen.add(directory.name)
            if state.is_terminal:
                continue

            live = self._live_lock(directory) is not None
            end = state.end_time if state.end_time is not None else now
            summaries.append(
                MigrationSummary(
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
                    duration_ms=(end - state.start_time).total_seconds() * 1000,
                    can_resume=not live,
                    location=location,
                )
            )

        return sorted(summaries, key=lambda s: s.start_time, reverse=True)
