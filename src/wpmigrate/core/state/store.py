# src/wpmigrate/core/state/store.py
"""Filesystem layout for migration state.

One directory per migration id under a canonical root, with read fallback
to a legacy root used by older releases:

    <root>/<migration_id>/
        migration-state.json     full MigrationState snapshot, rewritten on every save
        migration-config.json    run configuration, written once at creation
        .migration-lock          owning process, present while the run is live
        migration-progress.log   append-only, timestamped, for humans
        migration-summary.json   rollup written once at finalize

The store knows paths and bytes, not migration semantics. Every whole-file
write is atomic (temp file + os.replace) so a crash mid-write never leaves
a truncated state file behind.
"""

from __future__ import annotations

import os
import tempfile
from collections.abc import Iterator
from pathlib import Path

from wpmigrate.contracts import StateLocation

STATE_FILE = "migration-state.json"
CONFIG_FILE = "migration-config.json"
LOCK_FILE = ".migration-lock"
PROGRESS_LOG = "migration-progress.log"
SUMMARY_FILE = "migration-summary.json"


class MigrationStateStore:
    """Paths and atomic file I/O for migration state directories."""

    def __init__(self, root: Path, legacy_root: Path | None = None, id_prefix: str = "env-migrate-") -> None:
        """Initialize store.

        Args:
            root: Canonical root. Created lazily on first write.
            legacy_root: Older layout root, scanned and read as a fallback.
                None disables the fallback.
            id_prefix: Only directories starting with this prefix are
                treated as migrations during scans.
        """
        self.root = root
        self.legacy_root = legacy_root
        self.id_prefix = id_prefix

    def roots(self) -> list[tuple[Path, StateLocation]]:
        roots = [(self.root, StateLocation.CANONICAL)]
        if self.legacy_root is not None and self.legacy_root.resolve() != self.root.resolve():
            roots.append((self.legacy_root, StateLocation.LEGACY))
        return roots

    def directory_for(self, migration_id: str, location: StateLocation = StateLocation.CANONICAL) -> Path:
        """Path of a migration directory (not checked for existence).

        Raises:
            ValueError: If migration_id could escape the root
        """
        if not migration_id or "/" in migration_id or "\\" in migration_id or migration_id in (".", ".."):
            raise ValueError(f"Invalid migration id: {migration_id!r}")
        if location == StateLocation.LEGACY:
            if self.legacy_root is None:
                raise ValueError("No legacy root configured")
            return self.legacy_root / migration_id
        return self.root / migration_id

    def ensure_directory(self, migration_id: str) -> Path:
        directory = self.directory_for(migration_id)
        directory.mkdir(parents=True, exist_ok=True)
        return directory

    def locate(self, migration_id: str) -> tuple[Path, StateLocation] | None:
        """Find the directory holding a migration's state file.

        The canonical root wins when both roots contain the id.
        """
        for root, location in self.roots():
            directory = root / migration_id
            if (directory / STATE_FILE).is_file():
                return directory, location
        return None

    def iter_migration_directories(self) -> Iterator[tuple[Path, StateLocation]]:
        """Yield every migration directory, canonical root first, sorted by name."""
        for root, location in self.roots():
            if not root.is_dir():
                continue
            for entry in sorted(root.iterdir()):
                if entry.is_dir() and entry.name.startswith(self.id_prefix):
                    yield entry, location

    # ------------------------------------------------------------------
    # File I/O
    # ------------------------------------------------------------------

    def write_text_atomic(self, path: Path, content: str) -> None:
        """Replace path with content in one step.

        Raises:
            OSError: If the write fails. The previous file, if any, is intact.
        """
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(content)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def read_text(self, path: Path) -> str | None:
        """Read a file, or None if it does not exist."""
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None

    def append_line(self, path: Path, line: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("a", encoding="utf-8") as handle:
            handle.write(line if line.endswith("\n") else f"{line}\n")

    def remove(self, path: Path) -> bool:
        """Delete a file if present. Returns True if something was deleted."""
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        return True
