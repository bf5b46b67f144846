# tests/core/state/test_store.py
"""Tests for MigrationStateStore layout and file I/O."""

from pathlib import Path

import pytest

from wpmigrate.contracts import StateLocation
from wpmigrate.core.state.store import STATE_FILE, MigrationStateStore


class TestLayout:
    """Tests for roots and directory resolution."""

    def test_directory_for_rejects_escaping_ids(self, state_store: MigrationStateStore) -> None:
        for bad in ("", ".", "..", "a/b", "a\\b"):
            with pytest.raises(ValueError):
                state_store.directory_for(bad)

    def test_legacy_root_equal_to_root_is_ignored(self, tmp_path: Path) -> None:
        store = MigrationStateStore(root=tmp_path / "logs", legacy_root=tmp_path / "logs")

        assert store.roots() == [(tmp_path / "logs", StateLocation.CANONICAL)]

    def test_no_legacy_root(self, tmp_path: Path) -> None:
        store = MigrationStateStore(root=tmp_path)

        with pytest.raises(ValueError, match="legacy"):
            store.directory_for("env-migrate-x", StateLocation.LEGACY)

    def test_locate_prefers_canonical(self, state_store: MigrationStateStore, state_root: Path, legacy_root: Path) -> None:
        for root in (state_root, legacy_root):
            (root / "env-migrate-a").mkdir(parents=True)
            (root / "env-migrate-a" / STATE_FILE).write_text("{}")

        assert state_store.locate("env-migrate-a") == (state_root / "env-migrate-a", StateLocation.CANONICAL)

    def test_locate_requires_state_file(self, state_store: MigrationStateStore, state_root: Path) -> None:
        (state_root / "env-migrate-a").mkdir(parents=True)

        assert state_store.locate("env-migrate-a") is None

    def test_iteration_filters_prefix_and_sorts(self, state_store: MigrationStateStore, state_root: Path, legacy_root: Path) -> None:
        for name in ("env-migrate-b", "env-migrate-a", "other-dir"):
            (state_root / name).mkdir(parents=True)
        (state_root / "env-migrate-file").write_text("")
        (legacy_root / "env-migrate-c").mkdir(parents=True)

        found = [(path.name, location) for path, location in state_store.iter_migration_directories()]

        assert found == [
            ("env-migrate-a", StateLocation.CANONICAL),
            ("env-migrate-b", StateLocation.CANONICAL),
            ("env-migrate-c", StateLocation.LEGACY),
        ]

    def test_iteration_tolerates_missing_roots(self, state_store: MigrationStateStore) -> None:
        assert list(state_store.iter_migration_directories()) == []


class TestFileIO:
    """Tests for atomic writes and reads."""

    def test_atomic_write_replaces_content(self, state_store: MigrationStateStore, tmp_path: Path) -> None:
        target = tmp_path / "nested" / "state.json"

        state_store.write_text_atomic(target, "first")
        state_store.write_text_atomic(target, "second")

        assert target.read_text() == "second"
        assert [p.name for p in target.parent.iterdir()] == ["state.json"]

    def test_failed_write_keeps_previous_file(self, state_store: MigrationStateStore, tmp_path: Path, monkeypatch) -> None:
        import os

        target = tmp_path / "state.json"
        state_store.write_text_atomic(target, "good")

        def failing_replace(src, dst):
            raise OSError("disk full")

        monkeypatch.setattr(os, "replace", failing_replace)

        with pytest.raises(OSError, match="disk full"):
            state_store.write_text_atomic(target, "bad")

        assert target.read_text() == "good"
        assert [p.name for p in tmp_path.iterdir()] == ["state.json"]

    def test_read_missing_returns_none(self, state_store: MigrationStateStore, tmp_path: Path) -> None:
        assert state_store.read_text(tmp_path / "missing") is None

    def test_remove_reports_whether_deleted(self, state_store: MigrationStateStore, tmp_path: Path) -> None:
        target = tmp_path / "lock"
        target.write_text("x")

        assert state_store.remove(target) is True
        assert state_store.remove(target) is False
