# tests/cli/test_cli.py
"""Tests for the wpmigrate CLI commands."""

import json
import os
from pathlib import Path

import pytest
from typer.testing import CliRunner

from wpmigrate.cli import app
from wpmigrate.contracts import MigrationStatus, SiteStatus
from wpmigrate.core.state import MigrationStateManager, MigrationStateStore

runner = CliRunner()

# Above any real pid_max, so never a running process
DEAD_PID = 4_999_999


def _write_config(tmp_path: Path, extra: str = "") -> Path:
    config_path = tmp_path / "wpmigrate.yaml"
    config_path.write_text(
        f"""
state:
  root: {tmp_path / "migration-logs"}
  legacy_root: {tmp_path / "logs"}
health:
  memory_warning_mb: 100000
  memory_critical_mb: 100000
{extra}
"""
    )
    return config_path


def _seed(root: Path, process_id: int = DEAD_PID) -> MigrationStateManager:
    return MigrationStateManager(MigrationStateStore(root=root), process_id=process_id)


def _invoke(config_path: Path, *args: str, input: str | None = None):
    return runner.invoke(app, ["--no-dotenv", "--config", str(config_path), *args], input=input)


@pytest.fixture
def config_path(tmp_path: Path) -> Path:
    return _write_config(tmp_path)


@pytest.fixture
def crashed(tmp_path: Path):
    """A running migration whose owner died: 10 completed, 20 failed, 30 in progress."""
    manager = _seed(tmp_path / "migration-logs")
    state = manager.create("prod", "uat", [10, 20, 30])
    manager.set_status(state, MigrationStatus.RUNNING)
    manager.update_site_status(state, 10, SiteStatus.COMPLETED)
    manager.update_site_status(state, 20, SiteStatus.FAILED, "Database import failed")
    manager.update_site_status(state, 30, SiteStatus.IN_PROGRESS)
    (Path(state.log_dir) / ".migration-lock").unlink()
    return state


class TestGlobalOptions:
    def test_version(self) -> None:
        result = runner.invoke(app, ["--version"])

        assert result.exit_code == 0
        assert "wpmigrate version" in result.output

    def test_missing_config_file(self, tmp_path: Path) -> None:
        result = _invoke(tmp_path / "missing.yaml", "list")

        assert result.exit_code == 1
        assert "Config file not found" in result.output

    def test_invalid_config_lists_errors(self, tmp_path: Path) -> None:
        config_path = _write_config(tmp_path, "detector:\n  max_consecutive_failures: 0\n")

        result = _invoke(config_path, "list")

        assert result.exit_code == 1
        assert "detector.max_consecutive_failures" in result.output

    def test_missing_env_file(self, tmp_path: Path, config_path: Path) -> None:
        result = runner.invoke(app, ["--env-file", str(tmp_path / "nope.env"), "--config", str(config_path), "list"])

        assert result.exit_code == 1
        assert ".env file not found" in result.output


class TestListCommand:
    def test_nothing_to_list(self, config_path: Path) -> None:
        result = _invoke(config_path, "list")

        assert result.exit_code == 0
        assert "No incomplete migrations found." in result.output

    def test_lists_resumable_migration(self, config_path: Path, crashed) -> None:
        result = _invoke(config_path, "list")

        assert result.exit_code == 0
        assert crashed.migration_id in result.output
        assert "prod -> uat" in result.output
        assert "[resumable]" in result.output
        assert "failed: 1" in result.output

    def test_json_output(self, config_path: Path, crashed) -> None:
        result = _invoke(config_path, "list", "--json")

        assert result.exit_code == 0
        payload = json.loads(result.stdout)
        assert payload["active_migration"] is None
        [entry] = payload["incomplete"]
        assert entry["migration_id"] == crashed.migration_id
        assert entry["completed_sites"] == 1
        assert entry["can_resume"] is True
        assert entry["location"] == "canonical"

    def test_live_migration_is_reported_active(self, tmp_path: Path, config_path: Path) -> None:
        state = _seed(tmp_path / "migration-logs", process_id=os.getppid()).create("prod", "uat", [1])

        result = _invoke(config_path, "list")

        assert result.exit_code == 0
        assert f"Active migration: {state.migration_id}" in result.output
        assert "[locked]" in result.output


class TestStatusCommand:
    def test_unknown_migration(self, config_path: Path) -> None:
        result = _invoke(config_path, "status", "env-migrate-missing")

        assert result.exit_code == 1
        assert "not found" in result.output

    def test_shows_counters_and_worklist(self, config_path: Path, crashed) -> None:
        result = _invoke(config_path, "status", crashed.migration_id)

        assert result.exit_code == 0
        assert "Sites: 3 total, 1 completed, 1 failed, 0 skipped, 0 timeout" in result.output
        assert "20: failed after 0 attempt(s): Database import failed" in result.output
        assert "To process on resume (2): 20, 30" in result.output

    def test_only_failed_worklist(self, config_path: Path, crashed) -> None:
        result = _invoke(config_path, "status", crashed.migration_id, "--only-failed")

        assert "To process on resume (1): 20" in result.output

    def test_skip_failed_worklist(self, config_path: Path, crashed) -> None:
        result = _invoke(config_path, "status", crashed.migration_id, "--skip-failed")

        assert "To process on resume (1): 30" in result.output


class TestCleanupCommand:
    def test_dry_run_removes_nothing(self, config_path: Path, crashed) -> None:
        result = _invoke(config_path, "cleanup", "--dry-run")

        assert result.exit_code == 0
        assert "Would remove 1 migration(s)" in result.output
        assert Path(crashed.log_dir).exists()

    def test_yes_removes_without_prompt(self, config_path: Path, crashed) -> None:
        result = _invoke(config_path, "cleanup", "--yes")

        assert result.exit_code == 0
        assert "Removed: 1" in result.output
        assert not Path(crashed.log_dir).exists()

    def test_declined_prompt_aborts(self, config_path: Path, crashed) -> None:
        result = _invoke(config_path, "cleanup", input="n\n")

        assert result.exit_code == 1
        assert "Aborted." in result.output
        assert Path(crashed.log_dir).exists()

    def test_locked_migration_needs_all(self, tmp_path: Path, config_path: Path) -> None:
        state = _seed(tmp_path / "migration-logs", process_id=os.getppid()).create("prod", "uat", [1])

        kept = _invoke(config_path, "cleanup", "--yes")
        assert "No migrations to clean up." in kept.output
        assert Path(state.log_dir).exists()

        removed = _invoke(config_path, "cleanup", "--yes", "--all")
        assert removed.exit_code == 0
        assert not Path(state.log_dir).exists()

    def test_paused_migration_is_kept(self, tmp_path: Path, config_path: Path) -> None:
        manager = _seed(tmp_path / "migration-logs")
        state = manager.create("prod", "uat", [1])
        manager.set_status(state, MigrationStatus.PAUSED)

        result = _invoke(config_path, "cleanup", "--yes")

        assert result.exit_code == 0
        assert "No migrations to clean up." in result.output
        assert Path(state.log_dir).exists()

    def test_explicit_ids_are_described(self, config_path: Path, crashed) -> None:
        result = _invoke(config_path, "cleanup", "--dry-run", "-m", crashed.migration_id, "-m", "env-migrate-missing")

        assert result.exit_code == 0
        assert "Would remove 2 migration(s):" in result.output
        assert f"{crashed.migration_id}  prod -> uat  running  2/3 sites" in result.output
        assert "env-migrate-missing  (not found)" in result.output
        assert Path(crashed.log_dir).exists()

    def test_explicit_ids(self, config_path: Path, crashed) -> None:
        result = _invoke(config_path, "cleanup", "--yes", "-m", crashed.migration_id, "-m", "env-migrate-missing")

        assert result.exit_code == 0
        assert "Removed: 1" in result.output
        assert "Not found: 1" in result.output

    def test_legacy_relocation(self, tmp_path: Path, config_path: Path) -> None:
        old = _seed(tmp_path / "logs").create("prod", "uat", [1])

        result = _invoke(config_path, "cleanup", "--legacy", "--yes")

        assert result.exit_code == 0
        assert "Moved: 1" in result.output
        assert (tmp_path / "migration-logs" / old.migration_id / "migration-state.json").is_file()


class TestHealthCommand:
    def test_nothing_configured_is_healthy(self, config_path: Path) -> None:
        result = _invoke(config_path, "health")

        assert result.exit_code == 0
        assert "Status: healthy" in result.output
        assert "none configured" in result.output

    def test_reachable_sqlite_database(self, tmp_path: Path) -> None:
        config_path = _write_config(tmp_path, f"migration_database:\n  url: sqlite:///{tmp_path / 'migration.db'}\n")

        result = _invoke(config_path, "health", "--json")

        assert result.exit_code == 0
        assert json.loads(result.stdout)["status"] == "healthy"

    def test_unreachable_migration_database_fails(self, tmp_path: Path) -> None:
        config_path = _write_config(tmp_path, f"migration_database:\n  url: sqlite:///{tmp_path / 'missing' / 'migration.db'}\n")

        result = _invoke(config_path, "health")

        assert result.exit_code == 1
        assert "Status: unhealthy" in result.output
        assert "Migration database connection failed" in result.output
