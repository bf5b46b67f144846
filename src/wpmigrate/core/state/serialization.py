# src/wpmigrate/core/state/serialization.py
"""JSON wire format for migration state files.

The on-disk documents keep the camelCase keys used by earlier releases of
the migration tooling, so state directories left in the legacy root stay
readable. Two details need care:

- sites is an ordered mapping; it is written as a list of [siteId, progress]
  pairs so insertion order survives a save/load cycle.
- timestamps are ISO-8601 strings with microsecond precision. Naive values
  (never written by this package) are read as UTC.

NaN/Infinity are rejected; a state file must always be valid JSON.
"""

from __future__ import annotations

import json
from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import Any, TypeVar

from wpmigrate.contracts import (
    PHASE_ORDER,
    LockInfo,
    MigrationState,
    MigrationStatus,
    Phase,
    PhaseProgress,
    SiteProgress,
    SiteStatus,
    StateCorruptionError,
)

_E = TypeVar("_E", bound=Enum)


class StateEncoder(json.JSONEncoder):
    """JSON encoder for caller-supplied option snapshots.

    Run options are opaque to the engine but must still be persisted, so
    the handful of non-JSON types a CLI typically produces are flattened.
    """

    def default(self, obj: Any) -> Any:
        if isinstance(obj, datetime):
            return format_timestamp(obj)
        if isinstance(obj, Path):
            return str(obj)
        if isinstance(obj, (set, frozenset, tuple)):
            return list(obj)
        return super().default(obj)


def dumps(document: Mapping[str, Any]) -> str:
    """Serialize a wire document with stable, human-readable formatting."""
    return json.dumps(document, cls=StateEncoder, indent=2, allow_nan=False)


def format_timestamp(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.isoformat()


def _format_optional(value: datetime | None) -> str | None:
    return format_timestamp(value) if value is not None else None


def parse_timestamp(value: Any) -> datetime:
    if not isinstance(value, str):
        raise StateCorruptionError(f"Expected ISO timestamp string, got {type(value).__name__}")
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError as e:
        raise StateCorruptionError(f"Invalid timestamp {value!r}") from e
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def _parse_optional(value: Any) -> datetime | None:
    return parse_timestamp(value) if value is not None else None


def _parse_enum(enum_type: Callable[[str], _E], value: Any, field: str) -> _E:
    try:
        return enum_type(value)
    except ValueError as e:
        raise StateCorruptionError(f"Invalid {field} value {value!r}") from e


# =============================================================================
# Encoding
# =============================================================================


def site_to_dict(site: SiteProgress) -> dict[str, Any]:
    return {
        "siteId": site.site_id,
        "status": site.status.value,
        "attempts": site.attempts,
        "startTime": _format_optional(site.start_time),
        "endTime": _format_optional(site.end_time),
        "lastAttemptTime": _format_optional(site.last_attempt_time),
        "error": site.error,
        "estimatedSize": site.estimated_size,
        "actualSize": site.actual_size,
        "countedAs": site.counted_as.value if site.counted_as is not None else None,
    }


def phase_to_dict(phase: PhaseProgress) -> dict[str, Any]:
    return {
        "phase": phase.phase.value,
        "status": phase.status.value,
        "startTime": _format_optional(phase.start_time),
        "endTime": _format_optional(phase.end_time),
        "error": phase.error,
    }


def state_to_dict(state: MigrationState) -> dict[str, Any]:
    """Convert a MigrationState to its wire document."""
    return {
        "migrationId": state.migration_id,
        "version": state.version,
        "sourceEnv": state.source_env,
        "targetEnv": state.target_env,
        "startTime": format_timestamp(state.start_time),
        "endTime": _format_optional(state.end_time),
        "status": state.status.value,
        "currentPhase": state.current_phase.value,
        "phases": [phase_to_dict(p) for p in state.phases],
        "sites": [[site_id, site_to_dict(site)] for site_id, site in state.sites.items()],
        "totalSites": state.total_sites,
        "completedSites": state.completed_sites,
        "failedSites": state.failed_sites,
        "skippedSites": state.skipped_sites,
        "timeoutSites": state.timeout_sites,
        "backupId": state.backup_id,
        "workDir": state.work_dir,
        "logDir": state.log_dir,
        "options": state.options,
        "lastSaveTime": format_timestamp(state.last_save_time),
        "processId": state.process_id,
        "estimatedDuration": state.estimated_duration,
        "actualDuration": state.actual_duration,
    }


def state_dumps(state: MigrationState) -> str:
    return dumps(state_to_dict(state))


def config_snapshot_to_dict(state: MigrationState, options: Mapping[str, Any]) -> dict[str, Any]:
    """Immutable run configuration written once at creation."""
    return {
        "migrationId": state.migration_id,
        "sourceEnv": state.source_env,
        "targetEnv": state.target_env,
        "timestamp": format_timestamp(state.start_time),
        "options": dict(options),
    }


def lock_to_dict(lock: LockInfo) -> dict[str, Any]:
    return {
        "migrationId": lock.migration_id,
        "processId": lock.process_id,
        "startTime": format_timestamp(lock.start_time),
        "sourceEnv": lock.source_env,
        "targetEnv": lock.target_env,
    }


def summary_to_dict(state: MigrationState) -> dict[str, Any]:
    """Final rollup written at finalize.

    failedSiteDetails lists every site whose last known status is failed
    or timeout, in site insertion order.
    """
    return {
        "migrationId": state.migration_id,
        "sourceEnv": state.source_env,
        "targetEnv": state.target_env,
        "status": state.status.value,
        "startTime": format_timestamp(state.start_time),
        "endTime": _format_optional(state.end_time),
        "duration": state.actual_duration,
        "totalSites": state.total_sites,
        "completedSites": state.completed_sites,
        "failedSites": state.failed_sites,
        "skippedSites": state.skipped_sites,
        "timeoutSites": state.timeout_sites,
        "phases": [phase_to_dict(p) for p in state.phases],
        "failedSiteDetails": [
            {
                "siteId": site.site_id,
                "status": site.status.value,
                "error": site.error,
                "attempts": site.attempts,
            }
            for site in state.sites.values()
            if site.status in (SiteStatus.FAILED, SiteStatus.TIMEOUT)
        ],
    }


# =============================================================================
# Decoding
# =============================================================================


def site_from_dict(data: Mapping[str, Any]) -> SiteProgress:
    status = _parse_enum(SiteStatus, data["status"], "site status")
    raw_counted = data.get("countedAs")
    if raw_counted is not None:
        counted_as: SiteStatus | None = _parse_enum(SiteStatus, raw_counted, "site countedAs")
    elif "countedAs" not in data and status.is_outcome:
        # Written before bucket tracking existed: the status is the bucket
        counted_as = status
    else:
        counted_as = None
    return SiteProgress(
        site_id=int(data["siteId"]),
        status=status,
        attempts=int(data.get("attempts", 0)),
        start_time=_parse_optional(data.get("startTime")),
        end_time=_parse_optional(data.get("endTime")),
        last_attempt_time=_parse_optional(data.get("lastAttemptTime")),
        error=data.get("error"),
        estimated_size=data.get("estimatedSize"),
        actual_size=data.get("actualSize"),
        counted_as=counted_as,
    )


def phase_from_dict(data: Mapping[str, Any]) -> PhaseProgress:
    return PhaseProgress(
        phase=_parse_enum(Phase, data["phase"], "phase"),
        status=_parse_enum(SiteStatus, data["status"], "phase status"),
        start_time=_parse_optional(data.get("startTime")),
        end_time=_parse_optional(data.get("endTime")),
        error=data.get("error"),
    )


def state_from_dict(data: Mapping[str, Any]) -> MigrationState:
    """Rebuild a MigrationState from its wire document.

    Raises:
        StateCorruptionError: If required fields are missing or malformed
    """
    try:
        phases = [phase_from_dict(p) for p in data["phases"]]
        if tuple(p.phase for p in phases) != PHASE_ORDER:
            raise StateCorruptionError(f"Expected phases {[p.value for p in PHASE_ORDER]}, got {[p.phase.value for p in phases]}")

        sites: dict[int, SiteProgress] = {}
        untracked: list[SiteProgress] = []
        for entry in data["sites"]:
            site_id, progress = entry
            sites[int(site_id)] = site = site_from_dict(progress)
            if "countedAs" not in progress:
                untracked.append(site)

        state = MigrationState(
            migration_id=data["migrationId"],
            version=data["version"],
            source_env=data["sourceEnv"],
            target_env=data["targetEnv"],
            start_time=parse_timestamp(data["startTime"]),
            end_time=_parse_optional(data.get("endTime")),
            status=_parse_enum(MigrationStatus, data["status"], "migration status"),
            current_phase=_parse_enum(Phase, data["currentPhase"], "current phase"),
            phases=phases,
            sites=sites,
            total_sites=int(data["totalSites"]),
            completed_sites=int(data["completedSites"]),
            failed_sites=int(data["failedSites"]),
            skipped_sites=int(data["skippedSites"]),
            timeout_sites=int(data["timeoutSites"]),
            backup_id=data.get("backupId"),
            work_dir=data["workDir"],
            log_dir=data["logDir"],
            options=dict(data.get("options") or {}),
            last_save_time=parse_timestamp(data["lastSaveTime"]),
            process_id=int(data["processId"]),
            estimated_duration=data.get("estimatedDuration"),
            actual_duration=data.get("actualDuration"),
        )
        if untracked:
            _restore_retried_buckets(state, untracked)
        return state
    except StateCorruptionError:
        raise
    except (KeyError, TypeError, ValueError) as e:
        raise StateCorruptionError(f"Malformed migration state: {e!r}") from e


_RETRIED_BUCKETS = (SiteStatus.FAILED, SiteStatus.TIMEOUT, SiteStatus.SKIPPED, SiteStatus.COMPLETED)


def _restore_retried_buckets(state: MigrationState, untracked: list[SiteProgress]) -> None:
    """Attribute counter surplus in documents written without countedAs.

    Older files only record a site's current status, so a site that failed
    and is being retried is in_progress while failedSites still counts it.
    Each counter's surplus over the sites showing that status is assigned
    to untracked, non-outcome sites that have already been attempted,
    those with a recorded error first.
    """
    candidates = sorted(
        (site for site in untracked if site.counted_as is None and not site.status.is_outcome and (site.attempts > 0 or site.error)),
        key=lambda site: (site.error is None, site.attempts <= 1),
    )
    for bucket in _RETRIED_BUCKETS:
        counted = sum(1 for site in state.sites.values() if site.counted_as == bucket)
        surplus = getattr(state, f"{bucket.value}_sites") - counted
        while surplus > 0 and candidates:
            candidates.pop(0).counted_as = bucket
            surplus -= 1


def state_loads(text: str) -> MigrationState:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise StateCorruptionError(f"State file is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise StateCorruptionError(f"State document must be an object, got {type(data).__name__}")
    return state_from_dict(data)


def lock_loads(text: str) -> LockInfo:
    """Parse a .migration-lock file.

    Raises:
        StateCorruptionError: If the lock is not a valid lock document
    """
    try:
        data = json.loads(text)
        return LockInfo(
            migration_id=data["migrationId"],
            process_id=int(data["processId"]),
            start_time=parse_timestamp(data["startTime"]),
            source_env=data["sourceEnv"],
            target_env=data["targetEnv"],
        )
    except StateCorruptionError:
        raise
    except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
        raise StateCorruptionError(f"Malformed lock file: {e!r}") from e
