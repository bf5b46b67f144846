"""Exceptions raised across subsystem boundaries.

Missing or corrupt state files are NOT errors: the state manager reports
them as absent. Only caller bugs (unknown site or phase) and a live
concurrent migration are raised.
"""


class SiteNotFoundError(LookupError):
    """Raised when a status update names a site the run does not contain."""

    def __init__(self, site_id: int, migration_id: str) -> None:
        super().__init__(f"Site {site_id} not found in migration state {migration_id}")
        self.site_id = site_id
        self.migration_id = migration_id


class PhaseNotFoundError(LookupError):
    """Raised when a status update names a phase outside the fixed five."""

    def __init__(self, phase: str) -> None:
        super().__init__(f"Phase {phase!r} not found in migration state")
        self.phase = phase


class ActiveMigrationError(RuntimeError):
    """Raised when another live process holds a migration lock.

    The engine never waits or retries; the caller decides what to do.
    """

    def __init__(self, migration_id: str) -> None:
        super().__init__(f"An active migration already exists: {migration_id}")
        self.migration_id = migration_id


class StateCorruptionError(ValueError):
    """Raised when a persisted state document cannot be decoded.

    Internal to state loading: MigrationStateManager.load() catches it,
    logs a warning, and reports the state as absent.
    """
