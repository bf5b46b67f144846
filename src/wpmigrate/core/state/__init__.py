# src/wpmigrate/core/state/__init__.py
"""Migration state subsystem for crash recovery.

Provides:
- MigrationStateStore: On-disk layout and atomic file I/O
- MigrationStateManager: Create, mutate, persist, load, lock and finalize runs
- MigrationCleaner: Remove or relocate migration directories
- ProcessLivenessChecker / PsutilLivenessChecker: Lock owner liveness
- state_dumps/state_loads: Wire format for migration-state.json
"""

from wpmigrate.core.state.cleanup import CleanupResult, MigrationCleaner
from wpmigrate.core.state.liveness import ProcessLivenessChecker, PsutilLivenessChecker
from wpmigrate.core.state.manager import MigrationStateManager
from wpmigrate.core.state.serialization import state_dumps, state_loads
from wpmigrate.core.state.store import MigrationStateStore

__all__ = [
    "CleanupResult",
    "MigrationCleaner",
    "MigrationStateManager",
    "MigrationStateStore",
    "ProcessLivenessChecker",
    "PsutilLivenessChecker",
    "state_dumps",
    "state_loads",
]
