# src/wpmigrate/core/__init__.py
"""Core infrastructure: configuration, logging and migration state.

Import state classes from wpmigrate.core.state directly; this module
stays light so the engine can import configuration without pulling in
the state subsystem.
"""

from wpmigrate.core.config import (
    DatabaseSettings,
    DetectorSettings,
    HealthSettings,
    StateSettings,
    WpMigrateSettings,
    load_settings,
)
from wpmigrate.core.logging import configure_logging, get_logger

__all__ = [
    "DatabaseSettings",
    "DetectorSettings",
    "HealthSettings",
    "StateSettings",
    "WpMigrateSettings",
    "configure_logging",
    "get_logger",
    "load_settings",
]
