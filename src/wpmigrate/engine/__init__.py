# src/wpmigrate/engine/__init__.py
"""Run-time safety engine for migration runs.

Provides:
- SystemicFailureDetector: Continue/pause/abort decisions from site outcomes
- HealthChecker: Database connectivity and resource checks
- Decision prompts: Interactive terminal or fixed non-interactive answers
- Probes: SQLAlchemy connection tests, TCP reachability, psutil memory
- Clock: Injectable time source for deterministic tests

Example:
    from wpmigrate.core import load_settings
    from wpmigrate.engine import HealthChecker, SystemicFailureDetector, default_prompt

    settings = load_settings()
    detector = SystemicFailureDetector(
        settings.detector,
        HealthChecker.from_settings(settings),
        default_prompt(settings.detector.non_interactive_decision),
    )
"""

from wpmigrate.engine.clock import DEFAULT_CLOCK, Clock, MockClock, SystemClock
from wpmigrate.engine.detector import SystemicFailureDetector
from wpmigrate.engine.health import MIGRATION_TARGET, HealthChecker, SupportsHealthCheck
from wpmigrate.engine.probes import (
    ConnectionTester,
    MemorySampler,
    NetworkProbe,
    PsutilMemorySampler,
    SocketNetworkProbe,
    SqlAlchemyConnectionTester,
)
from wpmigrate.engine.prompts import (
    DecisionPrompt,
    FixedDecisionPrompt,
    TerminalDecisionPrompt,
    default_prompt,
    parse_decision,
)

__all__ = [
    "DEFAULT_CLOCK",
    "MIGRATION_TARGET",
    "Clock",
    "ConnectionTester",
    "DecisionPrompt",
    "FixedDecisionPrompt",
    "HealthChecker",
    "MemorySampler",
    "MockClock",
    "NetworkProbe",
    "PsutilMemorySampler",
    "SocketNetworkProbe",
    "SqlAlchemyConnectionTester",
    "SupportsHealthCheck",
    "SystemClock",
    "SystemicFailureDetector",
    "TerminalDecisionPrompt",
    "default_prompt",
    "parse_decision",
]
