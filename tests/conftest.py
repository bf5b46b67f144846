# tests/conftest.py
"""Shared test fixtures and fakes.

Ports the engine depends on are replaced by small in-memory fakes:
- FakeLiveness: process liveness from an explicit set of live pids
- FakePrompt: scripted operator answers, records every question
- FakeHealthChecker: scripted health results and probe failures

Hypothesis Configuration:
- "ci" profile: Fast tests for CI (100 examples) - default
- "nightly" profile: Thorough tests (1000 examples)
- "debug" profile: Minimal tests with verbose output (10 examples)

Set profile via environment variable:
    HYPOTHESIS_PROFILE=nightly pytest tests/property/
"""

import os
from collections.abc import Iterable
from pathlib import Path

import pytest
from hypothesis import Phase, Verbosity, settings

from wpmigrate.contracts import HealthCheckResult
from wpmigrate.core.state import MigrationStateManager, MigrationStateStore
from wpmigrate.engine.clock import MockClock

# Lock owner pid used by the manager fixture; FakeLiveness reports it alive
TEST_PROCESS_ID = 424242


# =============================================================================
# Hypothesis Profiles
# =============================================================================

settings.register_profile(
    "ci",
    max_examples=100,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,  # Disable deadline for CI (timing varies)
)

settings.register_profile(
    "nightly",
    max_examples=1000,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,
)

settings.register_profile(
    "debug",
    max_examples=10,
    verbosity=Verbosity.verbose,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,
)

settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "ci"))


# =============================================================================
# Fakes
# =============================================================================


class FakeLiveness:
    """Liveness checker that treats exactly the given pids as running."""

    def __init__(self, alive: Iterable[int] = ()) -> None:
        self.alive = set(alive)
        self.queries: list[int] = []

    def is_alive(self, pid: int) -> bool:
        self.queries.append(pid)
        return pid in self.alive


class FakePrompt:
    """Decision prompt with scripted answers.

    Answers are consumed in order; once exhausted, the last answer repeats.
    """

    def __init__(self, *answers: str) -> None:
        self._answers = list(answers) or ["a"]
        self.messages: list[str] = []

    def ask(self, message: str) -> str:
        self.messages.append(message)
        if len(self._answers) > 1:
            return self._answers.pop(0)
        return self._answers[0]

    @property
    def asked(self) -> int:
        return len(self.messages)


class FakeHealthChecker:
    """Health checker returning a scripted result and counting calls."""

    def __init__(
        self,
        result: HealthCheckResult | None = None,
        connectivity_failures: list[str] | None = None,
        error: Exception | None = None,
    ) -> None:
        self.result = result if result is not None else HealthCheckResult()
        self.connectivity_failures = connectivity_failures or []
        self.error = error
        self.checks = 0
        self.probes = 0

    def check(self) -> HealthCheckResult:
        self.checks += 1
        if self.error is not None:
            raise self.error
        return self.result

    def probe_connectivity(self) -> list[str]:
        self.probes += 1
        return list(self.connectivity_failures)


def unhealthy(*issues: str) -> HealthCheckResult:
    return HealthCheckResult(healthy=False, issues=list(issues))


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def mock_clock() -> MockClock:
    return MockClock(start=0.0)


@pytest.fixture
def liveness() -> FakeLiveness:
    return FakeLiveness(alive={TEST_PROCESS_ID})


@pytest.fixture
def state_root(tmp_path: Path) -> Path:
    return tmp_path / "migration-logs"


@pytest.fixture
def legacy_root(tmp_path: Path) -> Path:
    return tmp_path / "logs"


@pytest.fixture
def state_store(state_root: Path, legacy_root: Path) -> MigrationStateStore:
    return MigrationStateStore(root=state_root, legacy_root=legacy_root)


@pytest.fixture
def manager(state_store: MigrationStateStore, liveness: FakeLiveness, mock_clock: MockClock) -> MigrationStateManager:
    """State manager over tmp_path roots, owning pid TEST_PROCESS_ID."""
    return MigrationStateManager(
        state_store,
        liveness=liveness,
        clock=mock_clock,
        process_id=TEST_PROCESS_ID,
    )
