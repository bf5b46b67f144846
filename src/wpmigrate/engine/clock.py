# src/wpmigrate/engine/clock.py
"""Clock abstraction for testable time-dependent logic.

Two notions of time are needed:
- monotonic(): elapsed-time measurement (health check gaps, probe timing)
- now(): wall-clock timestamps persisted in migration state

Production code uses SystemClock (the default).
Tests inject MockClock to control time advancement.
"""

from __future__ import annotations

import time
from datetime import UTC, datetime, timedelta
from typing import Protocol


class Clock(Protocol):
    """Abstract clock for timestamps and elapsed-time checks."""

    def monotonic(self) -> float:
        """Return monotonic time in seconds.

        Must never go backwards. Corresponds to time.monotonic().
        """
        ...

    def now(self) -> datetime:
        """Return the current wall-clock time as a timezone-aware UTC datetime."""
        ...


class SystemClock:
    """Production clock backed by time.monotonic() and datetime.now(UTC)."""

    def monotonic(self) -> float:
        """Return system monotonic time."""
        return time.monotonic()

    def now(self) -> datetime:
        """Return current UTC time."""
        return datetime.now(UTC)


class MockClock:
    """Controllable clock for deterministic testing.

    Monotonic and wall-clock time advance together, so a test that moves
    the clock forward five minutes sees both the health-check gap elapse
    and persisted timestamps move.

    Example:
        clock = MockClock()
        detector = SystemicFailureDetector(settings, checker, prompt, clock=clock)

        clock.advance(301)  # past the 5 minute health check gap
        detector.check_and_handle(failed=False)
    """

    DEFAULT_START = datetime(2024, 1, 1, tzinfo=UTC)

    def __init__(self, start: float = 0.0, wall_start: datetime | None = None) -> None:
        """Initialize mock clock.

        Args:
            start: Initial monotonic time value (default 0.0).
            wall_start: Initial wall-clock time (default 2024-01-01 UTC).
        """
        self._current = start
        self._wall_start = wall_start if wall_start is not None else self.DEFAULT_START
        self._wall_offset = 0.0

    def monotonic(self) -> float:
        """Return current mock time."""
        return self._current

    def now(self) -> datetime:
        """Return current mock wall-clock time."""
        return self._wall_start + timedelta(seconds=self._wall_offset)

    def advance(self, seconds: float) -> None:
        """Advance mock time by specified seconds.

        Raises:
            ValueError: If seconds is negative.
        """
        if seconds < 0:
            raise ValueError(f"Cannot advance time by negative amount: {seconds}")
        self._current += seconds
        self._wall_offset += seconds


# Default clock for production use
DEFAULT_CLOCK: Clock = SystemClock()
