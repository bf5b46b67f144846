# src/wpmigrate/engine/detector.py
"""Systemic failure detection for migration runs.

One misbehaving or misconfigured run can damage many sites in a row before
anyone notices. The detector watches the stream of per-site outcomes and
turns it into a continue/pause/abort decision:

- Every completed site is reported exactly once via check_and_handle().
- A run of max_consecutive_failures failures triggers an immediate health
  check and an escalation. An unhealthy backend pauses (pause_on_failure)
  or asks the operator. A healthy backend always asks the operator:
  repeated failures against healthy databases usually mean a configuration
  mistake, which an automatic continue would hide.
- Periodic health checks and reachability probes run every N sites, at
  most once per gap, and only ever log warnings.

State is in-memory and scoped to one run. The caller acts on the decision,
e.g. finalize(state, CANCELLED) on abort.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from wpmigrate.contracts import Decision, HealthCheckResult
from wpmigrate.core.logging import get_logger
from wpmigrate.engine.clock import DEFAULT_CLOCK
from wpmigrate.engine.prompts import parse_decision

if TYPE_CHECKING:
    from wpmigrate.core.config import DetectorSettings
    from wpmigrate.engine.clock import Clock
    from wpmigrate.engine.health import SupportsHealthCheck
    from wpmigrate.engine.prompts import DecisionPrompt

logger = get_logger(__name__)

# Periodic checks reporting more issues than this suggest pausing
_MANY_ISSUES = 2


class SystemicFailureDetector:
    """Turns per-site outcomes into continue/pause/abort decisions.

    Example:
        detector = SystemicFailureDetector(settings.detector, checker, prompt)

        for site_id in manager.sites_to_process(state):
            failed = not migrate_site(site_id)
            decision = detector.check_and_handle(failed)
            if decision == Decision.PAUSE:
                manager.set_status(state, MigrationStatus.PAUSED)
                break
            if decision == Decision.ABORT:
                manager.finalize(state, MigrationStatus.CANCELLED)
                break
    """

    def __init__(
        self,
        settings: DetectorSettings,
        health_checker: SupportsHealthCheck,
        prompt: DecisionPrompt,
        clock: Clock | None = None,
    ) -> None:
        """Initialize detector.

        Args:
            settings: Thresholds and intervals
            health_checker: Runs health checks and reachability probes
            prompt: Operator decision capability. Use FixedDecisionPrompt
                for non-interactive runs.
            clock: Clock for rate limiting periodic checks. Defaults to
                system clock; inject MockClock for tests.
        """
        self._settings = settings
        self._health_checker = health_checker
        self._prompt = prompt
        self._clock = clock if clock is not None else DEFAULT_CLOCK
        self._consecutive_failures = 0
        self._sites_processed = 0
        self._last_health_check = self._clock.monotonic()
        self._last_connection_test = self._clock.monotonic()

    @property
    def consecutive_failures(self) -> int:
        return self._consecutive_failures

    @property
    def sites_processed(self) -> int:
        return self._sites_processed

    def reset(self) -> None:
        """Zero both counters and restart the periodic check gaps."""
        self._consecutive_failures = 0
        self._sites_processed = 0
        self._last_health_check = self._clock.monotonic()
        self._last_connection_test = self._clock.monotonic()

    def check_and_handle(self, failed: bool) -> Decision:
        """Record one site outcome and decide how the run should proceed.

        Call exactly once per completed site, in processing order.

        Args:
            failed: Whether the site failed (or timed out)

        Returns:
            CONTINUE, PAUSE or ABORT. Never raises.
        """
        self._sites_processed += 1

        if failed:
            self._consecutive_failures += 1
            if self._consecutive_failures >= self._settings.max_consecutive_failures:
                return self._escalate()
        else:
            self._consecutive_failures = 0

        if self._should_perform_health_check():
            result = self._run_health_check()
            self._last_health_check = self._clock.monotonic()
            if not result.healthy:
                logger.warning(
                    "periodic_health_check_issues",
                    issues=result.issues,
                    sites_processed=self._sites_processed,
                )
                if len(result.issues) > _MANY_ISSUES:
                    logger.warning("multiple_health_issues", hint="consider pausing the migration")
            for warning in result.warnings:
                logger.warning("health_check_warning", warning=warning)

        if self._should_perform_connection_test():
            self._run_connectivity_probe()
            self._last_connection_test = self._clock.monotonic()

        return Decision.CONTINUE

    def _escalate(self) -> Decision:
        logger.error(
            "systemic_failure_detected",
            consecutive_failures=self._consecutive_failures,
            sites_processed=self._sites_processed,
        )
        result = self._run_health_check()

        if not result.healthy:
            logger.error("health_check_failed", issues=result.issues)
            if self._settings.pause_on_failure:
                return Decision.PAUSE
            return self.prompt_for_action()

        logger.warning(
            "failures_with_healthy_backend",
            consecutive_failures=self._consecutive_failures,
            hint="this may indicate a configuration issue or temporary network problems",
        )
        return self.prompt_for_action()

    def prompt_for_action(self) -> Decision:
        """Ask the operator to continue, pause or abort.

        Continue resets the consecutive failure counter so the run gets a
        fresh window before escalating again. Unrecognised answers abort.
        """
        message = f"SYSTEMIC FAILURE DETECTED: {self._consecutive_failures} consecutive sites failed"
        try:
            answer = self._prompt.ask(message)
        except Exception as e:
            logger.error("decision_prompt_failed", error=str(e))
            answer = ""
        decision = parse_decision(answer)

        if decision == Decision.CONTINUE:
            self._consecutive_failures = 0
            logger.warning("continuing_despite_failures")
        elif decision == Decision.PAUSE:
            logger.info("pausing_migration")
        else:
            logger.error("aborting_migration")
        return decision

    def _run_health_check(self) -> HealthCheckResult:
        try:
            return self._health_checker.check()
        except Exception as e:
            return HealthCheckResult(healthy=False, issues=[f"Health check failed: {e}"])

    def _run_connectivity_probe(self) -> None:
        try:
            failures = self._health_checker.probe_connectivity()
        except Exception as e:
            logger.warning("connection_test_failed", error=str(e))
            return
        for failure in failures:
            logger.warning("network_connectivity_issue", detail=failure)

    def _should_perform_health_check(self) -> bool:
        return (
            self._sites_processed % self._settings.health_check_interval == 0
            and self._clock.monotonic() - self._last_health_check > self._settings.health_check_min_gap_seconds
        )

    def _should_perform_connection_test(self) -> bool:
        return (
            self._sites_processed % self._settings.connection_test_interval == 0
            and self._clock.monotonic() - self._last_connection_test > self._settings.connection_test_min_gap_seconds
        )
