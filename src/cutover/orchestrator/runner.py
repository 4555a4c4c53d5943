"""Shared execution of a single phase or step.

Both the deployment orchestrator and the rollback pipeline run their units of
work through :class:`StepRunner`, which owns bracketing, logging, dry-run
simulation, the downtime window and the critical/non-critical decision.
"""

import subprocess
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from cutover.observer.event_log import EventLog
from cutover.orchestrator.outcome import Outcome
from cutover.orchestrator.steps import Action, HealthCheck, Step
from cutover.utils.errors import (
    CriticalPhaseFailure,
    CriticalStepFailure,
    DeploymentError,
    DowntimeBudgetExceeded,
    ToleratedFailure,
    VerificationFailure,
    error_handler,
)
from cutover.utils.logging import LogContext, get_logger

logger = get_logger(__name__)

# Failures a collaborator hits while talking to the system it manages
OPERATIONAL_ERRORS = (OSError, subprocess.SubprocessError)


class StepStatus(Enum):
    """Status of a phase or step."""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    SUCCESS = "success"
    TOLERATED = "tolerated"
    FAILED = "failed"
    SKIPPED = "skipped"


# Type alias for progress callback
ProgressCallback = Callable[[str, StepStatus, Optional[str]], None]


@dataclass
class StepReport:
    """Result of running a single phase or step."""

    name: str
    status: StepStatus
    critical: bool
    duration_ms: float = 0.0
    downtime_ms: Optional[float] = None
    error: Optional[DeploymentError] = None

    def is_success(self) -> bool:
        return self.status == StepStatus.SUCCESS


class StepRunner:
    """Runs one step and turns its result into a criticality-tagged decision.

    Only :class:`DeploymentError` and failed :class:`Outcome` values are
    operational failures. Any other exception escapes to the caller.
    """

    def __init__(
        self,
        event_log: EventLog,
        kind: str = "phase",
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
        dry_run_delay: float = 0.1,
        progress_callback: Optional[ProgressCallback] = None,
    ):
        """Initialize the runner.

        Args:
            event_log: Event log receiving bracketing and failure entries
            kind: ``"phase"`` for deployments, ``"step"`` for the rollback pipeline
            clock: Monotonic clock in seconds, used for durations and the downtime window
            sleep: Sleep function used to simulate work under dry run
            dry_run_delay: Seconds a simulated step takes
            progress_callback: Called with ``(name, status, message)`` on every transition
        """
        if kind not in ("phase", "step"):
            raise ValueError(f"Unknown step kind: {kind}")
        self.event_log = event_log
        self.kind = kind
        self.clock = clock
        self.sleep = sleep
        self.dry_run_delay = dry_run_delay
        self.progress_callback = progress_callback

    def notify(self, name: str, status: StepStatus, message: Optional[str] = None) -> None:
        if self.progress_callback:
            self.progress_callback(name, status, message)

    def run(
        self,
        step: Step,
        dry_run: bool = False,
        max_downtime_ms: Optional[float] = None,
    ) -> StepReport:
        """Run a step.

        Args:
            step: Step to run
            dry_run: Simulate the step without invoking its action or health check
            max_downtime_ms: Budget for the step's downtime window, if it has one

        Returns:
            StepReport describing success, tolerated failure or critical failure
        """
        self._bracket_start(step)
        self.notify(step.name, StepStatus.IN_PROGRESS, step.description or None)
        started = self.clock()

        with LogContext(logger, phase=step.name):
            if dry_run:
                self.event_log.info("DRY_RUN", f"Would run {self.kind}: {step.name}")
                self.sleep(self.dry_run_delay)
                return self._succeed(step, started)

            error, downtime_ms = self._invoke_action(step, max_downtime_ms)
            if error is None and step.health_check is not None:
                error = self._invoke_health_check(step.name, step.health_check)

            if error is None:
                return self._succeed(step, started, downtime_ms)
            return self._fail(step, started, error, downtime_ms)

    def _invoke_action(self, step: Step, max_downtime_ms: Optional[float]):
        window_start = self.clock()
        error = _call_action(step.action)
        if not step.downtime_window:
            return error, None

        downtime_ms = (self.clock() - window_start) * 1000
        self.event_log.info(
            "DOWNTIME",
            f"Downtime window for {step.name}: {downtime_ms:.0f}ms",
            {"downtime_ms": downtime_ms, "max_downtime_ms": max_downtime_ms},
        )
        if error is None and max_downtime_ms is not None and downtime_ms > max_downtime_ms:
            error = DowntimeBudgetExceeded(
                f"Downtime of {downtime_ms:.0f}ms exceeded the {max_downtime_ms:.0f}ms budget",
                downtime_ms=downtime_ms,
                max_downtime_ms=max_downtime_ms,
            )
        return error, downtime_ms

    def _invoke_health_check(self, name: str, health_check: HealthCheck) -> Optional[DeploymentError]:
        self.event_log.debug("HEALTH", f"Running health gate for {name}")
        try:
            result = health_check()
        except DeploymentError as e:
            return e
        except OPERATIONAL_ERRORS as e:
            return error_handler.handle_exception(e)

        if result is False:
            return VerificationFailure(f"Health gate failed for {name}")
        if isinstance(result, Outcome) and not result.success:
            return result.to_error(VerificationFailure)
        return None

    def _succeed(self, step: Step, started: float, downtime_ms: Optional[float] = None) -> StepReport:
        duration_ms = (self.clock() - started) * 1000
        self._bracket_complete(step, duration_ms)
        self.notify(step.name, StepStatus.SUCCESS, None)
        return StepReport(
            name=step.name,
            status=StepStatus.SUCCESS,
            critical=step.critical,
            duration_ms=duration_ms,
            downtime_ms=downtime_ms,
        )

    def _fail(
        self,
        step: Step,
        started: float,
        error: DeploymentError,
        downtime_ms: Optional[float],
    ) -> StepReport:
        duration_ms = (self.clock() - started) * 1000
        label = self.kind.capitalize()

        if step.critical:
            failure_type = CriticalPhaseFailure if self.kind == "phase" else CriticalStepFailure
            failure = failure_type(
                f"{label} '{step.name}' failed: {error.message}",
                category=error.category,
                cause=error,
                suggestions=error.suggestions,
            )
            self.event_log.fail_step(step.name, error)
            self.event_log.critical(self.kind.upper(), f"Critical {self.kind} failed: {step.name}", error=error)
            status = StepStatus.FAILED
        else:
            failure = ToleratedFailure(
                f"{label} '{step.name}' failed but is not critical: {error.message}",
                category=error.category,
                cause=error,
            )
            self.event_log.warning(
                self.kind.upper(),
                f"⚠️  Non-critical {self.kind} failed, continuing: {step.name}",
                {"error": error.message, "category": error.category.value},
            )
            status = StepStatus.TOLERATED

        self.notify(step.name, status, error.message)
        return StepReport(
            name=step.name,
            status=status,
            critical=step.critical,
            duration_ms=duration_ms,
            downtime_ms=downtime_ms,
            error=failure,
        )

    def _bracket_start(self, step: Step) -> None:
        if self.kind == "phase":
            self.event_log.start_phase(step.name, step.description or None)
        else:
            self.event_log.start_step(step.name, step.description or None)

    def _bracket_complete(self, step: Step, duration_ms: float) -> None:
        if self.kind == "phase":
            self.event_log.complete_phase(step.name)
        else:
            self.event_log.complete_step(step.name, duration_ms)


def _call_action(action: Optional[Action]) -> Optional[DeploymentError]:
    if action is None:
        return None
    try:
        result = action()
    except DeploymentError as e:
        return e
    except OPERATIONAL_ERRORS as e:
        return error_handler.handle_exception(e)
    if isinstance(result, Outcome) and not result.success:
        return result.to_error()
    return None
