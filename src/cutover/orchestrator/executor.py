"""Deployment orchestrator: runs a plan of phases with health gates and compensation."""

import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from cutover.collaborators.preflight import PreflightChecker, PreflightReport
from cutover.observer.event_log import EventLog
from cutover.orchestrator.compensation import CompensationPass, CompensationResult
from cutover.orchestrator.options import DeploymentOptions
from cutover.orchestrator.runner import ProgressCallback, StepRunner, StepStatus
from cutover.orchestrator.steps import DeploymentPlan
from cutover.snapshot.models import SnapshotRef
from cutover.snapshot.service import SnapshotService
from cutover.utils.errors import DeploymentError, PreflightFailure, SnapshotError, error_handler
from cutover.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class ExecutionResult:
    """Complete deployment execution result.

    ``completed_phases`` holds only phases that succeeded. Non-critical phases
    that failed appear in ``attempted_phases`` and ``tolerated_failures``.
    """

    success: bool = False
    completed_phases: List[str] = field(default_factory=list)
    attempted_phases: List[str] = field(default_factory=list)
    tolerated_failures: Dict[str, str] = field(default_factory=dict)
    failed_phase: Optional[str] = None
    total_duration_ms: float = 0.0
    downtime_ms: float = 0.0
    snapshot_ref: Optional[SnapshotRef] = None
    error: Optional[DeploymentError] = None
    compensation: Optional[CompensationResult] = None
    preflight: Optional[PreflightReport] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "completedPhases": list(self.completed_phases),
            "attemptedPhases": list(self.attempted_phases),
            "toleratedFailures": dict(self.tolerated_failures),
            "failedPhase": self.failed_phase,
            "totalDurationMs": round(self.total_duration_ms, 3),
            "downtimeMs": round(self.downtime_ms, 3),
            "snapshotRef": str(self.snapshot_ref) if self.snapshot_ref else None,
            "error": self.error.to_dict() if self.error else None,
            "compensation": self.compensation.to_dict() if self.compensation else None,
            "preflight": self.preflight.to_dict() if self.preflight else None,
        }


class DeploymentOrchestrator:
    """Executes deployment plans one phase at a time.

    ``deploy()`` never raises: every failure, including unexpected internal
    errors, ends up in the returned ``ExecutionResult``.
    """

    def __init__(
        self,
        event_log: Optional[EventLog] = None,
        preflight: Optional[PreflightChecker] = None,
        snapshots: Optional[SnapshotService] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
        dry_run_delay: float = 0.1,
        progress_callback: Optional[ProgressCallback] = None,
    ):
        """Initialize the orchestrator.

        Args:
            event_log: Event log for the run; an in-memory log is created when omitted
            preflight: Pre-deployment checker
            snapshots: Snapshot service used for the pre-deployment backup
            clock: Monotonic clock in seconds
            sleep: Sleep function used by dry-run simulation
            dry_run_delay: Seconds a simulated phase takes
            progress_callback: Optional callback for progress updates
        """
        self.event_log = event_log or EventLog(clock=clock)
        self.preflight = preflight
        self.snapshots = snapshots
        self.clock = clock
        self.runner = StepRunner(
            self.event_log,
            kind="phase",
            clock=clock,
            sleep=sleep,
            dry_run_delay=dry_run_delay,
            progress_callback=progress_callback,
        )
        self.compensation_pass = CompensationPass(self.event_log)
        self.logger = get_logger(__name__)

    def deploy(self, plan: DeploymentPlan, options: Optional[DeploymentOptions] = None) -> ExecutionResult:
        """Execute a deployment plan.

        Args:
            plan: Ordered phases to run
            options: Run options; defaults when omitted

        Returns:
            ExecutionResult with execution details
        """
        options = options or DeploymentOptions()
        result = ExecutionResult()
        started = self.clock()

        try:
            self.event_log.info(
                "DEPLOY",
                f"🚀 Starting deployment of {len(plan)} phases" + (" (dry run)" if options.dry_run else ""),
                {"phases": plan.names, "options": options.model_dump()},
            )
            self._execute(plan, options, result)
        except Exception as e:
            result.error = e if isinstance(e, DeploymentError) else DeploymentError(
                f"Deployment execution failed: {e}", cause=e
            )
            self.logger.exception("Unexpected error during deployment")
            recoverable = result.failed_phase and not self.event_log.closed
            if recoverable and options.compensate_on_failure and not options.dry_run:
                result.compensation = self.compensation_pass.run(plan, result.completed_phases)

        result.success = result.error is None
        result.total_duration_ms = (self.clock() - started) * 1000
        if not self.event_log.closed:
            self._log_summary(result)
        return result

    def _execute(self, plan: DeploymentPlan, options: DeploymentOptions, result: ExecutionResult) -> None:
        if not self._run_preflight(options, result):
            return
        if not self._create_backup(options, result):
            return

        tracker = self.event_log.progress_tracker("DEPLOY", len(plan), "Deployment")
        for phase in plan:
            result.attempted_phases.append(phase.name)
            try:
                report = self.runner.run(
                    phase, dry_run=options.dry_run, max_downtime_ms=options.max_downtime_ms
                )
            except Exception:
                result.failed_phase = phase.name
                raise

            if report.downtime_ms is not None:
                result.downtime_ms = report.downtime_ms

            if report.is_success():
                result.completed_phases.append(phase.name)
                tracker.increment()
            elif report.status == StepStatus.TOLERATED:
                result.tolerated_failures[phase.name] = report.error.message
                tracker.increment()
            else:
                result.failed_phase = phase.name
                result.error = report.error
                tracker.fail(report.error)
                break

        if result.failed_phase is None:
            tracker.complete()
            return

        if options.compensate_on_failure and not options.dry_run:
            result.compensation = self.compensation_pass.run(plan, result.completed_phases)
        else:
            self.event_log.info("COMPENSATION", "Compensation disabled; completed phases left in place")

    def _run_preflight(self, options: DeploymentOptions, result: ExecutionResult) -> bool:
        if options.skip_preflight or self.preflight is None:
            self.event_log.info("PREFLIGHT", "Pre-deployment checks skipped")
            return True

        report = self.event_log.time_execution("PREFLIGHT", "pre-deployment checks", self.preflight.run)
        result.preflight = report
        if report.warning_count:
            self.event_log.warning("PREFLIGHT", f"{report.warning_count} pre-deployment warnings")
        if report.success:
            return True

        result.error = PreflightFailure(
            f"Pre-deployment checks failed with {report.critical_failure_count} critical failures",
            suggestions=[f"{r.name}: {r.message}" for r in report.results if r.critical and not r.success],
        )
        self.event_log.critical("PREFLIGHT", "Deployment aborted before any phase ran", error=result.error)
        return False

    def _create_backup(self, options: DeploymentOptions, result: ExecutionResult) -> bool:
        if options.skip_backup or self.snapshots is None:
            self.event_log.info("BACKUP", "Pre-deployment snapshot skipped")
            return True
        if options.dry_run:
            self.event_log.info("DRY_RUN", "Would create a pre-deployment snapshot")
            return True

        try:
            result.snapshot_ref = self.event_log.time_execution(
                "BACKUP",
                "pre-deployment snapshot",
                lambda: self.snapshots.capture(options=options.model_dump()),
            )
        except SnapshotError as e:
            result.error = e
            self.event_log.critical("BACKUP", "Cannot deploy without a snapshot to recover from", error=e)
            return False
        return True

    def _log_summary(self, result: ExecutionResult) -> None:
        if result.success:
            self.event_log.info(
                "DEPLOY",
                f"🎉 Deployment completed: {len(result.completed_phases)} phases in "
                f"{result.total_duration_ms:.0f}ms, downtime {result.downtime_ms:.0f}ms",
            )
            if result.tolerated_failures:
                self.event_log.warning(
                    "DEPLOY",
                    f"{len(result.tolerated_failures)} non-critical phases failed",
                    {"tolerated": result.tolerated_failures},
                )
        else:
            where = f" at phase {result.failed_phase}" if result.failed_phase else ""
            self.event_log.error("DEPLOY", f"💥 Deployment failed{where}", error=result.error)
            if result.error is not None:
                error_handler.log_error(result.error)
