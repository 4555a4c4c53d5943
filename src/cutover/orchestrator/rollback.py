"""Disaster-recovery rollback pipeline driven by a snapshot."""

import os
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional

from cutover.collaborators.base import DataRestorer, DependencyInstaller, ServiceController, VersionControl
from cutover.collaborators.health import HealthChecker
from cutover.observer.event_log import EventLog
from cutover.orchestrator.options import RollbackOptions
from cutover.orchestrator.outcome import Outcome
from cutover.orchestrator.runner import ProgressCallback, StepRunner, StepStatus
from cutover.orchestrator.steps import Step
from cutover.snapshot.models import Snapshot, SnapshotRef
from cutover.snapshot.service import SnapshotService
from cutover.utils.errors import ConfirmationDenied, DeploymentError, ErrorCategory, error_handler
from cutover.utils.logging import get_logger

logger = get_logger(__name__)

CONFIRMATION_ENV_VAR = "ROLLBACK_CONFIRMED"

VALIDATE_PREREQUISITES = "Validate Prerequisites"
HALT_SERVICE = "Halt Service"
RESTORE_DATA = "Restore Data"
RESTORE_CODE = "Restore Code"
RESTORE_CONFIG = "Restore Configuration"
RESTORE_DEPENDENCIES = "Restore Dependencies"
RESUME_SERVICE = "Resume Service"
FINAL_VERIFICATION = "Final Verification"


def env_confirmation(environ: Optional[Mapping[str, str]] = None) -> Callable[[], bool]:
    """Confirmation signal read from ``ROLLBACK_CONFIRMED``."""
    def confirmed() -> bool:
        env = os.environ if environ is None else environ
        return env.get(CONFIRMATION_ENV_VAR, "").lower() in ("1", "true", "yes")
    return confirmed


@dataclass
class RollbackResult:
    """Result of a rollback run. Disabled steps are listed in ``skipped_steps``."""

    success: bool = False
    completed_steps: List[str] = field(default_factory=list)
    skipped_steps: List[str] = field(default_factory=list)
    tolerated_failures: Dict[str, str] = field(default_factory=dict)
    failed_step: Optional[str] = None
    total_duration_ms: float = 0.0
    snapshot_ref: Optional[str] = None
    error: Optional[DeploymentError] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "completedSteps": list(self.completed_steps),
            "skippedSteps": list(self.skipped_steps),
            "toleratedFailures": dict(self.tolerated_failures),
            "failedStep": self.failed_step,
            "totalDurationMs": round(self.total_duration_ms, 3),
            "snapshotRef": self.snapshot_ref,
            "error": self.error.to_dict() if self.error else None,
        }


@dataclass
class _RollbackRun:
    """Mutable state shared by the steps of one rollback run."""

    options: RollbackOptions
    ref: Optional[str] = None
    snapshot: Optional[Snapshot] = None


class RollbackPipeline:
    """A fixed sequence of recovery steps that works without any deployment bookkeeping.

    Steps run in order: validate prerequisites, halt service, restore data,
    restore code, restore configuration, restore dependencies, resume service
    and final verification. There is no rollback of a failed rollback: a
    failure is surfaced as-is for human intervention.
    """

    def __init__(
        self,
        snapshots: SnapshotService,
        data: Optional[DataRestorer] = None,
        vcs: Optional[VersionControl] = None,
        deps: Optional[DependencyInstaller] = None,
        service: Optional[ServiceController] = None,
        health: Optional[HealthChecker] = None,
        project_dir: str = ".",
        confirm: Optional[Callable[[], bool]] = None,
        event_log: Optional[EventLog] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
        dry_run_delay: float = 0.1,
        progress_callback: Optional[ProgressCallback] = None,
    ):
        """Initialize the pipeline.

        Args:
            snapshots: Snapshot service the recovery state is read from
            data: Data restorer for the data restore step
            vcs: Version control for the code restore step
            deps: Dependency installer for the dependency restore step
            service: Service controller to halt and resume traffic
            health: Health checker for the final verification
            project_dir: Directory captured config files are written back to
            confirm: Confirmation signal; reads ROLLBACK_CONFIRMED when omitted
            event_log: Event log for the run; an in-memory log is created when omitted
            clock: Monotonic clock in seconds
            sleep: Sleep function used by dry-run simulation
            dry_run_delay: Seconds a simulated step takes
            progress_callback: Optional callback for progress updates
        """
        self.snapshots = snapshots
        self.data = data
        self.vcs = vcs
        self.deps = deps
        self.service = service
        self.health = health
        self.project_dir = Path(project_dir)
        self.confirm = confirm or env_confirmation()
        self.event_log = event_log or EventLog(clock=clock)
        self.clock = clock
        self.runner = StepRunner(
            self.event_log,
            kind="step",
            clock=clock,
            sleep=sleep,
            dry_run_delay=dry_run_delay,
            progress_callback=progress_callback,
        )
        self.logger = get_logger(__name__)

    def create_snapshot(self, options: Optional[Dict[str, Any]] = None) -> SnapshotRef:
        """Capture a snapshot to roll back to later.

        Raises:
            SnapshotError: If the snapshot cannot be written
        """
        return self.snapshots.capture(options=options)

    def rollback(self, options: Optional[RollbackOptions] = None) -> RollbackResult:
        """Run the recovery sequence. Never raises.

        Args:
            options: Rollback options; defaults when omitted

        Returns:
            RollbackResult describing completed, skipped and failed steps
        """
        options = options or RollbackOptions()
        result = RollbackResult()
        started = self.clock()

        try:
            self._execute(options, result)
        except Exception as e:
            result.error = e if isinstance(e, DeploymentError) else DeploymentError(
                f"Rollback execution failed: {e}", cause=e
            )
            self.logger.exception("Unexpected error during rollback")

        result.success = result.error is None
        result.total_duration_ms = (self.clock() - started) * 1000
        if not self.event_log.closed:
            self._log_summary(result)
        return result

    def build_steps(self, run: _RollbackRun) -> List[Step]:
        """The fixed recovery sequence, with steps disabled by options marked as such."""
        options = run.options
        return [
            Step(
                name=VALIDATE_PREREQUISITES,
                description="Check restore tooling and resolve the snapshot",
                critical=True,
                action=lambda: self._validate_prerequisites(run),
            ),
            Step(
                name=HALT_SERVICE,
                description="Stop serving traffic",
                critical=False,
                action=self._halt_service,
            ),
            Step(
                name=RESTORE_DATA,
                description="Restore data from the backup",
                critical=True,
                action=lambda: self._restore_data(run),
                health_check=self._verify_data,
                enabled=options.restore_data,
            ),
            Step(
                name=RESTORE_CODE,
                description="Revert code to the snapshot revision",
                critical=True,
                action=lambda: self._restore_code(run),
                enabled=options.restore_code,
            ),
            Step(
                name=RESTORE_CONFIG,
                description="Write captured configuration files back",
                critical=False,
                action=lambda: self._restore_config(run),
                enabled=options.restore_config,
            ),
            Step(
                name=RESTORE_DEPENDENCIES,
                description="Reinstall dependencies from the captured manifest",
                critical=True,
                action=lambda: self._restore_dependencies(run),
            ),
            Step(
                name=RESUME_SERVICE,
                description="Start serving traffic again",
                critical=True,
                action=self._resume_service,
            ),
            Step(
                name=FINAL_VERIFICATION,
                description="Smoke check the restored system",
                critical=True,
                action=self._final_verification,
            ),
        ]

    def _execute(self, options: RollbackOptions, result: RollbackResult) -> None:
        self.event_log.warning(
            "ROLLBACK",
            "🔄 Starting rollback" + (" (dry run)" if options.dry_run else ""),
            {"options": options.model_dump()},
        )

        if not self._confirmed(options):
            result.error = ConfirmationDenied(
                "Rollback requires explicit confirmation; no confirmation was given and nothing was changed"
            )
            self.event_log.critical("ROLLBACK", "Rollback not confirmed", error=result.error)
            return

        run = _RollbackRun(options=options, ref=options.snapshot_ref)
        if run.ref is None:
            latest = self.snapshots.latest()
            run.ref = latest.location if latest else None
        result.snapshot_ref = run.ref

        steps = self.build_steps(run)
        tracker = self.event_log.progress_tracker("ROLLBACK", sum(1 for s in steps if s.enabled), "Rollback")

        for step in steps:
            if not step.enabled:
                result.skipped_steps.append(step.name)
                self.runner.notify(step.name, StepStatus.SKIPPED, "disabled by options")
                self.event_log.info("STEP", f"⏭️  Skipped: {step.name}")
                continue

            try:
                report = self.runner.run(step, dry_run=options.dry_run)
            except Exception:
                result.failed_step = step.name
                raise

            if report.is_success():
                result.completed_steps.append(step.name)
                tracker.increment()
            elif report.status == StepStatus.TOLERATED:
                result.tolerated_failures[step.name] = report.error.message
                tracker.increment()
            else:
                result.failed_step = step.name
                result.error = report.error
                tracker.fail(report.error)
                return

        tracker.complete()

    def _confirmed(self, options: RollbackOptions) -> bool:
        if options.skip_confirmation or options.dry_run:
            return True
        return bool(self.confirm())

    def _validate_prerequisites(self, run: _RollbackRun) -> Outcome:
        options = run.options
        missing = []
        if options.restore_data and (self.data is None or not self.data.is_available()):
            missing.append("data restore")
        if options.restore_code and (self.vcs is None or not self.vcs.is_available()):
            missing.append("version control")
        if self.deps is None or not self.deps.is_available():
            missing.append("dependency installer")
        if missing:
            return Outcome.err(ErrorCategory.INFRASTRUCTURE, f"Required tools unavailable: {', '.join(missing)}")

        if run.ref is None:
            needing = [RESTORE_DEPENDENCIES] + ([RESTORE_CODE] if options.restore_code else [])
            return Outcome.err(
                ErrorCategory.SNAPSHOT,
                f"No snapshot available; {', '.join(needing)} cannot run without one",
            )

        run.snapshot = self.snapshots.resolve(run.ref)
        self.event_log.info("ROLLBACK", f"Using snapshot {run.snapshot.snapshot_id}", run.snapshot.summary())
        return Outcome.ok()

    def _halt_service(self) -> None:
        if self.service is None:
            self.event_log.warning("ROLLBACK", "No service controller configured; traffic not halted")
            return
        self.service.stop()

    def _restore_data(self, run: _RollbackRun) -> Outcome:
        backup = run.options.backup_path or (run.snapshot.data_backup if run.snapshot else None)
        if not backup:
            return Outcome.err(ErrorCategory.VALIDATION, "No data backup available to restore")
        self.data.restore(backup)
        return Outcome.ok()

    def _verify_data(self) -> bool:
        return self.data.verify()

    def _restore_code(self, run: _RollbackRun) -> Outcome:
        if run.snapshot is None or not run.snapshot.revision_id:
            return Outcome.err(ErrorCategory.SNAPSHOT, "No revision recorded to restore code to")
        self.vcs.revert_to(run.snapshot.revision_id)
        return Outcome.ok()

    def _restore_config(self, run: _RollbackRun) -> Outcome:
        if run.snapshot is None:
            return Outcome.err(ErrorCategory.SNAPSHOT, "No snapshot to restore configuration from")
        if not run.snapshot.config_files:
            self.event_log.info("ROLLBACK", "Snapshot holds no configuration files")
            return Outcome.ok()

        try:
            for relative_path, content in run.snapshot.config_files.items():
                target = self.project_dir / relative_path
                tmp_path = target.with_name(target.name + ".tmp")
                tmp_path.write_text(content, encoding="utf-8")
                tmp_path.replace(target)
                self.event_log.info("ROLLBACK", f"Restored {relative_path}")
        except OSError as e:
            return Outcome.err(ErrorCategory.INFRASTRUCTURE, f"Failed to write configuration: {e}")
        return Outcome.ok()

    def _restore_dependencies(self, run: _RollbackRun) -> Outcome:
        if run.snapshot is None:
            return Outcome.err(ErrorCategory.SNAPSHOT, "No snapshot to restore dependencies from")
        if not run.snapshot.dependency_manifest:
            self.event_log.info("ROLLBACK", "Snapshot holds no dependency manifest")
            return Outcome.ok()
        self.deps.restore(run.snapshot.dependency_manifest)
        return Outcome.ok()

    def _resume_service(self) -> None:
        if self.service is None:
            self.event_log.warning("ROLLBACK", "No service controller configured; service not resumed")
            return
        self.service.start()

    def _final_verification(self) -> Outcome:
        if self.health is None:
            self.event_log.warning("ROLLBACK", "No health checks configured; final verification skipped")
            return Outcome.ok()
        report = self.health.run_health_checks()
        if report.success:
            return Outcome.ok()
        return Outcome.err(ErrorCategory.VALIDATION, f"Final verification failed: {'; '.join(report.errors)}")

    def _log_summary(self, result: RollbackResult) -> None:
        if result.success:
            self.event_log.info(
                "ROLLBACK",
                f"✅ Rollback completed: {len(result.completed_steps)} steps in {result.total_duration_ms:.0f}ms",
            )
        else:
            where = f" at step {result.failed_step}" if result.failed_step else ""
            self.event_log.error(
                "ROLLBACK", f"💥 Rollback failed{where}; manual intervention required", error=result.error
            )
            if result.error is not None:
                error_handler.log_error(result.error)
