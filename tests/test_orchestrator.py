"""Deployment orchestrator tests: phase ordering, criticality, downtime window, compensation."""

import pytest

from cutover.collaborators import PreflightChecker
from cutover.orchestrator import (
    DeploymentOptions,
    DeploymentOrchestrator,
    DeploymentPlan,
    Outcome,
    Phase,
    StepStatus,
)
from cutover.utils.errors import (
    CriticalPhaseFailure,
    DeploymentError,
    DowntimeBudgetExceeded,
    ErrorCategory,
    InfrastructureError,
    PreflightFailure,
    SnapshotError,
    VerificationFailure,
)


def _recorder(calls, name, error=None):
    def action():
        calls.append(name)
        if error:
            raise error
    return action


def _plan(calls, *specs):
    """Build a plan from (name, critical) pairs whose actions record their name."""
    return DeploymentPlan([
        Phase(name=name, critical=critical, action=_recorder(calls, name))
        for name, critical in specs
    ])


@pytest.fixture
def orchestrator(event_log, clock):
    return DeploymentOrchestrator(event_log=event_log, clock=clock, sleep=clock.sleep)


def _release_plan(calls, clock, cutover_seconds, compensations=None):
    compensations = compensations or {}

    def cutover():
        calls.append("Cutover")
        clock.advance(cutover_seconds)

    return DeploymentPlan([
        Phase(name="Backup", critical=True, action=_recorder(calls, "Backup"),
              compensation=compensations.get("Backup")),
        Phase(name="Migrate", critical=True, action=_recorder(calls, "Migrate"),
              compensation=compensations.get("Migrate")),
        Phase(name="Cutover", critical=True, action=cutover, downtime_window=True),
        Phase(name="ActivateFeature", critical=False, action=_recorder(calls, "ActivateFeature")),
    ])


class TestReleaseScenarios:
    def test_all_phases_succeed_within_downtime_budget(self, orchestrator, clock):
        calls = []
        plan = _release_plan(calls, clock, cutover_seconds=1.0)

        result = orchestrator.deploy(plan, DeploymentOptions(max_downtime_ms=30000))

        assert result.success is True
        assert result.completed_phases == ["Backup", "Migrate", "Cutover", "ActivateFeature"]
        assert result.downtime_ms == pytest.approx(1000)
        assert result.failed_phase is None
        assert result.error is None

    def test_cutover_exceeding_budget_fails_even_though_action_returned(self, orchestrator, clock):
        calls = []
        plan = _release_plan(calls, clock, cutover_seconds=45.0)

        result = orchestrator.deploy(plan, DeploymentOptions(max_downtime_ms=30000))

        assert result.success is False
        assert result.failed_phase == "Cutover"
        assert result.completed_phases == ["Backup", "Migrate"]
        assert "ActivateFeature" not in calls
        assert result.downtime_ms == pytest.approx(45000)
        assert isinstance(result.error, CriticalPhaseFailure)
        assert isinstance(result.error.cause, DowntimeBudgetExceeded)
        assert result.error.category == ErrorCategory.TIMEOUT

    def test_failed_migration_compensates_only_completed_phases_that_declare_one(self, orchestrator, clock):
        calls = []
        compensated = []
        plan = DeploymentPlan([
            Phase(name="Backup", action=_recorder(calls, "Backup"),
                  compensation=_recorder(compensated, "Backup")),
            Phase(name="Migrate", action=_recorder(calls, "Migrate", InfrastructureError("migration failed")),
                  compensation=_recorder(compensated, "Migrate")),
            Phase(name="Cutover", action=_recorder(calls, "Cutover"), downtime_window=True),
        ])

        result = orchestrator.deploy(plan, DeploymentOptions(compensate_on_failure=True))

        assert result.success is False
        assert result.failed_phase == "Migrate"
        assert compensated == ["Backup"]
        assert result.compensation.compensated == ["Backup"]
        assert result.compensation.failed == {}


class TestPhaseExecution:
    def test_phases_run_in_declared_order(self, orchestrator):
        calls = []
        plan = _plan(calls, ("a", True), ("b", True), ("c", False), ("d", True))

        result = orchestrator.deploy(plan)

        assert calls == ["a", "b", "c", "d"]
        assert result.completed_phases == ["a", "b", "c", "d"]
        assert len(result.completed_phases) == len(plan)

    def test_critical_failure_stops_forward_progress(self, orchestrator):
        calls = []
        plan = DeploymentPlan([
            Phase(name="a", action=_recorder(calls, "a")),
            Phase(name="b", action=_recorder(calls, "b", InfrastructureError("boom"))),
            Phase(name="c", action=_recorder(calls, "c")),
        ])

        result = orchestrator.deploy(plan)

        assert calls == ["a", "b"]
        assert result.completed_phases == ["a"]
        assert result.attempted_phases == ["a", "b"]
        assert result.failed_phase == "b"
        assert "boom" in result.error.message

    def test_non_critical_failure_is_tolerated(self, orchestrator):
        calls = []
        plan = DeploymentPlan([
            Phase(name="env", critical=False, action=_recorder(calls, "env", InfrastructureError("no env"))),
            Phase(name="build", action=_recorder(calls, "build")),
        ])

        result = orchestrator.deploy(plan)

        assert result.success is True
        assert calls == ["env", "build"]
        assert result.completed_phases == ["build"]
        assert result.attempted_phases == ["env", "build"]
        assert "no env" in result.tolerated_failures["env"]

    def test_failed_outcome_is_treated_like_a_raised_error(self, orchestrator):
        plan = DeploymentPlan([
            Phase(name="build", action=lambda: Outcome.err(ErrorCategory.VALIDATION, "lint failed")),
        ])

        result = orchestrator.deploy(plan)

        assert result.success is False
        assert result.failed_phase == "build"
        assert result.error.category == ErrorCategory.VALIDATION

    def test_failing_health_gate_fails_phase(self, orchestrator):
        plan = DeploymentPlan([
            Phase(name="migrate", action=lambda: None, health_check=lambda: False),
            Phase(name="after", action=lambda: None),
        ])

        result = orchestrator.deploy(plan)

        assert result.failed_phase == "migrate"
        assert result.completed_phases == []
        assert isinstance(result.error.cause, VerificationFailure)

    def test_health_gate_failure_on_non_critical_phase_is_tolerated(self, orchestrator):
        plan = DeploymentPlan([
            Phase(name="rollout", critical=False, action=lambda: None,
                  health_check=lambda: Outcome.err(ErrorCategory.VALIDATION, "5xx spike")),
        ])

        result = orchestrator.deploy(plan)

        assert result.success is True
        assert "5xx spike" in result.tolerated_failures["rollout"]

    def test_health_gate_skipped_when_action_failed(self, orchestrator):
        checked = []
        plan = DeploymentPlan([
            Phase(name="migrate", action=_recorder([], "migrate", InfrastructureError("down")),
                  health_check=lambda: checked.append("checked") or True),
        ])

        orchestrator.deploy(plan)

        assert checked == []

    def test_unexpected_exception_is_never_tolerated(self, orchestrator):
        def buggy():
            raise KeyError("missing")

        compensated = []
        plan = DeploymentPlan([
            Phase(name="a", action=lambda: None, compensation=_recorder(compensated, "a")),
            Phase(name="b", critical=False, action=buggy),
            Phase(name="c", action=lambda: None),
        ])

        result = orchestrator.deploy(plan)

        assert result.success is False
        assert result.failed_phase == "b"
        assert result.tolerated_failures == {}
        assert isinstance(result.error, DeploymentError)
        assert isinstance(result.error.cause, KeyError)
        assert compensated == ["a"]

    def test_os_error_in_non_critical_phase_is_tolerated(self, orchestrator):
        calls = []
        compensated = []
        plan = DeploymentPlan([
            Phase(name="a", action=_recorder(calls, "a"), compensation=_recorder(compensated, "a")),
            Phase(name="b", critical=False, action=_recorder(calls, "b", PermissionError("flags.yaml is read-only"))),
            Phase(name="c", action=_recorder(calls, "c")),
        ])

        result = orchestrator.deploy(plan)

        assert result.success is True
        assert calls == ["a", "b", "c"]
        assert result.completed_phases == ["a", "c"]
        assert "flags.yaml is read-only" in result.tolerated_failures["b"]
        assert compensated == []

    def test_os_error_in_critical_phase_is_infrastructure_failure(self, orchestrator):
        plan = DeploymentPlan([
            Phase(name="build", action=_recorder([], "build", FileNotFoundError(2, "No such file", "npm"))),
        ])

        result = orchestrator.deploy(plan)

        assert result.success is False
        assert result.failed_phase == "build"
        assert isinstance(result.error, CriticalPhaseFailure)
        assert result.error.category == ErrorCategory.INFRASTRUCTURE

    def test_progress_callback_sees_every_transition(self, event_log, clock):
        seen = []
        orchestrator = DeploymentOrchestrator(
            event_log=event_log, clock=clock, sleep=clock.sleep,
            progress_callback=lambda name, status, message: seen.append((name, status)),
        )
        plan = DeploymentPlan([
            Phase(name="a", action=lambda: None),
            Phase(name="b", critical=False, action=_recorder([], "b", InfrastructureError("x"))),
        ])

        orchestrator.deploy(plan)

        assert seen == [
            ("a", StepStatus.IN_PROGRESS),
            ("a", StepStatus.SUCCESS),
            ("b", StepStatus.IN_PROGRESS),
            ("b", StepStatus.TOLERATED),
        ]


class TestDryRun:
    def test_dry_run_invokes_no_action_and_completes_every_phase(self, orchestrator, clock):
        calls = []
        checked = []
        plan = DeploymentPlan([
            Phase(name="a", action=_recorder(calls, "a"), health_check=lambda: checked.append(1)),
            Phase(name="b", action=_recorder(calls, "b"), downtime_window=True),
            Phase(name="c", critical=False, action=_recorder(calls, "c")),
        ])

        result = orchestrator.deploy(plan, DeploymentOptions(dry_run=True))

        assert result.success is True
        assert calls == []
        assert checked == []
        assert result.completed_phases == ["a", "b", "c"]
        assert clock.sleeps == [0.1, 0.1, 0.1]

    def test_dry_run_does_not_capture_snapshot(self, event_log, clock, snapshots):
        orchestrator = DeploymentOrchestrator(
            event_log=event_log, snapshots=snapshots, clock=clock, sleep=clock.sleep
        )

        result = orchestrator.deploy(DeploymentPlan([]), DeploymentOptions(dry_run=True))

        assert result.snapshot_ref is None
        assert snapshots.list_snapshots() == []


class TestPreflightAndBackup:
    def test_preflight_failure_aborts_before_any_phase(self, event_log, clock):
        calls = []
        preflight = PreflightChecker().add_check("db reachable", lambda: False)
        orchestrator = DeploymentOrchestrator(event_log=event_log, preflight=preflight, clock=clock)

        result = orchestrator.deploy(_plan(calls, ("a", True)))

        assert result.success is False
        assert calls == []
        assert result.failed_phase is None
        assert result.attempted_phases == []
        assert isinstance(result.error, PreflightFailure)
        assert result.preflight.critical_failure_count == 1

    def test_preflight_warnings_do_not_abort(self, event_log, clock):
        preflight = PreflightChecker().add_check("optional", lambda: False, critical=False)
        orchestrator = DeploymentOrchestrator(event_log=event_log, preflight=preflight, clock=clock)

        result = orchestrator.deploy(_plan([], ("a", True)))

        assert result.success is True
        assert result.preflight.warning_count == 1

    def test_skip_preflight(self, event_log, clock):
        preflight = PreflightChecker().add_check("db reachable", lambda: False)
        orchestrator = DeploymentOrchestrator(event_log=event_log, preflight=preflight, clock=clock)

        result = orchestrator.deploy(_plan([], ("a", True)), DeploymentOptions(skip_preflight=True))

        assert result.success is True
        assert result.preflight is None

    def test_backup_reference_is_recorded(self, event_log, clock, snapshots):
        orchestrator = DeploymentOrchestrator(event_log=event_log, snapshots=snapshots, clock=clock)

        result = orchestrator.deploy(_plan([], ("a", True)))

        assert result.snapshot_ref is not None
        snapshot = snapshots.resolve(result.snapshot_ref)
        assert snapshot.captured_options["max_downtime_ms"] == 30000

    def test_backup_failure_is_fatal(self, event_log, clock):
        class BrokenSnapshots:
            def capture(self, options=None, include_data=True):
                raise SnapshotError("disk full")

        calls = []
        orchestrator = DeploymentOrchestrator(event_log=event_log, snapshots=BrokenSnapshots(), clock=clock)

        result = orchestrator.deploy(_plan(calls, ("a", True)))

        assert result.success is False
        assert calls == []
        assert isinstance(result.error, SnapshotError)

    def test_skip_backup(self, event_log, clock, snapshots):
        orchestrator = DeploymentOrchestrator(event_log=event_log, snapshots=snapshots, clock=clock)

        result = orchestrator.deploy(_plan([], ("a", True)), DeploymentOptions(skip_backup=True))

        assert result.snapshot_ref is None


class TestCompensation:
    def test_compensations_run_in_reverse_completion_order(self, orchestrator):
        compensated = []
        plan = DeploymentPlan([
            Phase(name="one", action=lambda: None, compensation=_recorder(compensated, "one")),
            Phase(name="two", action=lambda: None),
            Phase(name="three", action=lambda: None, compensation=_recorder(compensated, "three")),
            Phase(name="four", action=_recorder([], "four", InfrastructureError("fail"))),
        ])

        result = orchestrator.deploy(plan)

        assert compensated == ["three", "one"]
        assert result.compensation.compensated == ["three", "one"]

    def test_failing_compensation_does_not_stop_the_others(self, orchestrator):
        compensated = []
        plan = DeploymentPlan([
            Phase(name="one", action=lambda: None, compensation=_recorder(compensated, "one")),
            Phase(name="two", action=lambda: None,
                  compensation=_recorder(compensated, "two", InfrastructureError("revert failed"))),
            Phase(name="three", action=_recorder([], "three", InfrastructureError("fail"))),
        ])

        result = orchestrator.deploy(plan)

        assert compensated == ["two", "one"]
        assert result.compensation.compensated == ["one"]
        assert "revert failed" in result.compensation.failed["two"]
        assert result.failed_phase == "three"

    def test_tolerated_phases_are_not_compensated(self, orchestrator):
        compensated = []
        plan = DeploymentPlan([
            Phase(name="env", critical=False, action=_recorder([], "env", InfrastructureError("x")),
                  compensation=_recorder(compensated, "env")),
            Phase(name="build", action=_recorder([], "build", InfrastructureError("y"))),
        ])

        orchestrator.deploy(plan)

        assert compensated == []

    def test_compensation_can_be_disabled(self, orchestrator):
        compensated = []
        plan = DeploymentPlan([
            Phase(name="one", action=lambda: None, compensation=_recorder(compensated, "one")),
            Phase(name="two", action=_recorder([], "two", InfrastructureError("fail"))),
        ])

        result = orchestrator.deploy(plan, DeploymentOptions(compensate_on_failure=False))

        assert compensated == []
        assert result.compensation is None

    def test_no_compensation_after_tolerated_failure_only(self, orchestrator):
        compensated = []
        plan = DeploymentPlan([
            Phase(name="one", action=lambda: None, compensation=_recorder(compensated, "one")),
            Phase(name="two", critical=False, action=_recorder([], "two", InfrastructureError("x"))),
        ])

        result = orchestrator.deploy(plan)

        assert result.success is True
        assert compensated == []
        assert result.compensation is None


class TestDeploymentPlan:
    def test_duplicate_names_are_rejected(self):
        with pytest.raises(ValueError, match="Duplicate"):
            DeploymentPlan([Phase(name="a"), Phase(name="a")])

    def test_at_most_one_downtime_window(self):
        with pytest.raises(ValueError, match="downtime window"):
            DeploymentPlan([
                Phase(name="a", downtime_window=True),
                Phase(name="b", downtime_window=True),
            ])

    def test_lookup(self):
        plan = DeploymentPlan([Phase(name="a"), Phase(name="b", downtime_window=True)])
        assert plan.names == ["a", "b"]
        assert plan.get("b").downtime_window is True
        assert plan.downtime_phase.name == "b"
        assert plan.get("missing") is None


def test_result_serializes_to_dict(orchestrator):
    result = orchestrator.deploy(_plan([], ("a", True)))
    data = result.to_dict()

    assert data["success"] is True
    assert data["completedPhases"] == ["a"]
    assert data["failedPhase"] is None
    assert data["error"] is None


def test_event_log_brackets_each_phase(orchestrator, event_log):
    orchestrator.deploy(_plan([], ("a", True), ("b", True)))

    phase_messages = [e.message for e in event_log.entries_for("PHASE")]
    assert any("Starting Phase: a" in m for m in phase_messages)
    assert any("Completed Phase: b" in m for m in phase_messages)


def test_deploy_never_raises_when_log_is_closed(event_log, clock):
    orchestrator = DeploymentOrchestrator(event_log=event_log, clock=clock)
    event_log.close()

    result = orchestrator.deploy(_plan([], ("a", True)))

    assert result.success is False
    assert result.error is not None
