"""The standard release plan."""

import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple

from cutover.collaborators.bundle import Collaborators
from cutover.orchestrator.options import DeploymentOptions
from cutover.orchestrator.outcome import Outcome
from cutover.orchestrator.steps import DeploymentPlan, Phase
from cutover.utils.errors import ErrorCategory
from cutover.utils.logging import get_logger

logger = get_logger(__name__)

ENVIRONMENT_MIGRATION = "Environment Migration"
SCHEMA_MIGRATION = "Database Schema Migration"
APPLICATION_BUILD = "Application Build"
SERVICE_CUTOVER = "Service Cutover"
FEATURE_ACTIVATION = "Feature Activation"
POST_DEPLOYMENT_VALIDATION = "Post-Deployment Validation"
PROGRESSIVE_ROLLOUT = "Progressive Rollout"


@dataclass
class RolloutStep:
    """Exposes a feature to a percentage of traffic."""

    feature: str
    percentage: int


@dataclass
class ReleaseSettings:
    """Release-specific inputs to the standard plan."""

    features: List[str] = field(default_factory=list)
    probe_targets: List[str] = field(default_factory=list)
    rollout_steps: List[RolloutStep] = field(default_factory=list)
    rollout_interval: float = 0.0


def rollout_flag(feature: str) -> str:
    """Flag holding the rollout percentage of a feature."""
    return f"{feature}_rollout_percentage"


def build_release_plan(
    collaborators: Collaborators,
    options: Optional[DeploymentOptions] = None,
    settings: Optional[ReleaseSettings] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> DeploymentPlan:
    """Build the standard release plan.

    Phases whose collaborator is not configured are left out.

    Args:
        collaborators: Systems the phases act upon
        options: Deployment options; decide the optional phases
        settings: Features, probe targets and rollout steps of this release
        sleep: Sleep used between progressive rollout steps

    Returns:
        DeploymentPlan in execution order
    """
    options = options or DeploymentOptions()
    settings = settings or ReleaseSettings()
    c = collaborators
    phases: List[Phase] = []

    if c.environment is not None and not options.skip_environment_step:
        phases.append(Phase(
            name=ENVIRONMENT_MIGRATION,
            description="Migrate environment configuration",
            critical=False,
            action=c.environment.migrate,
        ))

    if c.schema is not None:
        phases.append(Phase(
            name=SCHEMA_MIGRATION,
            description="Apply database schema migrations",
            critical=True,
            action=c.schema.apply,
            compensation=c.schema.revert,
            health_check=c.schema.validate,
        ))

    if c.builder is not None:
        phases.append(Phase(
            name=APPLICATION_BUILD,
            description="Build the application artifact",
            critical=True,
            action=c.builder.build,
        ))

    if c.service is not None:
        phases.append(Phase(
            name=SERVICE_CUTOVER,
            description="Switch live traffic to the new build",
            critical=True,
            action=c.service.cutover,
            downtime_window=True,
        ))

    if settings.features:
        phases.append(Phase(
            name=FEATURE_ACTIVATION,
            description=f"Enable {', '.join(settings.features)}",
            critical=True,
            action=lambda: _activate_features(c, settings.features),
            compensation=lambda: _deactivate_features(c, settings.features),
            health_check=_probe_all(c, settings.probe_targets) if c.probe and settings.probe_targets else None,
        ))

    if c.health is not None:
        phases.append(Phase(
            name=POST_DEPLOYMENT_VALIDATION,
            description="Run post-deployment health checks",
            critical=True,
            action=lambda: _validate(c),
        ))

    if options.progressive_rollout and settings.rollout_steps:
        phases.append(Phase(
            name=PROGRESSIVE_ROLLOUT,
            description="Gradually expose features to traffic",
            critical=False,
            action=lambda: _progressive_rollout(c, settings, sleep),
        ))

    logger.debug(f"Release plan: {[p.name for p in phases]}")
    return DeploymentPlan(phases)


def _activate_features(c: Collaborators, features: List[str]) -> None:
    for feature in features:
        c.flags.enable(feature)
        logger.info(f"Enabled feature {feature}")


def _deactivate_features(c: Collaborators, features: List[str]) -> None:
    for feature in reversed(features):
        c.flags.disable(feature)
        logger.info(f"Disabled feature {feature}")


def _probe_all(c: Collaborators, targets: List[str]) -> Callable[[], Outcome]:
    def check() -> Outcome:
        unhealthy = [t for t in targets if not c.probe.check(t)]
        if unhealthy:
            return Outcome.err(ErrorCategory.VALIDATION, f"Unhealthy targets: {', '.join(unhealthy)}")
        return Outcome.ok()
    return check


def _validate(c: Collaborators) -> Outcome:
    report = c.health.run_health_checks()
    if report.success:
        return Outcome.ok()
    return Outcome.err(ErrorCategory.VALIDATION, "; ".join(report.errors))


def _progressive_rollout(
    c: Collaborators, settings: ReleaseSettings, sleep: Callable[[float], None]
) -> Outcome:
    completed: List[Tuple[str, int]] = []
    for step in settings.rollout_steps:
        c.flags.set(rollout_flag(step.feature), str(step.percentage))
        logger.info(f"Rolled {step.feature} out to {step.percentage}%")
        completed.append((step.feature, step.percentage))

        if settings.rollout_interval:
            sleep(settings.rollout_interval)
        if c.probe is not None and settings.probe_targets:
            unhealthy = [t for t in settings.probe_targets if not c.probe.check(t)]
            if unhealthy:
                return Outcome.err(
                    ErrorCategory.VALIDATION,
                    f"Rollout halted at {step.feature} {step.percentage}%: unhealthy {', '.join(unhealthy)}",
                )
    return Outcome.ok(f"{len(completed)} rollout steps applied")
