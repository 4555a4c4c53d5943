"""Deployment orchestration, compensation and rollback."""

from cutover.orchestrator.compensation import CompensationPass, CompensationResult
from cutover.orchestrator.executor import DeploymentOrchestrator, ExecutionResult
from cutover.orchestrator.options import DeploymentOptions, RollbackOptions
from cutover.orchestrator.outcome import Outcome
from cutover.orchestrator.plan import ReleaseSettings, RolloutStep, build_release_plan
from cutover.orchestrator.rollback import RollbackPipeline, RollbackResult, env_confirmation
from cutover.orchestrator.runner import ProgressCallback, StepReport, StepRunner, StepStatus
from cutover.orchestrator.steps import DeploymentPlan, Phase, Step

__all__ = [
    'CompensationPass',
    'CompensationResult',
    'DeploymentOrchestrator',
    'ExecutionResult',
    'DeploymentOptions',
    'RollbackOptions',
    'Outcome',
    'ReleaseSettings',
    'RolloutStep',
    'build_release_plan',
    'RollbackPipeline',
    'RollbackResult',
    'env_confirmation',
    'ProgressCallback',
    'StepReport',
    'StepRunner',
    'StepStatus',
    'DeploymentPlan',
    'Phase',
    'Step',
]
