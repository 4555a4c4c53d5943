"""Bundle of collaborators handed to plan builders and the rollback pipeline."""

from dataclasses import dataclass
from typing import Optional

from cutover.collaborators.base import (
    ArtifactBuilder,
    DataRestorer,
    DependencyInstaller,
    EnvironmentMigrator,
    FeatureFlagStore,
    HealthProbe,
    SchemaMigrator,
    ServiceController,
    VersionControl,
)
from cutover.collaborators.health import HealthChecker
from cutover.collaborators.preflight import PreflightChecker


@dataclass
class Collaborators:
    """Every external system the engine may touch. Unused slots stay None."""

    flags: FeatureFlagStore
    environment: Optional[EnvironmentMigrator] = None
    schema: Optional[SchemaMigrator] = None
    builder: Optional[ArtifactBuilder] = None
    service: Optional[ServiceController] = None
    probe: Optional[HealthProbe] = None
    data: Optional[DataRestorer] = None
    vcs: Optional[VersionControl] = None
    deps: Optional[DependencyInstaller] = None
    preflight: Optional[PreflightChecker] = None
    health: Optional[HealthChecker] = None
