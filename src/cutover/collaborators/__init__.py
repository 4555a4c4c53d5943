"""Interfaces and implementations of the systems a deployment acts upon."""

from .base import (
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
from .bundle import Collaborators
from .checks import CheckResult, NamedCheck
from .flags import FileFeatureFlagStore, InMemoryFeatureFlagStore
from .health import HealthChecker, HealthReport, HttpHealthProbe
from .preflight import PreflightChecker, PreflightReport

__all__ = [
    "ArtifactBuilder",
    "DataRestorer",
    "DependencyInstaller",
    "EnvironmentMigrator",
    "FeatureFlagStore",
    "HealthProbe",
    "SchemaMigrator",
    "ServiceController",
    "VersionControl",
    "Collaborators",
    "CheckResult",
    "NamedCheck",
    "FileFeatureFlagStore",
    "InMemoryFeatureFlagStore",
    "HealthChecker",
    "HealthReport",
    "HttpHealthProbe",
    "PreflightChecker",
    "PreflightReport",
]
