"""Configuration parsing and validation."""

from .models import (
    CommandsConfig,
    CutoverConfig,
    DatabaseConfig,
    DeployConfig,
    HealthConfig,
    LoggingConfig,
    PreflightConfig,
    ProjectConfig,
    RolloutStepConfig,
    SnapshotConfig,
)
from .parser import DEFAULT_CONFIG_FILE, Config, ConfigValidationError

__all__ = [
    "Config",
    "ConfigValidationError",
    "DEFAULT_CONFIG_FILE",
    "CommandsConfig",
    "CutoverConfig",
    "DatabaseConfig",
    "DeployConfig",
    "HealthConfig",
    "LoggingConfig",
    "PreflightConfig",
    "ProjectConfig",
    "RolloutStepConfig",
    "SnapshotConfig",
]
