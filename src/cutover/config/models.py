"""Pydantic models for configuration schema."""

from typing import Dict, List, Optional
from pydantic import BaseModel, Field, field_validator, model_validator


class ProjectConfig(BaseModel):
    """Project identification."""

    name: str = Field(..., min_length=1, description="Project name")
    working_dir: str = Field(".", description="Directory commands run in")


class RolloutStepConfig(BaseModel):
    """One progressive rollout step."""

    feature: str = Field(..., min_length=1)
    percentage: int = Field(..., ge=0, le=100)


class DeployConfig(BaseModel):
    """Deployment defaults."""

    max_downtime_ms: int = Field(30000, gt=0, description="Downtime budget for the cutover phase")
    dry_run_delay_ms: int = Field(100, ge=0, description="Simulated duration of a phase under dry run")
    features: List[str] = Field(default_factory=list, description="Feature flags enabled on activation")
    rollout: List[RolloutStepConfig] = Field(default_factory=list)
    rollout_interval_seconds: float = Field(0.0, ge=0)
    flags_file: str = Field(".cutover/flags.yaml", description="YAML file backing the feature flag store")

    @field_validator("rollout")
    @classmethod
    def validate_rollout(cls, v: List[RolloutStepConfig]) -> List[RolloutStepConfig]:
        """Percentages must not decrease for the same feature."""
        last: Dict[str, int] = {}
        for step in v:
            if step.percentage < last.get(step.feature, 0):
                raise ValueError(
                    f"Rollout percentage for '{step.feature}' decreases from "
                    f"{last[step.feature]} to {step.percentage}"
                )
            last[step.feature] = step.percentage
        return v


class CommandsConfig(BaseModel):
    """Shell commands driving the external tools."""

    env_migrate: Optional[str] = None
    migrate: Optional[str] = Field(None, description="e.g. 'npx prisma migrate deploy'")
    migrate_revert: Optional[str] = None
    migrate_validate: Optional[str] = None
    build: Optional[str] = Field(None, description="e.g. 'pnpm build'")
    stop: Optional[str] = None
    start: Optional[str] = None
    restart: Optional[str] = None
    install: Optional[str] = Field(None, description="e.g. 'pnpm install --frozen-lockfile'")

    @model_validator(mode="after")
    def validate_service_commands(self):
        """Service control needs restart, or both stop and start."""
        if (self.stop or self.start) and not self.restart and not (self.stop and self.start):
            raise ValueError("Both 'stop' and 'start' are required unless 'restart' is given")
        return self


class DatabaseConfig(BaseModel):
    """Database connection for data backup and restore."""

    url_env: str = Field("DATABASE_URL", description="Environment variable holding the DSN")
    enabled: bool = True


class HealthConfig(BaseModel):
    """HTTP health checks."""

    base_url: Optional[str] = Field(None, description="e.g. 'http://localhost:3000'")
    endpoints: Dict[str, List[int]] = Field(
        default_factory=dict, description="Endpoint path mapped to accepted status codes"
    )
    timeout_seconds: float = Field(5.0, gt=0)
    retries: int = Field(5, ge=0)

    @model_validator(mode="after")
    def validate_endpoints(self):
        if self.endpoints and not self.base_url:
            raise ValueError("'base_url' is required when endpoints are configured")
        return self


class SnapshotConfig(BaseModel):
    """Where and what to snapshot."""

    directory: str = Field(".cutover/snapshots")
    config_files: List[str] = Field(default_factory=lambda: [".env.local", ".env.production", ".env"])
    manifest_files: List[str] = Field(
        default_factory=lambda: ["package.json", "package-lock.json", "pnpm-lock.yaml"]
    )
    retention_days: int = Field(30, ge=1)


class PreflightConfig(BaseModel):
    """Pre-deployment checks."""

    required_env: List[str] = Field(default_factory=list)
    required_tools: List[str] = Field(default_factory=list)
    warn_env: List[str] = Field(default_factory=list, description="Variables whose absence is only a warning")


class LoggingConfig(BaseModel):
    """Log destinations."""

    directory: Optional[str] = Field(None, description="Directory for JSON log and event log files")
    level: str = Field("info", pattern="^(debug|info|warning|error|critical)$")


class CutoverConfig(BaseModel):
    """Complete configuration file."""

    project: ProjectConfig
    deploy: DeployConfig = Field(default_factory=DeployConfig)
    commands: CommandsConfig = Field(default_factory=CommandsConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    health: HealthConfig = Field(default_factory=HealthConfig)
    snapshot: SnapshotConfig = Field(default_factory=SnapshotConfig)
    preflight: PreflightConfig = Field(default_factory=PreflightConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
