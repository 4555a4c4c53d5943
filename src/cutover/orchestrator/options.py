"""Run options. Immutable for the lifetime of one run."""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class DeploymentOptions(BaseModel):
    """Options controlling one ``deploy()`` run."""

    model_config = ConfigDict(frozen=True)

    skip_preflight: bool = Field(False, description="Skip pre-deployment checks")
    skip_backup: bool = Field(False, description="Skip the pre-deployment snapshot")
    skip_environment_step: bool = Field(False, description="Leave the environment migration phase out")
    dry_run: bool = Field(False, description="Simulate phases without invoking collaborators")
    compensate_on_failure: bool = Field(True, description="Run the compensation pass on critical failure")
    progressive_rollout: bool = Field(True, description="Include the progressive rollout phase")
    max_downtime_ms: float = Field(30000, gt=0, description="Budget for the downtime window")


class RollbackOptions(BaseModel):
    """Options controlling one ``rollback()`` run."""

    model_config = ConfigDict(frozen=True)

    snapshot_ref: Optional[str] = Field(None, description="Snapshot id or path; latest when omitted")
    backup_path: Optional[str] = Field(None, description="Data dump to restore instead of the snapshot's")
    restore_data: bool = Field(True, description="Restore data from the backup")
    restore_code: bool = Field(True, description="Revert code to the snapshot revision")
    restore_config: bool = Field(True, description="Restore captured configuration files")
    skip_confirmation: bool = Field(False, description="Do not require an explicit confirmation")
    dry_run: bool = Field(False, description="Simulate steps without invoking collaborators")
