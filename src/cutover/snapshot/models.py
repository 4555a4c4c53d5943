"""Snapshot data models."""

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

SNAPSHOT_FORMAT_VERSION = 1
SNAPSHOT_FILENAME = "snapshot.json"


class SnapshotRef(BaseModel):
    """Reference to a stored snapshot."""

    model_config = ConfigDict(frozen=True)

    snapshot_id: str = Field(..., description="Unique snapshot identifier")
    location: str = Field(..., description="Directory holding the snapshot")

    def __str__(self) -> str:
        return self.location


class Snapshot(BaseModel):
    """Point-in-time bundle used to recover a known-good state. Write-once."""

    model_config = ConfigDict(frozen=True)

    format_version: int = Field(SNAPSHOT_FORMAT_VERSION, description="On-disk format version")
    snapshot_id: str = Field(..., description="Unique snapshot identifier")
    timestamp: datetime = Field(..., description="Capture time (UTC)")
    config_files: Dict[str, str] = Field(
        default_factory=dict, description="Configuration file contents keyed by relative path"
    )
    dependency_manifest: Dict[str, str] = Field(
        default_factory=dict, description="Manifest and lock file contents keyed by relative path"
    )
    revision_id: Optional[str] = Field(None, description="Source revision at capture time")
    data_backup: Optional[str] = Field(None, description="Path of the data dump, if one was taken")
    captured_options: Dict[str, Any] = Field(
        default_factory=dict, description="Options of the run that captured the snapshot"
    )

    def summary(self) -> Dict[str, Any]:
        """Short description for listings."""
        return {
            "snapshot_id": self.snapshot_id,
            "timestamp": self.timestamp.isoformat(),
            "revision_id": self.revision_id,
            "config_files": sorted(self.config_files),
            "dependency_manifest": sorted(self.dependency_manifest),
            "data_backup": self.data_backup,
        }
