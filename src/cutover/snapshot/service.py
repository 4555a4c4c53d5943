"""Snapshot capture, resolution and retention."""

import shutil
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, Union

from pydantic import ValidationError as PydanticValidationError

from cutover.collaborators.base import DataRestorer, VersionControl
from cutover.snapshot.models import SNAPSHOT_FILENAME, Snapshot, SnapshotRef
from cutover.utils.errors import DeploymentError, SnapshotError
from cutover.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_CONFIG_FILES = (".env.local", ".env.production", ".env")
DEFAULT_MANIFEST_FILES = ("package.json", "package-lock.json", "pnpm-lock.yaml")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _id_order(snapshot_id: str) -> Tuple[str, int]:
    """Order ids by timestamp, then numerically by the same-instant suffix."""
    base, _, suffix = snapshot_id.partition("-")
    return base, int(suffix) if suffix.isdigit() else 0


class SnapshotService:
    """Captures point-in-time snapshots and reads them back for recovery.

    Each snapshot lives in its own directory under ``snapshot_dir`` and is
    described entirely by its ``snapshot.json``, so it can be resolved without
    any state from the run that captured it.
    """

    def __init__(
        self,
        snapshot_dir: str,
        project_dir: str = ".",
        config_files: Iterable[str] = DEFAULT_CONFIG_FILES,
        manifest_files: Iterable[str] = DEFAULT_MANIFEST_FILES,
        vcs: Optional[VersionControl] = None,
        data: Optional[DataRestorer] = None,
        now: Callable[[], datetime] = _utcnow,
    ):
        """Initialize the snapshot service.

        Args:
            snapshot_dir: Root directory holding one directory per snapshot
            project_dir: Directory that config and manifest paths are relative to
            config_files: Configuration files to capture when present
            manifest_files: Dependency manifest and lock files to capture when present
            vcs: Version control used to record the current revision
            data: Data restorer used to take a data dump alongside the snapshot
            now: Source of the capture timestamp
        """
        self.snapshot_dir = Path(snapshot_dir)
        self.project_dir = Path(project_dir)
        self.config_files = list(config_files)
        self.manifest_files = list(manifest_files)
        self.vcs = vcs
        self.data = data
        self.now = now
        self.logger = get_logger(__name__)

    def capture(
        self, options: Optional[Dict[str, Any]] = None, include_data: bool = True
    ) -> SnapshotRef:
        """Capture a new snapshot.

        Args:
            options: Options of the run requesting the snapshot, stored verbatim
            include_data: Whether to ask the data restorer for a dump

        Returns:
            Reference to the stored snapshot

        Raises:
            SnapshotError: If the snapshot cannot be written
        """
        timestamp = self.now()
        snapshot_id = self._unique_id(timestamp)
        location = self.snapshot_dir / snapshot_id

        self.logger.info(f"Capturing snapshot {snapshot_id}")
        try:
            location.mkdir(parents=True, exist_ok=False)
        except OSError as e:
            raise SnapshotError(f"Failed to create snapshot directory {location}: {e}", cause=e) from e

        try:
            data_backup = self._capture_data(location) if include_data else None
            snapshot = Snapshot(
                snapshot_id=snapshot_id,
                timestamp=timestamp,
                config_files=self._read_files(self.config_files),
                dependency_manifest=self._read_files(self.manifest_files),
                revision_id=self._current_revision(),
                data_backup=data_backup,
                captured_options=dict(options or {}),
            )
            self._write_atomic(location / SNAPSHOT_FILENAME, snapshot.model_dump_json(indent=2))
        except DeploymentError as e:
            shutil.rmtree(location, ignore_errors=True)
            raise SnapshotError(f"Failed to capture snapshot: {e.message}", cause=e) from e
        except (OSError, ValueError) as e:
            shutil.rmtree(location, ignore_errors=True)
            raise SnapshotError(f"Failed to capture snapshot: {e}", cause=e) from e
        except Exception:
            shutil.rmtree(location, ignore_errors=True)
            raise

        self.logger.info(
            f"Snapshot {snapshot_id} captured: {len(snapshot.config_files)} config files, "
            f"{len(snapshot.dependency_manifest)} manifest files, revision {snapshot.revision_id}"
        )
        return SnapshotRef(snapshot_id=snapshot_id, location=str(location))

    def resolve(self, ref: Union[SnapshotRef, str]) -> Snapshot:
        """Load a snapshot from a reference, a snapshot id or a directory path.

        Raises:
            SnapshotError: If the snapshot does not exist or cannot be parsed
        """
        path = self._snapshot_file(ref)
        if not path.exists():
            raise SnapshotError(f"Snapshot not found: {ref}")

        try:
            return Snapshot.model_validate_json(path.read_text(encoding="utf-8"))
        except PydanticValidationError as e:
            raise SnapshotError(f"Snapshot {ref} is corrupted: {e}", cause=e) from e
        except OSError as e:
            raise SnapshotError(f"Failed to read snapshot {ref}: {e}", cause=e) from e

    def exists(self, ref: Union[SnapshotRef, str]) -> bool:
        return self._snapshot_file(ref).exists()

    def list_snapshots(self) -> List[SnapshotRef]:
        """List stored snapshots, newest first."""
        if not self.snapshot_dir.exists():
            return []

        refs = [
            SnapshotRef(snapshot_id=entry.name, location=str(entry))
            for entry in self.snapshot_dir.iterdir()
            if (entry / SNAPSHOT_FILENAME).is_file()
        ]
        return sorted(refs, key=lambda r: _id_order(r.snapshot_id), reverse=True)

    def latest(self) -> Optional[SnapshotRef]:
        snapshots = self.list_snapshots()
        return snapshots[0] if snapshots else None

    def cleanup(self, max_age_days: int) -> List[str]:
        """Delete snapshots older than ``max_age_days``.

        The newest snapshot is always kept so a rollback target remains.

        Returns:
            IDs of the deleted snapshots
        """
        cutoff = self.now() - timedelta(days=max_age_days)
        deleted = []

        for ref in self.list_snapshots()[1:]:
            try:
                snapshot = self.resolve(ref)
            except SnapshotError as e:
                self.logger.warning(f"Skipping unreadable snapshot {ref.snapshot_id}: {e.message}")
                continue

            if snapshot.timestamp < cutoff:
                shutil.rmtree(ref.location)
                deleted.append(ref.snapshot_id)
                self.logger.info(f"Deleted snapshot {ref.snapshot_id}")

        return deleted

    def _unique_id(self, timestamp: datetime) -> str:
        base = timestamp.astimezone(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")
        snapshot_id = base
        suffix = 1
        while (self.snapshot_dir / snapshot_id).exists():
            snapshot_id = f"{base}-{suffix}"
            suffix += 1
        return snapshot_id

    def _snapshot_file(self, ref: Union[SnapshotRef, str]) -> Path:
        if isinstance(ref, SnapshotRef):
            return Path(ref.location) / SNAPSHOT_FILENAME
        candidate = Path(ref)
        if candidate.name == SNAPSHOT_FILENAME:
            return candidate
        if candidate.is_dir():
            return candidate / SNAPSHOT_FILENAME
        return self.snapshot_dir / ref / SNAPSHOT_FILENAME

    def _read_files(self, names: Iterable[str]) -> Dict[str, str]:
        captured = {}
        for name in names:
            path = self.project_dir / name
            if path.is_file():
                captured[name] = path.read_text(encoding="utf-8")
            else:
                self.logger.debug(f"{name} not present, not captured")
        return captured

    def _current_revision(self) -> Optional[str]:
        if self.vcs is None or not self.vcs.is_available():
            self.logger.warning("Version control unavailable, revision not recorded")
            return None
        try:
            return self.vcs.current_revision()
        except DeploymentError as e:
            self.logger.warning(f"Could not read current revision: {e.message}")
            return None

    def _capture_data(self, location: Path) -> Optional[str]:
        if self.data is None:
            return None
        return self.data.backup(str(location))

    @staticmethod
    def _write_atomic(path: Path, content: str) -> None:
        tmp_path = path.with_suffix(path.suffix + ".tmp")
        tmp_path.write_text(content, encoding="utf-8")
        tmp_path.replace(path)

