"""Interfaces for the external systems a deployment or rollback acts upon."""

from abc import ABC, abstractmethod
from typing import Dict, Optional


class SchemaMigrator(ABC):
    """Applies and reverts database schema changes."""

    @abstractmethod
    def apply(self) -> None:
        """Apply pending schema migrations.

        Raises:
            DeploymentError: If the migration tool fails
        """
        pass

    @abstractmethod
    def revert(self) -> None:
        """Revert the migrations applied by the last :meth:`apply`."""
        pass

    def validate(self) -> bool:
        """Check that the schema is usable after a migration.

        Returns:
            True if the schema validates
        """
        return True


class ArtifactBuilder(ABC):
    """Builds the deployable application artifact."""

    @abstractmethod
    def build(self) -> None:
        pass


class ServiceController(ABC):
    """Controls the running service."""

    @abstractmethod
    def cutover(self) -> None:
        """Swap live traffic onto the new build. This is the downtime window."""
        pass

    @abstractmethod
    def stop(self) -> None:
        pass

    @abstractmethod
    def start(self) -> None:
        pass


class EnvironmentMigrator(ABC):
    """Rewrites environment configuration for a new release."""

    @abstractmethod
    def migrate(self) -> None:
        pass


class FeatureFlagStore(ABC):
    """Process-wide feature flags, last writer wins."""

    @abstractmethod
    def get(self, name: str) -> Optional[str]:
        pass

    @abstractmethod
    def set(self, name: str, value: str) -> None:
        pass

    @abstractmethod
    def snapshot(self) -> Dict[str, str]:
        """Return a copy of all flags."""
        pass

    def enable(self, name: str) -> None:
        self.set(name, "true")

    def disable(self, name: str) -> None:
        self.set(name, "false")

    def is_enabled(self, name: str) -> bool:
        return (self.get(name) or "").lower() in ("1", "true", "yes", "on")


class HealthProbe(ABC):
    """Reports whether a target is healthy."""

    @abstractmethod
    def check(self, target: str) -> bool:
        """Probe a target.

        Args:
            target: Endpoint path, URL or symbolic name understood by the probe

        Returns:
            True if the target is healthy
        """
        pass


class DataRestorer(ABC):
    """Restores data from a backup and verifies the result."""

    @abstractmethod
    def restore(self, ref: str) -> None:
        """Restore data from a backup reference (usually a dump file path)."""
        pass

    @abstractmethod
    def verify(self) -> bool:
        """Independent read probe run after a restore."""
        pass

    def backup(self, directory: str) -> Optional[str]:
        """Dump current data into a directory.

        Returns:
            Path of the dump, or None when this restorer cannot take backups
        """
        return None

    def is_available(self) -> bool:
        """Whether the restore tooling is reachable."""
        return True


class VersionControl(ABC):
    """Source revision management."""

    @abstractmethod
    def revert_to(self, ref: str) -> None:
        pass

    @abstractmethod
    def current_revision(self) -> Optional[str]:
        pass

    def is_available(self) -> bool:
        return True


class DependencyInstaller(ABC):
    """Reinstalls dependencies from a captured manifest."""

    @abstractmethod
    def restore(self, manifest: Dict[str, str]) -> None:
        """Restore dependencies.

        Args:
            manifest: Manifest and lock file contents keyed by relative path
        """
        pass

    def is_available(self) -> bool:
        return True
