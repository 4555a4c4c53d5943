"""In-memory collaborators that record every call instead of touching real systems."""

from typing import Callable, Dict, List, Optional

from cutover.collaborators.base import (
    ArtifactBuilder,
    DataRestorer,
    DependencyInstaller,
    EnvironmentMigrator,
    HealthProbe,
    SchemaMigrator,
    ServiceController,
    VersionControl,
)


class RecordingCollaborator:
    """Records method calls locally and, optionally, in a journal shared across fakes."""

    label = "collaborator"

    def __init__(self, journal: Optional[List[str]] = None):
        self.calls: List[str] = []
        self.journal = journal

    def _record(self, method: str) -> None:
        self.calls.append(method)
        if self.journal is not None:
            self.journal.append(f"{self.label}.{method}")


class InMemoryEnvironmentMigrator(RecordingCollaborator, EnvironmentMigrator):
    label = "environment"

    def __init__(self, error: Optional[Exception] = None, journal: Optional[List[str]] = None):
        super().__init__(journal)
        self.error = error

    def migrate(self) -> None:
        self._record("migrate")
        if self.error:
            raise self.error


class InMemorySchemaMigrator(RecordingCollaborator, SchemaMigrator):
    label = "schema"

    def __init__(
        self,
        apply_error: Optional[Exception] = None,
        revert_error: Optional[Exception] = None,
        valid: bool = True,
        journal: Optional[List[str]] = None,
    ):
        super().__init__(journal)
        self.apply_error = apply_error
        self.revert_error = revert_error
        self.valid = valid
        self.applied = False

    def apply(self) -> None:
        self._record("apply")
        if self.apply_error:
            raise self.apply_error
        self.applied = True

    def revert(self) -> None:
        self._record("revert")
        if self.revert_error:
            raise self.revert_error
        self.applied = False

    def validate(self) -> bool:
        self._record("validate")
        return self.valid


class InMemoryArtifactBuilder(RecordingCollaborator, ArtifactBuilder):
    label = "builder"

    def __init__(self, error: Optional[Exception] = None, journal: Optional[List[str]] = None):
        super().__init__(journal)
        self.error = error

    def build(self) -> None:
        self._record("build")
        if self.error:
            raise self.error


class InMemoryServiceController(RecordingCollaborator, ServiceController):
    """Service controller whose cutover can run a hook, e.g. to advance a fake clock."""

    label = "service"

    def __init__(
        self,
        on_cutover: Optional[Callable[[], None]] = None,
        cutover_error: Optional[Exception] = None,
        start_error: Optional[Exception] = None,
        journal: Optional[List[str]] = None,
    ):
        super().__init__(journal)
        self.on_cutover = on_cutover
        self.cutover_error = cutover_error
        self.start_error = start_error
        self.running = True

    def cutover(self) -> None:
        self._record("cutover")
        if self.on_cutover:
            self.on_cutover()
        if self.cutover_error:
            raise self.cutover_error

    def stop(self) -> None:
        self._record("stop")
        self.running = False

    def start(self) -> None:
        self._record("start")
        if self.start_error:
            raise self.start_error
        self.running = True


class StaticHealthProbe(RecordingCollaborator, HealthProbe):
    """Answers from a fixed table of target results."""

    label = "probe"

    def __init__(
        self,
        results: Optional[Dict[str, bool]] = None,
        default: bool = True,
        journal: Optional[List[str]] = None,
    ):
        super().__init__(journal)
        self.results = dict(results or {})
        self.default = default

    def check(self, target: str) -> bool:
        self._record(f"check:{target}")
        return self.results.get(target, self.default)


class InMemoryDataRestorer(RecordingCollaborator, DataRestorer):
    label = "data"

    def __init__(
        self,
        available: bool = True,
        verify_result: bool = True,
        error: Optional[Exception] = None,
        journal: Optional[List[str]] = None,
    ):
        super().__init__(journal)
        self.available = available
        self.verify_result = verify_result
        self.error = error
        self.restored_from: Optional[str] = None

    def is_available(self) -> bool:
        return self.available

    def backup(self, directory: str) -> Optional[str]:
        self._record("backup")
        return f"{directory}/data.dump"

    def restore(self, ref: str) -> None:
        self._record("restore")
        if self.error:
            raise self.error
        self.restored_from = ref

    def verify(self) -> bool:
        self._record("verify")
        return self.verify_result


class InMemoryVersionControl(RecordingCollaborator, VersionControl):
    label = "vcs"

    def __init__(
        self,
        revision: Optional[str] = "0000000",
        available: bool = True,
        error: Optional[Exception] = None,
        journal: Optional[List[str]] = None,
    ):
        super().__init__(journal)
        self.revision = revision
        self.available = available
        self.error = error

    def is_available(self) -> bool:
        return self.available

    def current_revision(self) -> Optional[str]:
        return self.revision

    def revert_to(self, ref: str) -> None:
        self._record("revert_to")
        if self.error:
            raise self.error
        self.revision = ref


class InMemoryDependencyInstaller(RecordingCollaborator, DependencyInstaller):
    label = "deps"

    def __init__(
        self,
        available: bool = True,
        error: Optional[Exception] = None,
        journal: Optional[List[str]] = None,
    ):
        super().__init__(journal)
        self.available = available
        self.error = error
        self.restored_manifest: Optional[Dict[str, str]] = None

    def is_available(self) -> bool:
        return self.available

    def restore(self, manifest: Dict[str, str]) -> None:
        self._record("restore")
        if self.error:
            raise self.error
        self.restored_manifest = dict(manifest)
