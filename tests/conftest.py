"""Shared pytest fixtures for cutover tests.

Provides:
- A fake monotonic clock whose sleep advances time instantly
- In-memory collaborators sharing one call journal
- A snapshot service rooted in a temporary project
"""

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import List

import pytest

from cutover.collaborators import Collaborators, InMemoryFeatureFlagStore
from cutover.collaborators.memory import (
    InMemoryArtifactBuilder,
    InMemoryDataRestorer,
    InMemoryDependencyInstaller,
    InMemoryEnvironmentMigrator,
    InMemorySchemaMigrator,
    InMemoryServiceController,
    InMemoryVersionControl,
    StaticHealthProbe,
)
from cutover.observer import EventLog
from cutover.snapshot import SnapshotService


class FakeClock:
    """Monotonic clock in seconds that only moves when told to."""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class FakeWallClock:
    """UTC wall clock for snapshot timestamps."""

    def __init__(self, start: datetime = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current += timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def wall_clock() -> FakeWallClock:
    return FakeWallClock()


@pytest.fixture
def event_log(clock) -> EventLog:
    log = EventLog(clock=clock)
    yield log
    log.close()


@pytest.fixture
def journal() -> List[str]:
    """Ordered record of every collaborator call."""
    return []


@pytest.fixture
def collaborators(journal) -> Collaborators:
    return Collaborators(
        flags=InMemoryFeatureFlagStore(),
        environment=InMemoryEnvironmentMigrator(journal=journal),
        schema=InMemorySchemaMigrator(journal=journal),
        builder=InMemoryArtifactBuilder(journal=journal),
        service=InMemoryServiceController(journal=journal),
        probe=StaticHealthProbe(journal=journal),
        data=InMemoryDataRestorer(journal=journal),
        vcs=InMemoryVersionControl(revision="abc1234", journal=journal),
        deps=InMemoryDependencyInstaller(journal=journal),
    )


@pytest.fixture
def project_dir(tmp_path) -> Path:
    """A small project with config and manifest files to snapshot."""
    project = tmp_path / "project"
    project.mkdir()
    (project / ".env").write_text("API_URL=https://example.test\n", encoding="utf-8")
    (project / "package.json").write_text('{"name": "dashboard"}\n', encoding="utf-8")
    return project


@pytest.fixture
def snapshots(tmp_path, project_dir, collaborators, wall_clock) -> SnapshotService:
    return SnapshotService(
        str(tmp_path / "snapshots"),
        project_dir=str(project_dir),
        vcs=collaborators.vcs,
        data=collaborators.data,
        now=wall_clock,
    )
