"""Snapshot service tests."""

import json

import pytest

from cutover.collaborators.memory import InMemoryVersionControl
from cutover.snapshot import SnapshotService
from cutover.snapshot.models import SNAPSHOT_FILENAME
from cutover.utils.errors import InfrastructureError, SnapshotError


def test_capture_writes_self_describing_snapshot(snapshots, wall_clock):
    ref = snapshots.capture(options={"dry_run": False})

    with open(f"{ref.location}/{SNAPSHOT_FILENAME}", encoding="utf-8") as f:
        data = json.load(f)

    assert data["format_version"] == 1
    assert data["snapshot_id"] == ref.snapshot_id
    assert data["revision_id"] == "abc1234"
    assert data["config_files"] == {".env": "API_URL=https://example.test\n"}
    assert data["dependency_manifest"] == {"package.json": '{"name": "dashboard"}\n'}
    assert data["captured_options"] == {"dry_run": False}
    assert data["data_backup"].endswith("data.dump")


def test_resolve_reads_back_without_the_capturing_service(tmp_path, snapshots):
    ref = snapshots.capture()

    fresh = SnapshotService(str(tmp_path / "snapshots"))
    by_ref = fresh.resolve(ref)
    by_id = fresh.resolve(ref.snapshot_id)
    by_path = fresh.resolve(ref.location)

    assert by_ref == by_id == by_path
    assert by_ref.revision_id == "abc1234"


def test_snapshot_is_immutable(snapshots):
    snapshot = snapshots.resolve(snapshots.capture())

    with pytest.raises(Exception):
        snapshot.revision_id = "changed"


def test_missing_snapshot_raises(snapshots):
    with pytest.raises(SnapshotError, match="not found"):
        snapshots.resolve("nope")
    assert snapshots.exists("nope") is False


def test_corrupted_snapshot_raises(snapshots):
    ref = snapshots.capture()
    with open(f"{ref.location}/{SNAPSHOT_FILENAME}", "w", encoding="utf-8") as f:
        f.write("{not json")

    with pytest.raises(SnapshotError, match="corrupted"):
        snapshots.resolve(ref)


def test_missing_vcs_records_no_revision(tmp_path, project_dir):
    service = SnapshotService(
        str(tmp_path / "snaps"),
        project_dir=str(project_dir),
        vcs=InMemoryVersionControl(available=False),
    )

    snapshot = service.resolve(service.capture())

    assert snapshot.revision_id is None
    assert snapshot.data_backup is None


def test_failed_data_dump_removes_partial_snapshot(tmp_path, project_dir):
    class FailingRestorer:
        def backup(self, directory):
            raise InfrastructureError("pg_dump failed")

    service = SnapshotService(str(tmp_path / "snaps"), project_dir=str(project_dir), data=FailingRestorer())

    with pytest.raises(SnapshotError, match="pg_dump failed"):
        service.capture()
    assert service.list_snapshots() == []


def test_undecodable_config_file_removes_partial_snapshot(tmp_path, snapshots, project_dir, journal):
    (project_dir / ".env").write_bytes(b"\xff\xfeKEY=1")

    with pytest.raises(SnapshotError, match="Failed to capture snapshot"):
        snapshots.capture()
    assert "data.backup" in journal
    assert list((tmp_path / "snapshots").iterdir()) == []


def test_capture_without_data(snapshots, journal):
    ref = snapshots.capture(include_data=False)

    assert snapshots.resolve(ref).data_backup is None
    assert "data.backup" not in journal


def test_list_and_latest_are_newest_first(snapshots, wall_clock):
    first = snapshots.capture()
    wall_clock.advance(minutes=5)
    second = snapshots.capture()

    assert [r.snapshot_id for r in snapshots.list_snapshots()] == [second.snapshot_id, first.snapshot_id]
    assert snapshots.latest() == second


def test_same_instant_captures_get_distinct_ids(snapshots):
    first = snapshots.capture()
    second = snapshots.capture()

    assert first.snapshot_id != second.snapshot_id
    assert snapshots.latest() == second


def test_latest_orders_same_instant_suffixes_numerically(snapshots):
    refs = [snapshots.capture(include_data=False) for _ in range(12)]

    assert refs[-1].snapshot_id.endswith("-11")
    assert snapshots.latest() == refs[-1]
    assert snapshots.list_snapshots() == list(reversed(refs))


def test_latest_without_snapshots(tmp_path):
    assert SnapshotService(str(tmp_path / "empty")).latest() is None


def test_cleanup_deletes_old_snapshots_but_keeps_newest(snapshots, wall_clock):
    old = snapshots.capture()
    wall_clock.advance(days=40)
    recent = snapshots.capture()
    wall_clock.advance(days=40)

    deleted = snapshots.cleanup(max_age_days=30)

    assert deleted == [old.snapshot_id]
    assert [r.snapshot_id for r in snapshots.list_snapshots()] == [recent.snapshot_id]


def test_summary_lists_captured_files(snapshots):
    summary = snapshots.resolve(snapshots.capture()).summary()

    assert summary["config_files"] == [".env"]
    assert summary["dependency_manifest"] == ["package.json"]
