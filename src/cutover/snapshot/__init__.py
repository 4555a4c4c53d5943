"""Snapshot capture and resolution for recovery."""

from .models import Snapshot, SnapshotRef
from .service import SnapshotService

__all__ = [
    "Snapshot",
    "SnapshotRef",
    "SnapshotService",
]
