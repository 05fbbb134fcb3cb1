"""Snapshooter - scheduled snapshots with bucketed retention."""

from .app import Snapshooter, SnapshooterApp
from .repository import (
    SNAPSHOT_FORMAT,
    DryRunSnapshotRepository,
    ElasticsearchSnapshotRepository,
    SnapshotRepository,
    parse_snapshot_name,
    snapshot_name,
)

__all__ = [
    "SNAPSHOT_FORMAT",
    "DryRunSnapshotRepository",
    "ElasticsearchSnapshotRepository",
    "SnapshotRepository",
    "Snapshooter",
    "SnapshooterApp",
    "parse_snapshot_name",
    "snapshot_name",
]
