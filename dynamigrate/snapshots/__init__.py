from dynamigrate.snapshots.store import Snapshot, SnapshotStore

__all__ = ["Snapshot", "SnapshotStore"]
