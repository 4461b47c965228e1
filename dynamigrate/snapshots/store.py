"""On-disk snapshots of table contents."""

import json
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from dynamigrate.core.exceptions import (
    SnapshotFormatError,
    SnapshotNotFoundError,
    TableNotFoundError,
)
from dynamigrate.core.tables import TableClient

logger = logging.getLogger(__name__)

BACKUP_DIR_PREFIX = "dynamodb-backup-"
BACKUP_DIR_FORMAT = "%Y%m%d_%H%M%S"


@dataclass
class Snapshot:
    """A point-in-time capture of one table's records.

    Attributes:
        table_name: The table that was captured
        captured_at: When the capture finished
        item_count: Declared number of records
        path: File the snapshot lives in
        items: The records, in DynamoDB attribute value format
    """

    table_name: str
    captured_at: datetime | None
    item_count: int
    path: Path
    items: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict:
        """Convert to the JSON document written to disk."""
        return {
            "TableName": self.table_name,
            "CapturedAt": self.captured_at.isoformat() if self.captured_at else None,
            "Count": self.item_count,
            "ScannedCount": self.item_count,
            "Items": self.items,
        }

    @classmethod
    def from_dict(cls, data: dict, path: Path) -> "Snapshot":
        """Create from a JSON document.

        Plain ``aws dynamodb scan`` dumps are accepted too; the table name
        then comes from the file name.
        """
        if not isinstance(data, dict) or not isinstance(data.get("Items", []), list):
            raise SnapshotFormatError(str(path), "expected an object with an 'Items' list")

        items = data.get("Items", [])
        captured_at = data.get("CapturedAt")
        return cls(
            table_name=data.get("TableName") or path.stem,
            captured_at=datetime.fromisoformat(captured_at) if captured_at else None,
            item_count=int(data.get("Count", len(items))),
            path=path,
            items=items,
        )


class SnapshotStore:
    """Reads and writes one snapshot file per table in a directory.

    Files are named after the table (``<dir>/<table>.json``). Capturing a
    table again overwrites its file; choosing a fresh directory per backup is
    up to the caller (see :meth:`create_backup_dir`).
    """

    def __init__(self, directory: Path | str, table_client: TableClient | None = None):
        """Initialize the store.

        Args:
            directory: Directory holding the snapshot files
            table_client: Client used by :meth:`capture`
        """
        self.directory = Path(directory)
        self.table_client = table_client

    @classmethod
    def create_backup_dir(cls, root: Path | str, now: datetime | None = None) -> Path:
        """Create a timestamped backup directory under ``root``."""
        now = now or datetime.now()
        path = Path(root) / f"{BACKUP_DIR_PREFIX}{now.strftime(BACKUP_DIR_FORMAT)}"
        path.mkdir(parents=True, exist_ok=True)
        return path

    @classmethod
    def latest(cls, root: Path | str) -> Path | None:
        """Return the newest backup directory under ``root``, if any."""
        candidates = sorted(
            p for p in Path(root).glob(f"{BACKUP_DIR_PREFIX}*") if p.is_dir()
        )
        return candidates[-1] if candidates else None

    def path_for(self, table_name: str) -> Path:
        return self.directory / f"{table_name}.json"

    def exists(self, table_name: str) -> bool:
        return self.path_for(table_name).is_file()

    async def capture(self, table_name: str) -> Snapshot:
        """Scan a table and write its snapshot.

        Raises:
            TableNotFoundError: If the table does not exist; no file is written
        """
        if self.table_client is None:
            raise RuntimeError("SnapshotStore.capture needs a table client")

        if not await self.table_client.exists(table_name):
            raise TableNotFoundError(table_name)

        result = await self.table_client.scan_table(table_name)
        snapshot = Snapshot(
            table_name=table_name,
            captured_at=datetime.now(timezone.utc),
            item_count=len(result.items),
            path=self.path_for(table_name),
            items=result.items,
        )
        self.write(snapshot)
        logger.info(
            f"Backed up {snapshot.item_count} items from {table_name} to {snapshot.path}"
        )
        return snapshot

    def write(self, snapshot: Snapshot) -> None:
        """Write a snapshot, replacing any previous file for the table."""
        self.directory.mkdir(parents=True, exist_ok=True)
        tmp_path = snapshot.path.with_suffix(".json.tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(snapshot.to_dict(), f, indent=2)
        os.replace(tmp_path, snapshot.path)

    def load(self, table_name: str) -> Snapshot:
        """Load a table's snapshot.

        An existing file with zero records yields an empty snapshot.

        Raises:
            SnapshotNotFoundError: If there is no file for the table
            SnapshotFormatError: If the file is not a table dump
        """
        path = self.path_for(table_name)
        if not path.is_file():
            raise SnapshotNotFoundError(table_name, str(path))

        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise SnapshotFormatError(str(path), str(e)) from e

        snapshot = Snapshot.from_dict(data, path)
        if snapshot.item_count != len(snapshot.items):
            logger.warning(
                f"Snapshot {path} declares {snapshot.item_count} items "
                f"but holds {len(snapshot.items)}"
            )
        return snapshot

    def list_snapshots(self) -> list[str]:
        """Names of the tables with a snapshot in this directory."""
        if not self.directory.is_dir():
            return []
        return sorted(p.stem for p in self.directory.glob("*.json"))
