"""File-based JSON storage for the last committed snapshot.

Storage path defaults to ``~/.pipesync/snapshot.json`` holding
``{"items": [...], "lastUpdateTimestamp": "..."}``. Reads never raise: a
missing or unreadable file means "first run". Writes are atomic and report
failure through their return value.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from pipesync.models.tracked_item import Snapshot, TrackedItem
from pipesync.sync.errors import PersistenceError

logger = logging.getLogger(__name__)


@dataclass
class SnapshotStats:
    """Inspection data for the stored snapshot."""

    exists: bool
    item_count: int = 0
    last_update: str | None = None
    file_size: int = 0
    path: str = ""
    error: str = ""


class SnapshotStore:
    """Durable cache of the last committed observed state."""

    def __init__(self, path: Optional[str | Path] = None) -> None:
        if path is None:
            self._path = Path.home() / ".pipesync" / "snapshot.json"
        else:
            self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _read_json(self) -> dict[str, Any]:
        data = json.loads(self._path.read_text(encoding="utf-8"))
        if not isinstance(data, dict):
            raise ValueError("snapshot root must be an object")
        return data

    def _write_json(self, path: Path, data: dict[str, Any]) -> None:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent)
            )
        except OSError as exc:
            raise PersistenceError(f"Cannot write {path}: {exc}") from exc
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, default=str)
            os.replace(tmp_name, path)
        except (OSError, TypeError, ValueError) as exc:
            Path(tmp_name).unlink(missing_ok=True)
            raise PersistenceError(f"Cannot write {path}: {exc}") from exc

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def load(self) -> Snapshot:
        """Return the last committed snapshot, or an empty one."""
        if not self._path.exists():
            logger.info("No snapshot at %s, starting with empty state", self._path)
            return Snapshot()
        try:
            snapshot = Snapshot.from_dict(self._read_json())
        except (OSError, ValueError, TypeError) as exc:
            logger.warning("Failed to load snapshot %s, starting with empty state: %s", self._path, exc)
            return Snapshot()
        logger.info(
            "Loaded snapshot with %d items, last update: %s",
            len(snapshot.items), snapshot.last_update,
        )
        return snapshot

    def save(self, snapshot: Snapshot) -> bool:
        """Atomically overwrite the stored snapshot. Returns False on failure."""
        committed_at = datetime.now(timezone.utc).isoformat()
        data = Snapshot(items=snapshot.items, last_update=committed_at).to_dict()
        try:
            self._write_json(self._path, data)
        except PersistenceError as exc:
            logger.error("Failed to save snapshot %s: %s", self._path, exc)
            return False
        snapshot.last_update = committed_at
        logger.info("Saved snapshot with %d items at %s", len(snapshot.items), committed_at)
        return True

    def save_items(self, items: list[TrackedItem]) -> bool:
        return self.save(Snapshot(items=list(items)))

    def clear(self) -> bool:
        """Delete the stored snapshot so the next pass behaves as a first run."""
        try:
            self._path.unlink(missing_ok=True)
        except OSError as exc:
            logger.error("Failed to clear snapshot %s: %s", self._path, exc)
            return False
        logger.info("Snapshot cleared")
        return True

    def stats(self) -> SnapshotStats:
        stats = SnapshotStats(exists=self._path.exists(), path=str(self._path))
        if not stats.exists:
            return stats
        try:
            stats.file_size = self._path.stat().st_size
            data = self._read_json()
            stats.item_count = len(data.get("items") or [])
            stats.last_update = data.get("lastUpdateTimestamp")
        except (OSError, ValueError) as exc:
            stats.error = str(exc)
        return stats

    def health_check(self) -> dict[str, Any]:
        """Probe write and read access next to the snapshot file."""
        probe = self._path.with_name(f".{self._path.name}.health")
        try:
            self._write_json(probe, {"probe": True})
            if json.loads(probe.read_text(encoding="utf-8")).get("probe") is not True:
                raise OSError("probe content mismatch")
            probe.unlink()
        except (PersistenceError, OSError, ValueError) as exc:
            return {"status": "unhealthy", "service": "SnapshotStore", "path": str(self._path), "error": str(exc)}
        return {"status": "healthy", "service": "SnapshotStore", "path": str(self._path)}
