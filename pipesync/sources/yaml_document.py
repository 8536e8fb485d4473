"""YAML document state source.

The tracked items live in a YAML file that people edit by hand::

    items:
      - id: VID-0001
        title: Example video
        status: Processing
        approval: Pending
        voice: ""
        editing: ""

The file is read in full on every call. Updates rewrite the file
atomically and leave unknown keys untouched.
"""

from __future__ import annotations

import os
import tempfile
import threading
from pathlib import Path
from typing import Any

import yaml

from pipesync.models.tracked_item import TrackedItem
from pipesync.sources.base import FieldUpdates, split_updates
from pipesync.sync.errors import (
    PermanentExternalError,
    StateSourceError,
    TransientExternalError,
)

# A missing or unreadable document needs a person; other I/O errors (locks,
# EIO from a network share) are retried.
_PERMANENT_IO_ERRORS = (FileNotFoundError, IsADirectoryError, NotADirectoryError, PermissionError)


class YamlDocumentSource:
    """State source backed by a hand-edited YAML document."""

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self._lock = threading.Lock()

    def _read(self) -> dict[str, Any]:
        try:
            with open(self.path) as f:
                data = yaml.safe_load(f) or {}
        except _PERMANENT_IO_ERRORS as exc:
            raise StateSourceError(f"Cannot read state document {self.path}: {exc}") from exc
        except OSError as exc:
            raise TransientExternalError(f"I/O error reading {self.path}: {exc}") from exc
        except yaml.YAMLError as exc:
            raise StateSourceError(f"Cannot parse state document {self.path}: {exc}") from exc
        if not isinstance(data, dict) or not isinstance(data.get("items", []), list):
            raise StateSourceError(f"State document {self.path} must contain an 'items' list")
        data.setdefault("items", [])
        return data

    def _write(self, data: dict[str, Any]) -> None:
        try:
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self.path.name}.", suffix=".tmp", dir=str(self.path.parent)
            )
        except OSError as exc:
            raise self._write_error(exc) from exc
        try:
            with os.fdopen(fd, "w") as f:
                yaml.safe_dump(data, f, sort_keys=False, allow_unicode=True)
            os.replace(tmp_name, self.path)
        except OSError as exc:
            Path(tmp_name).unlink(missing_ok=True)
            raise self._write_error(exc) from exc
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def _write_error(self, exc: OSError) -> Exception:
        if isinstance(exc, _PERMANENT_IO_ERRORS):
            return StateSourceError(f"Cannot write state document {self.path}: {exc}")
        return TransientExternalError(f"I/O error writing {self.path}: {exc}")

    def list_tracked_items(self) -> list[TrackedItem]:
        items = []
        for row in self._read()["items"]:
            # Rows without an id are placeholders people are still filling in
            if isinstance(row, dict) and row.get("id"):
                items.append(TrackedItem.from_dict(row))
        return items

    def apply_field_updates(self, item_id: str, updates: FieldUpdates) -> None:
        monitored, extra = split_updates(updates)
        with self._lock:
            data = self._read()
            for row in data["items"]:
                if isinstance(row, dict) and str(row.get("id")) == item_id:
                    for f, value in monitored.items():
                        row[f.value] = value or ""
                    row.update(extra)
                    break
            else:
                raise PermanentExternalError(f"Item {item_id} not found in {self.path}")
            self._write(data)
