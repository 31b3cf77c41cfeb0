"""Durable persistence of the daemon's sync state.

The state file is owned by a single daemon process. The in-memory copy held by
`StateStore` is the daemon's belief; the file on disk is a cache of it that
survives restarts and is what `dotsync status` reads.
"""

import datetime
import json
import logging
import os
import threading
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any

from .constants import APP_NAME

logger = logging.getLogger(APP_NAME)


def _parse_timestamp(value: Any) -> datetime.datetime | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValueError(f"Expected an ISO-8601 string, got {value!r}")
    return datetime.datetime.fromisoformat(value)


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


@dataclass(frozen=True)
class SyncState:
    """Snapshot of the daemon's commit/push progress.

    Attributes:
        last_commit_at (datetime | None): When the last commit was created.
        last_push_at (datetime | None): When the last successful push finished.
        pending_push (bool): True iff a commit exists that has not been pushed.
    """

    last_commit_at: datetime.datetime | None = None
    last_push_at: datetime.datetime | None = None
    pending_push: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "last_commit_at": (
                self.last_commit_at.isoformat() if self.last_commit_at else None
            ),
            "last_push_at": self.last_push_at.isoformat() if self.last_push_at else None,
            "pending_push": self.pending_push,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SyncState":
        """Builds a state from its serialized form.

        Raises:
            ValueError: If a field has the wrong type or an unparseable timestamp.
        """
        pending = data.get("pending_push", False)
        if not isinstance(pending, bool):
            raise ValueError(f"pending_push must be a boolean, got {pending!r}")
        return cls(
            last_commit_at=_parse_timestamp(data.get("last_commit_at")),
            last_push_at=_parse_timestamp(data.get("last_push_at")),
            pending_push=pending,
        )


class StateStore:
    """Reads and atomically writes `SyncState` to a JSON file.

    Attributes:
        path (Path): The backing file.
        current (SyncState): The in-memory belief, kept even when a save fails.
    """

    def __init__(self, path: Path):
        self.path = path
        self._lock = threading.Lock()
        self.current = self.load()

    def load(self) -> SyncState:
        """Reads the persisted state.

        Returns:
            SyncState: The stored state, or the defaults if the file is absent
                or corrupt.
        """
        if not self.path.exists():
            return SyncState()

        try:
            data = json.loads(self.path.read_text())
            if not isinstance(data, dict):
                raise ValueError("top-level value is not an object")
            return SyncState.from_dict(data)
        except (OSError, ValueError) as e:
            # json.JSONDecodeError is a ValueError.
            logger.warning(f"STATE: Ignoring unreadable state file {self.path}: {e}")
            return SyncState()

    def save(self, state: SyncState) -> bool:
        """Writes the state via a temp file and an atomic rename.

        Args:
            state (SyncState): The state to persist.

        Returns:
            bool: True if the file was written, False on a disk error.
        """
        tmp_file = self.path.with_suffix(".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_file, "w") as f:
                json.dump(state.to_dict(), f, indent=2)
                f.flush()
                os.fsync(f.fileno())  # Force write to disk.

            os.replace(tmp_file, self.path)
            return True
        except OSError as e:
            logger.error(f"STATE ERROR: Could not save {self.path}: {e}")
            tmp_file.unlink(missing_ok=True)
            return False

    def update(self, **changes: Any) -> SyncState:
        """Applies field changes to the in-memory state and persists the result.

        Args:
            **changes: SyncState fields to overwrite.

        Returns:
            SyncState: The new in-memory state (even if it failed to persist).
        """
        with self._lock:
            self.current = replace(self.current, **changes)
            self.save(self.current)
            return self.current
