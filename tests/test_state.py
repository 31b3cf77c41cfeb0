"""Tests for sync state persistence."""

import datetime
import json
import os
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from dotsync.state import StateStore, SyncState

NOW = datetime.datetime(2026, 10, 17, 12, 30, tzinfo=datetime.timezone.utc)


def test_load_missing_file_returns_defaults(tmp_path: Path) -> None:
    store = StateStore(tmp_path / "state.json")

    assert store.load() == SyncState()
    assert store.current == SyncState(None, None, False)
    assert not (tmp_path / "state.json").exists()


@pytest.mark.parametrize(
    "content",
    [
        "{not json",
        "[1, 2, 3]",
        '{"pending_push": "yes"}',
        '{"last_commit_at": "yesterday"}',
    ],
)
def test_load_corrupt_file_degrades_to_defaults(
    tmp_path: Path, caplog: pytest.LogCaptureFixture, content: str
) -> None:
    """Verifies that a corrupt state file never crashes the daemon."""
    path = tmp_path / "state.json"
    path.write_text(content)

    assert StateStore(path).load() == SyncState()
    assert "Ignoring unreadable state file" in caplog.text


def test_save_then_load_round_trips(tmp_path: Path) -> None:
    store = StateStore(tmp_path / "state.json")
    state = SyncState(last_commit_at=NOW, last_push_at=None, pending_push=True)

    assert store.save(state)

    assert store.load() == state
    data = json.loads((tmp_path / "state.json").read_text())
    assert data == {
        "last_commit_at": "2026-10-17T12:30:00+00:00",
        "last_push_at": None,
        "pending_push": True,
    }
    assert not (tmp_path / "state.tmp").exists()


def test_update_persists_and_keeps_other_fields(tmp_path: Path) -> None:
    store = StateStore(tmp_path / "state.json")
    store.update(last_commit_at=NOW, pending_push=True)

    new = store.update(pending_push=False)

    assert new == SyncState(last_commit_at=NOW, last_push_at=None, pending_push=False)
    assert StateStore(tmp_path / "state.json").current == new


def test_save_failure_keeps_in_memory_belief(
    tmp_path: Path, mocker: MagicMock, caplog: pytest.LogCaptureFixture
) -> None:
    """Verifies that a disk error is logged and the in-memory state is retained."""
    store = StateStore(tmp_path / "state.json")
    mocker.patch("dotsync.state.os.replace", side_effect=OSError("disk full"))

    state = store.update(last_commit_at=NOW, pending_push=True)

    assert state.pending_push
    assert store.current.pending_push
    assert not (tmp_path / "state.json").exists()
    assert "STATE ERROR" in caplog.text


def test_save_is_atomic_rename(tmp_path: Path, mocker: MagicMock) -> None:
    """Verifies that readers never see a partially written file."""
    path = tmp_path / "state.json"
    StateStore(path).save(SyncState(pending_push=True))
    spy = mocker.spy(os, "replace")

    StateStore(path).save(SyncState(pending_push=False))

    spy.assert_called_once_with(path.with_suffix(".tmp"), path)
