"""Shared fixtures: deterministic timers and a mocked repository."""

from collections.abc import Callable
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import pytest

from dotsync.git_wrapper import GitRepo, GitStatus
from dotsync.state import StateStore


class FakeTimer:
    """Stands in for `threading.Timer`; fires only when the test says so."""

    def __init__(self, interval: float, function: Callable[[], Any]):
        self.interval = interval
        self.function = function
        self.daemon = False
        self.started = False
        self.cancelled = False

    def start(self) -> None:
        self.started = True

    def cancel(self) -> None:
        self.cancelled = True

    def fire(self) -> None:
        self.function()


class TimerRecorder:
    """Timer factory that records every timer it creates."""

    def __init__(self) -> None:
        self.created: list[FakeTimer] = []

    def __call__(self, interval: float, function: Callable[[], Any]) -> FakeTimer:
        timer = FakeTimer(interval, function)
        self.created.append(timer)
        return timer

    @property
    def live(self) -> list[FakeTimer]:
        return [t for t in self.created if t.started and not t.cancelled]

    def fire_live(self) -> None:
        for timer in self.live:
            timer.fire()


@pytest.fixture
def timers() -> TimerRecorder:
    return TimerRecorder()


@pytest.fixture
def store(tmp_path: Path) -> StateStore:
    return StateStore(tmp_path / "state.json")


@pytest.fixture
def repo(mocker: MagicMock) -> MagicMock:
    """A GitRepo double with a dirty working tree and succeeding git calls."""
    mock = mocker.create_autospec(GitRepo, instance=True)
    mock.is_busy.return_value = False
    mock.status.return_value = GitStatus(modified=["commands/a.md"])
    mock.current_branch.return_value = "main"
    return mock
