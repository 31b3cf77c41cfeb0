"""Debounced batching of change events.

`Debouncer` folds a bursty stream of `ChangeEvent`s into a `ChangeBatch` and
hands the batch on only after a quiet period with no new events.
"""

import enum
import logging
import threading
from collections.abc import Callable, Iterable, Iterator
from pathlib import Path
from typing import Any, Protocol

from .constants import APP_NAME
from .observer import ChangeEvent

logger = logging.getLogger(APP_NAME)


class Timer(Protocol):
    """The subset of `threading.Timer` the daemon relies on."""

    daemon: bool

    def start(self) -> None: ...

    def cancel(self) -> None: ...


TimerFactory = Callable[[float, Callable[..., Any]], Timer]


class ChangeBatch:
    """An insertion-ordered set of changed paths.

    Repeated paths collapse to their first position, so the commit preview
    lists files in the order they were first touched.
    """

    def __init__(self, paths: Iterable[Path] = ()):
        self._paths: dict[Path, None] = dict.fromkeys(paths)

    def add(self, path: Path) -> None:
        self._paths.setdefault(path, None)

    @property
    def paths(self) -> tuple[Path, ...]:
        return tuple(self._paths)

    def __len__(self) -> int:
        return len(self._paths)

    def __iter__(self) -> Iterator[Path]:
        return iter(self.paths)

    def __contains__(self, path: object) -> bool:
        return path in self._paths

    def __repr__(self) -> str:
        return f"ChangeBatch({list(self._paths)!r})"


class DebounceState(enum.Enum):
    IDLE = "idle"
    ACCUMULATING = "accumulating"
    FLUSHING = "flushing"


class Debouncer:
    """Collects changed paths and flushes them after a quiet period.

    Every submitted event resets the countdown. When it expires, the current
    batch is swapped for an empty one and its snapshot is passed to `on_flush`.
    Events arriving while a flush is running land in the fresh batch.

    Args:
        interval (float): The quiet period in seconds.
        on_flush (Callable[[tuple[Path, ...]], None]): Receives each flushed batch.
        timer_factory (TimerFactory, optional): Builds the countdown timer.
            Defaults to `threading.Timer`.
    """

    def __init__(
        self,
        interval: float,
        on_flush: Callable[[tuple[Path, ...]], None],
        timer_factory: TimerFactory = threading.Timer,
    ):
        self.interval = interval
        self.on_flush = on_flush
        self.timer_factory = timer_factory

        self._lock = threading.Lock()
        self._flush_lock = threading.Lock()
        self._batch = ChangeBatch()
        self._timer: Timer | None = None
        self._generation = 0
        self._flushing = False

    @property
    def state(self) -> DebounceState:
        with self._lock:
            if self._flushing:
                return DebounceState.FLUSHING
            if len(self._batch):
                return DebounceState.ACCUMULATING
            return DebounceState.IDLE

    @property
    def pending(self) -> tuple[Path, ...]:
        """Paths accumulated since the last flush."""
        with self._lock:
            return self._batch.paths

    def submit(self, event: ChangeEvent) -> None:
        """Adds an event's path to the batch and restarts the quiet period."""
        logger.info(f"CHANGE {event.kind.value}: {event.path}")
        with self._lock:
            self._batch.add(event.path)
            if self._timer is not None:
                self._timer.cancel()
            self._generation += 1
            generation = self._generation
            self._timer = self.timer_factory(
                self.interval, lambda: self.flush(generation)
            )
            self._timer.daemon = True
            self._timer.start()

    def flush(self, generation: int | None = None) -> None:
        """Hands the current batch to `on_flush` and starts a new one.

        An empty batch is a no-op. Only one flush runs at a time.

        Args:
            generation (int | None): Set by the countdown timer. A timer that
                was superseded by a newer event while it was already running
                does nothing. Direct calls flush unconditionally.
        """
        with self._flush_lock:
            with self._lock:
                if generation is not None and generation != self._generation:
                    return
                if self._timer is not None:
                    self._timer.cancel()
                    self._timer = None
                self._generation += 1
                if not len(self._batch):
                    return
                snapshot = self._batch.paths
                self._batch = ChangeBatch()
                self._flushing = True

            try:
                logger.debug(f"FLUSH: {len(snapshot)} path(s)")
                self.on_flush(snapshot)
            finally:
                with self._lock:
                    self._flushing = False

    def cancel(self) -> None:
        """Stops the pending countdown. The unflushed batch is discarded."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            if len(self._batch):
                logger.warning(
                    f"SHUTDOWN: dropping {len(self._batch)} unflushed change(s)."
                )
            self._batch = ChangeBatch()
