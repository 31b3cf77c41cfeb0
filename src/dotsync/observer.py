"""Filesystem change observation for the watched root.

Wraps a `watchdog` observer and turns raw filesystem notifications into
`ChangeEvent`s, dropping everything the ignore rules exclude. Symlinked
directories under the root are watched at their targets and reported under
the link path, so linked-in content is mirrored like any other file.
"""

import datetime
import enum
import fnmatch
import logging
import os
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath

from watchdog.events import (
    EVENT_TYPE_CREATED,
    EVENT_TYPE_DELETED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_MOVED,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer

from .constants import APP_NAME, IGNORED_DIRS, IGNORED_FILES, SELF_SUBTREE
from .errors import ConfigurationError

logger = logging.getLogger(APP_NAME)


class ChangeKind(enum.Enum):
    CREATED = "created"
    MODIFIED = "modified"
    DELETED = "deleted"


@dataclass(frozen=True)
class ChangeEvent:
    """A single observed filesystem mutation.

    Attributes:
        path (Path): Absolute path of the changed file (under the watched root).
        kind (ChangeKind): What happened to it.
        observed_at (datetime): When the event was received.
    """

    path: Path
    kind: ChangeKind
    observed_at: datetime.datetime = field(
        default_factory=lambda: datetime.datetime.now(datetime.timezone.utc)
    )


class IgnoreRules:
    """Path predicate deciding which paths under the root are never synchronized.

    Rules are evaluated on the path relative to the root, so the root itself is
    never excluded by the leading-dot rule even if it is a hidden directory.

    Args:
        root (Path): The watched root.
        patterns (Iterable[str]): Extra basename globs, appended to the defaults.
        extra_paths (Iterable[Path]): Specific files to ignore, such as the
            daemon's own state and log files when they live inside the root.
        extra_dirs (Iterable[Path]): Directories whose whole subtree is ignored,
            such as the daemon's state directory. A directory that contains
            the root is skipped, since it would exclude everything.
    """

    def __init__(
        self,
        root: Path,
        patterns: Iterable[str] = (),
        extra_paths: Iterable[Path] = (),
        extra_dirs: Iterable[Path] = (),
    ):
        self.root = Path(os.path.abspath(root))
        self.patterns = [*IGNORED_FILES, *patterns]
        self.extra_paths = {Path(os.path.abspath(p)) for p in extra_paths}
        self.extra_dirs = [
            d
            for d in (Path(os.path.abspath(p)) for p in extra_dirs)
            if not self.root.is_relative_to(d)
        ]
        self.self_subtree = PurePosixPath(SELF_SUBTREE).parts

    def relative(self, path: Path | str) -> PurePosixPath | None:
        """Returns the path relative to the root, or None if it lies outside it."""
        try:
            rel = Path(os.path.abspath(path)).relative_to(self.root)
        except ValueError:
            return None
        return PurePosixPath(rel.as_posix())

    def __call__(self, path: Path | str) -> bool:
        abs_path = Path(os.path.abspath(path))
        if abs_path in self.extra_paths:
            return True
        if any(abs_path.is_relative_to(d) for d in self.extra_dirs):
            return True

        rel = self.relative(path)
        if rel is None:
            return True
        parts = rel.parts
        if not parts or rel == PurePosixPath("."):
            return False

        if parts[0].startswith("."):
            return True
        if parts[: len(self.self_subtree)] == self.self_subtree:
            return True
        # Any directory segment (not the basename) in the ignored set.
        if any(part in IGNORED_DIRS for part in parts[:-1]):
            return True
        return any(fnmatch.fnmatch(parts[-1], pattern) for pattern in self.patterns)


class ChangeHandler(FileSystemEventHandler):
    """Translates watchdog file events into `ChangeEvent`s for a sink.

    The handler neither buffers nor deduplicates; every accepted event is
    forwarded immediately.

    Args:
        sink (Callable[[ChangeEvent], None]): Receives each accepted event.
        ignore (IgnoreRules): The ignore predicate.
        link (tuple[Path, Path] | None): `(link_path, target_path)` when this
            handler watches the target of a symlinked directory; reported paths
            are re-rooted under the link.
        on_root_lost (Callable[[], None] | None): Called when the watched root
            itself is deleted or moved away.
    """

    def __init__(
        self,
        sink: Callable[[ChangeEvent], None],
        ignore: IgnoreRules,
        link: tuple[Path, Path] | None = None,
        on_root_lost: Callable[[], None] | None = None,
    ):
        super().__init__()
        self.sink = sink
        self.ignore = ignore
        self.link = link
        self.on_root_lost = on_root_lost

    def _logical_path(self, raw: bytes | str) -> Path:
        path = Path(os.fsdecode(raw))
        if self.link:
            link_path, target = self.link
            try:
                return link_path / path.relative_to(target)
            except ValueError:
                return path
        return path

    def _emit(self, raw: bytes | str, kind: ChangeKind) -> None:
        path = self._logical_path(raw)
        if self.ignore(path):
            return
        self.sink(ChangeEvent(path=path, kind=kind))

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            if (
                event.event_type in (EVENT_TYPE_DELETED, EVENT_TYPE_MOVED)
                and self.link is None
                and self._logical_path(event.src_path) == self.ignore.root
                and self.on_root_lost
            ):
                self.on_root_lost()
            return

        if event.event_type == EVENT_TYPE_CREATED:
            self._emit(event.src_path, ChangeKind.CREATED)
        elif event.event_type == EVENT_TYPE_MODIFIED:
            self._emit(event.src_path, ChangeKind.MODIFIED)
        elif event.event_type == EVENT_TYPE_DELETED:
            self._emit(event.src_path, ChangeKind.DELETED)
        elif event.event_type == EVENT_TYPE_MOVED:
            self._emit(event.src_path, ChangeKind.DELETED)
            self._emit(event.dest_path, ChangeKind.CREATED)


def find_linked_dirs(root: Path, ignore: IgnoreRules) -> Iterator[tuple[Path, Path]]:
    """Yields `(link_path, resolved_target)` for symlinked directories under root.

    Targets inside the root (already covered by the root watch) and targets
    seen before (symlink cycles) are skipped. Links are discovered once, when
    the session starts: directory links created later, and symlinked files
    whose targets live outside the root, are not observed.

    Args:
        root (Path): The watched root.
        ignore (IgnoreRules): Ignored directories are not descended into.
    """
    real_root = root.resolve()
    seen = {real_root}
    for dirpath, dirnames, _ in os.walk(root, followlinks=True):
        keep = []
        for name in dirnames:
            full = Path(dirpath) / name
            if name in IGNORED_DIRS or ignore(full):
                continue
            if full.is_symlink():
                target = full.resolve()
                if target in seen or target.is_relative_to(real_root):
                    continue
                seen.add(target)
                yield full, target
            keep.append(name)
        dirnames[:] = keep


class WatchSession:
    """Owns the watchdog observer for one watched root.

    Args:
        root (Path): The directory tree to watch.
        sink (Callable[[ChangeEvent], None]): Receives accepted change events.
        ignore (IgnoreRules): The ignore predicate.
        on_root_lost (Callable[[], None] | None): Fatal-error callback fired when
            the root disappears while watching.
    """

    def __init__(
        self,
        root: Path,
        sink: Callable[[ChangeEvent], None],
        ignore: IgnoreRules,
        on_root_lost: Callable[[], None] | None = None,
    ):
        self.root = root
        self.sink = sink
        self.ignore = ignore
        self.on_root_lost = on_root_lost
        self.observer: Observer | None = None
        self.linked: list[tuple[Path, Path]] = []

    def start(self) -> None:
        """Validates the root and starts watching it.

        Raises:
            ConfigurationError: If the root is missing, not a directory or unreadable.
        """
        if not self.root.is_dir():
            raise ConfigurationError(f"Watched directory does not exist: {self.root}")
        if not os.access(self.root, os.R_OK | os.X_OK):
            raise ConfigurationError(f"Watched directory is unreadable: {self.root}")

        observer = Observer()
        observer.schedule(
            ChangeHandler(self.sink, self.ignore, on_root_lost=self.on_root_lost),
            str(self.root),
            recursive=True,
        )
        self.linked = list(find_linked_dirs(self.root, self.ignore))
        for link_path, target in self.linked:
            logger.info(f"WATCH: following link {link_path} -> {target}")
            observer.schedule(
                ChangeHandler(self.sink, self.ignore, link=(link_path, target)),
                str(target),
                recursive=True,
            )

        observer.start()
        self.observer = observer

    def stop(self) -> None:
        if self.observer is None:
            return
        self.observer.stop()
        self.observer.join()
        self.observer = None
