import atexit
import logging
import os
import signal
import sys
import threading
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from logging.handlers import RotatingFileHandler
from pathlib import Path
from types import FrameType
from typing import Any

from .aggregator import Debouncer
from .composer import CommitComposer
from .config import Config
from .constants import APP_NAME, LOG_FILE, PID_FILE, STATE_FILE
from .errors import ConfigurationError, GitError
from .git_wrapper import GitRepo
from .observer import IgnoreRules, WatchSession
from .scheduler import PushScheduler
from .state import StateStore
from .system import SystemStrategy, get_system

logger = logging.getLogger(APP_NAME)
logger.setLevel(logging.INFO)


class SyncDaemon:
    """Wires the observer, debouncer, composer and push scheduler together.

    All git work (commits and pushes) runs on a single worker thread, so only
    one operation touches the working tree at a time and commits are applied
    in the order their batches were flushed. Filesystem events keep queueing
    into the debouncer while that worker is busy.

    Args:
        config (Config): The loaded configuration.
        repo (GitRepo | None): The repository to commit to. Defaults to the
            repository at the watched root.
        store (StateStore | None): The state store. Defaults to STATE_FILE.
        notifier (SystemStrategy | None): Desktop notifier for push alerts.
    """

    def __init__(
        self,
        config: Config,
        repo: GitRepo | None = None,
        store: StateStore | None = None,
        notifier: SystemStrategy | None = None,
    ):
        self.config = config
        self.root = config.core.watch_path
        self.repo = repo or _open_repo(self.root)
        self.store = store or StateStore(STATE_FILE)

        self.executor = ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="dotsync-worktree"
        )
        self._stopped = threading.Event()
        self.fatal_error: ConfigurationError | None = None

        self.scheduler = PushScheduler(
            self.repo,
            self.store,
            remote=config.core.remote_name,
            branch=config.core.branch,
            interval=config.daemon.push_interval,
            dispatch=self.submit,
            notifier=notifier or get_system(),
            alert_after=config.daemon.alert_after,
        )
        self.composer = CommitComposer(
            self.repo, self.root, self.store, on_commit=self.scheduler.arm
        )
        self.debouncer = Debouncer(
            config.daemon.debounce_interval,
            on_flush=lambda paths: self.submit(self.composer.commit_batch, paths),
        )
        self.ignore = IgnoreRules(
            self.root,
            patterns=config.files.ignore,
            extra_paths=[self.store.path, LOG_FILE, PID_FILE],
            extra_dirs={p.parent for p in (self.store.path, LOG_FILE, PID_FILE)},
        )
        self.session = WatchSession(
            self.root,
            self.debouncer.submit,
            self.ignore,
            on_root_lost=self._on_root_lost,
        )

    def submit(self, job: Callable[..., Any], *args: Any) -> None:
        """Queues a job on the working-tree worker."""
        try:
            self.executor.submit(self._run_job, job, *args)
        except RuntimeError:
            logger.debug(f"Dropped {getattr(job, '__name__', job)}: shutting down.")

    @staticmethod
    def _run_job(job: Callable[..., Any], *args: Any) -> None:
        try:
            job(*args)
        except Exception:
            logger.exception(f"WORKER ERROR in {getattr(job, '__name__', job)}")

    def _on_root_lost(self) -> None:
        self.fatal_error = ConfigurationError(
            f"Watched directory disappeared: {self.root}"
        )
        self.stop()

    def start(self) -> None:
        """Starts watching and the push safety net.

        Raises:
            ConfigurationError: If the watched root is missing or unreadable.
        """
        self.session.start()
        self.scheduler.start_safety_net()
        self._check_branch()

        state = self.store.current
        logger.info(f"Watching {self.root}")
        logger.info(
            f"Debounce: {self.config.daemon.debounce_interval:.0f}s | "
            f"Push interval: {self.config.daemon.push_interval:.0f}s | "
            f"Pending push: {'yes' if state.pending_push else 'no'}"
        )

    def _check_branch(self) -> None:
        """Warns when the checked-out branch is not the one pushes target."""
        try:
            current = self.repo.current_branch()
        except GitError as e:
            logger.warning(f"Could not determine current branch: {e.reason}")
            return
        if current != self.config.core.branch:
            logger.warning(
                f"BRANCH MISMATCH: on '{current or '(detached)'}' but pushing to "
                f"'{self.config.core.branch}'. Commits land on the checked-out branch."
            )

    def stop(self) -> None:
        """Requests the daemon to stop; `run` returns once shutdown completes."""
        self._stopped.set()

    def shutdown(self) -> None:
        """Stops all timers and threads. Unflushed changes are dropped."""
        self.session.stop()
        self.debouncer.cancel()
        self.scheduler.stop()
        self.executor.shutdown(wait=True)
        logger.info("Stopped.")

    def run(self) -> None:
        """Runs until `stop` is called (e.g. by a signal handler).

        Raises:
            ConfigurationError: If the root is invalid at start or disappears.
        """
        self.start()
        try:
            while not self._stopped.wait(1.0):
                pass
        finally:
            self.shutdown()

        if self.fatal_error:
            raise self.fatal_error


def _open_repo(root: Path) -> GitRepo:
    if not root.is_dir():
        raise ConfigurationError(f"Watched directory does not exist: {root}")
    try:
        return GitRepo(root)
    except ValueError as e:
        raise ConfigurationError(str(e)) from e


def setup_logging(interactive: bool, max_log_size: int = 5 * 1024 * 1024) -> None:
    """Configures the logging subsystem.

    Args:
        interactive (bool): If True, logs to stdout. If False, logs to file/stderr
                            with rotation enabled.
        max_log_size (int): Bytes before the log file rotates.
    """
    formatter = logging.Formatter(
        "[%(asctime)s] %(levelname)s: %(message)s", "%Y-%m-%d %H:%M:%S"
    )

    # Always log to a stream (stderr is captured by systemd/launchd).
    stream_handler = logging.StreamHandler(
        sys.stderr if not interactive else sys.stdout
    )
    stream_handler.setFormatter(formatter)
    logger.addHandler(stream_handler)

    if not interactive:
        # In daemon mode, rotate logs to file.
        file_handler = RotatingFileHandler(
            LOG_FILE,
            maxBytes=max_log_size,
            backupCount=5,
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)


def _write_pid_file() -> None:
    try:
        with open(PID_FILE, "w") as f:
            f.write(str(os.getpid()))

        # Ensure cleanup on exit.
        atexit.register(lambda: PID_FILE.unlink(missing_ok=True))
    except OSError as e:
        logger.warning(f"Could not write PID file: {e}")


def main(interactive: bool = False) -> None:
    """Runs the watcher loop until SIGINT/SIGTERM.

    Args:
        interactive (bool, optional): Whether the daemon runs in the foreground
                                      (`dotsync start`). Defaults to False.
    """
    config = Config.load()
    setup_logging(interactive, config.limits.max_log_size)

    try:
        daemon = SyncDaemon(config)
    except ConfigurationError as e:
        logger.critical(f"FATAL: {e}")
        sys.exit(1)

    def stop_handler(signum: int, _frame: FrameType | None) -> None:
        logger.info(f"Received {signal.Signals(signum).name}, stopping...")
        daemon.stop()

    signal.signal(signal.SIGTERM, stop_handler)
    signal.signal(signal.SIGINT, stop_handler)

    _write_pid_file()

    try:
        daemon.run()
    except ConfigurationError as e:
        logger.critical(f"FATAL: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
