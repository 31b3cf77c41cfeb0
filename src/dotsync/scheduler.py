"""Bounded-cadence pushing of local commits to the remote.

Two timers drive pushes: a one-shot timer armed after each commit (at most
one outstanding), and a periodic safety net that retries whenever the state
says a push is pending. Every attempt pulls with rebase before pushing, and
failures leave `pending_push` set for the next cycle.
"""

import logging
import threading
from collections.abc import Callable
from typing import Any

from .aggregator import Timer, TimerFactory
from .constants import APP_NAME
from .errors import GitError
from .git_wrapper import GitRepo
from .state import StateStore, utcnow
from .system import SystemStrategy

logger = logging.getLogger(APP_NAME)

Dispatcher = Callable[[Callable[[], Any]], Any]


def run_inline(job: Callable[[], Any]) -> Any:
    return job()


class PushScheduler:
    """Schedules and serializes push attempts.

    Args:
        repo (GitRepo): The watched repository.
        store (StateStore): The sync state store.
        remote (str): Remote name to pull from and push to.
        branch (str): The tracked branch.
        interval (float): Seconds between push attempts.
        dispatch (Dispatcher, optional): Runs timer-triggered jobs. The daemon
            passes its working-tree executor so pushes queue behind commits.
            Defaults to running inline on the timer thread.
        timer_factory (TimerFactory, optional): Builds the one-shot push timer.
        notifier (SystemStrategy | None): Receives the repeated-failure alert.
        alert_after (int): Consecutive failed cycles before alerting (0 = never).
    """

    def __init__(
        self,
        repo: GitRepo,
        store: StateStore,
        remote: str,
        branch: str,
        interval: float,
        dispatch: Dispatcher = run_inline,
        timer_factory: TimerFactory = threading.Timer,
        notifier: SystemStrategy | None = None,
        alert_after: int = 3,
    ):
        self.repo = repo
        self.store = store
        self.remote = remote
        self.branch = branch
        self.interval = interval
        self.dispatch = dispatch
        self.timer_factory = timer_factory
        self.notifier = notifier
        self.alert_after = alert_after

        self.consecutive_failures = 0
        self._lock = threading.Lock()
        self._in_flight = threading.Lock()
        self._timer: Timer | None = None
        self._stop = threading.Event()
        self._safety_thread: threading.Thread | None = None

    @property
    def armed(self) -> bool:
        with self._lock:
            return self._timer is not None

    def arm(self) -> bool:
        """Starts the deferred push timer unless one is already pending.

        Returns:
            bool: True if a new timer was started.
        """
        with self._lock:
            if self._timer is not None or self._stop.is_set():
                return False
            self._timer = self.timer_factory(
                self.interval, lambda: self.dispatch(self._fire)
            )
            self._timer.daemon = True
            self._timer.start()
        logger.debug(f"PUSH: armed for {self.interval:.0f}s.")
        return True

    def _fire(self) -> None:
        try:
            self.attempt_push()
        finally:
            with self._lock:
                self._timer = None

    def attempt_push(self) -> bool:
        """Pulls with rebase, then pushes, if a push is pending.

        Only one attempt runs at a time; an overlapping call returns immediately.

        Returns:
            bool: True if the branch was pushed.
        """
        if not self._in_flight.acquire(blocking=False):
            logger.debug("PUSH: attempt already in flight.")
            return False

        try:
            if not self.store.current.pending_push:
                logger.debug("PUSH: nothing pending.")
                return False

            try:
                self.repo.pull_rebase(self.remote, self.branch)
            except GitError as e:
                self.repo.rebase_abort()
                self._record_failure("pull-rebase", e)
                return False

            try:
                self.repo.push(self.remote, self.branch)
            except GitError as e:
                self._record_failure("push", e)
                return False

            self.store.update(last_push_at=utcnow(), pending_push=False)
            self.consecutive_failures = 0
            logger.info(f"PUSH OK {self.remote}/{self.branch}")
            return True
        finally:
            self._in_flight.release()

    def _record_failure(self, stage: str, error: GitError) -> None:
        self.consecutive_failures += 1
        logger.error(
            f"PUSH ERROR ({stage}): {error.reason} "
            f"[attempt {self.consecutive_failures}, push still pending]"
        )
        if self.alert_after and self.consecutive_failures == self.alert_after:
            msg = (
                f"{self.consecutive_failures} push attempts to "
                f"{self.remote}/{self.branch} failed. Last error: {stage}."
            )
            logger.warning(f"ALERT: {msg}")
            if self.notifier:
                self.notifier.notify("dotsync push failing", msg)

    def _safety_loop(self) -> None:
        while not self._stop.wait(self.interval):
            if self.store.current.pending_push:
                self.dispatch(self.attempt_push)

    def start_safety_net(self) -> None:
        """Starts the periodic retry of pending pushes for the daemon's lifetime."""
        if self._safety_thread is not None:
            return
        self._stop.clear()
        self._safety_thread = threading.Thread(
            target=self._safety_loop, name="dotsync-safety-net", daemon=True
        )
        self._safety_thread.start()

    def stop(self) -> None:
        """Cancels the armed timer and stops the safety net."""
        self._stop.set()
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
        if self._safety_thread is not None:
            self._safety_thread.join(timeout=5)
            self._safety_thread = None
