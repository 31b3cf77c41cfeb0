import logging
import os
import subprocess
from dataclasses import dataclass, field
from pathlib import Path

from .constants import APP_NAME, GIT_LOCK_FILES
from .errors import GitError

logger = logging.getLogger(APP_NAME)


@dataclass
class GitStatus:
    """Working-tree status as reported by `git status --porcelain`.

    Attributes:
        modified (list[str]): Tracked paths with staged or unstaged changes
            (including deletions and renames).
        untracked (list[str]): Paths git does not track and does not ignore.
    """

    modified: list[str] = field(default_factory=list)
    untracked: list[str] = field(default_factory=list)

    @property
    def is_clean(self) -> bool:
        return not self.modified and not self.untracked


class GitRepo:
    """A wrapper around the Git command-line interface for the watched repository.

    Every capability the daemon consumes (status, stage, commit, pull-rebase,
    push) is a blocking subprocess call that either returns or raises `GitError`.

    Attributes:
        path (Path): The file system path to the repository root.
    """

    def __init__(self, path: Path):
        """Initializes the GitRepo instance.

        Args:
            path (Path): The path to the repository root directory.

        Raises:
            ValueError: If the specified path does not contain a .git directory.
        """
        self.path = path
        if not (self.path / ".git").exists():
            raise ValueError(f"Not a git repository: {self.path}")

    def _run(
        self,
        args: list[str],
        capture: bool = True,
        env: dict | None = None,
        strip: bool = True,
    ) -> str:
        """Executes a Git command within the repository context.

        Args:
            args (list[str]): A list of arguments to pass to the git command.
            capture (bool, optional): Whether to return stdout. Defaults to True.
            env (Optional[dict], optional): Environment variables to pass to the
                                            subprocess. Defaults to None.
            strip (bool, optional): Whether to strip surrounding whitespace from
                                    stdout. Disable for column-sensitive output.
                                    Defaults to True.

        Returns:
            str:    The stdout of the command (stripped unless strip is False)
                    if capture is True, otherwise an empty string.

        Raises:
            GitError: If the git command returns a non-zero exit code.
        """
        try:
            res = subprocess.run(
                ["git", *args],
                cwd=self.path,
                capture_output=True,
                text=True,
                check=True,
                env=env,
            )
            if not capture:
                return ""
            return res.stdout.strip() if strip else res.stdout
        except subprocess.CalledProcessError as e:
            reason = (e.stderr or e.stdout or str(e)).strip()
            raise GitError(reason) from e
        except OSError as e:
            raise GitError(str(e)) from e

    def current_branch(self) -> str:
        """Retrieves the name of the currently checked-out branch."""
        return self._run(["branch", "--show-current"])

    def status(self) -> GitStatus:
        """Returns the working-tree status split into modified and untracked paths.

        Returns:
            GitStatus: The parsed `git status --porcelain` output.
        """
        # Porcelain lines start with a two-column code that may begin with a space.
        output = self._run(
            ["status", "--porcelain", "--untracked-files=all"], strip=False
        )
        status = GitStatus()
        for line in output.splitlines():
            if len(line) < 4:
                continue
            code, name = line[:2], line[3:]
            if " -> " in name:
                name = name.split(" -> ", 1)[1]
            if code == "??":
                status.untracked.append(name)
            elif code != "!!":
                status.modified.append(name)
        return status

    def add_all(self) -> None:
        """
        Stages all changes (modified, deleted, and untracked files)
        in the working directory.
        """
        self._run(["add", "-A"], capture=False)

    def commit(self, message: str) -> None:
        """Creates a new commit with the provided message.

        Args:
            message (str): The commit message.
        """
        self._run(["commit", "-m", message], capture=False)

    def pull_rebase(self, remote: str, branch: str) -> None:
        """Fetches `remote/branch` and replays local commits on top of it.

        Args:
            remote (str): The remote name (e.g. 'origin').
            branch (str): The branch to pull.
        """
        self._run(["pull", "--rebase", remote, branch], capture=False, env=_batch_env())

    def push(self, remote: str, branch: str) -> None:
        """Pushes the local branch to the remote.

        Args:
            remote (str): The remote name (e.g. 'origin').
            branch (str): The branch to push.
        """
        self._run(["push", remote, branch], capture=False, env=_batch_env())

    def rebase_abort(self) -> None:
        """Aborts an in-progress rebase, restoring the pre-pull working tree.

        Failures are logged rather than raised, since there may be no rebase
        in progress (e.g. the pull failed during fetch).
        """
        try:
            self._run(["rebase", "--abort"], capture=False)
        except GitError as e:
            logger.debug(f"rebase --abort skipped: {e.reason}")

    def is_busy(self) -> bool:
        """Determines if the repository is locked by a merge, rebase or bisect.

        Returns:
            bool: True if any git operation lock file is present.
        """
        git_dir = self.path / ".git"
        return any((git_dir / f).exists() for f in GIT_LOCK_FILES)


def _batch_env() -> dict[str, str]:
    """Environment for network operations that must never prompt for input."""
    env = os.environ.copy()
    env["GIT_SSH_COMMAND"] = "ssh -o BatchMode=yes"
    env["GIT_TERMINAL_PROMPT"] = "0"
    return env
