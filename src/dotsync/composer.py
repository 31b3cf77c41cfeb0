import enum
import logging
import os
from collections.abc import Callable, Iterable
from pathlib import Path

from .constants import APP_NAME, PREVIEW_LIMIT
from .errors import GitError
from .git_wrapper import GitRepo
from .state import StateStore, utcnow

logger = logging.getLogger(APP_NAME)


class CommitCategory(enum.Enum):
    """Semantic buckets for changed paths, in commit-title order."""

    COMMANDS = "commands"
    AGENTS = "agents"
    SKILLS = "skills"
    RULES = "rules"
    OTHER = "other"

    @property
    def label(self) -> str:
        """str: The countable noun used in commit titles."""
        return _LABELS[self]


_LABELS = {
    CommitCategory.COMMANDS: "command(s)",
    CommitCategory.AGENTS: "agent(s)",
    CommitCategory.SKILLS: "skill(s)",
    CommitCategory.RULES: "rule(s)",
    CommitCategory.OTHER: "other file(s)",
}


def relative_path(path: Path | str, root: Path) -> str:
    """Renders a path relative to the watched root with forward slashes."""
    return Path(os.path.relpath(path, root)).as_posix()


def classify(rel_path: str) -> CommitCategory:
    """Maps a root-relative path to its category by its top-level directory.

    Args:
        rel_path (str): A path relative to the watched root, using '/' separators.

    Returns:
        CommitCategory: The matching category, or OTHER.
    """
    for category in CommitCategory:
        if category is not CommitCategory.OTHER and rel_path.startswith(
            f"{category.value}/"
        ):
            return category
    return CommitCategory.OTHER


def build_commit_message(paths: Iterable[Path | str], root: Path) -> str:
    """Composes the commit title and preview body for a batch.

    Example:
        update 2 command(s), 1 agent(s)

        - commands/a.md
        - commands/b.md
        - agents/c.md

    Args:
        paths (Iterable[Path | str]): The batch, in first-seen order.
        root (Path): The watched root.

    Returns:
        str: The multi-line commit message.
    """
    rel_paths = [relative_path(p, root) for p in paths]

    counts = dict.fromkeys(CommitCategory, 0)
    for rel in rel_paths:
        counts[classify(rel)] += 1

    summary = ", ".join(
        f"{count} {category.label}" for category, count in counts.items() if count
    )
    lines = [f"update {summary}", ""]
    lines.extend(f"- {rel}" for rel in rel_paths[:PREVIEW_LIMIT])
    if len(rel_paths) > PREVIEW_LIMIT:
        lines.append(f"...and {len(rel_paths) - PREVIEW_LIMIT} more")
    return "\n".join(lines)


class CommitComposer:
    """Turns a flushed batch into one commit on the watched repository.

    Args:
        repo (GitRepo): The repository rooted at (or containing) the watched root.
        root (Path): The watched root, used for relative paths in messages.
        store (StateStore): The sync state store.
        on_commit (Callable[[], None] | None): Called after each successful commit
            (the daemon arms the push scheduler here).
    """

    def __init__(
        self,
        repo: GitRepo,
        root: Path,
        store: StateStore,
        on_commit: Callable[[], None] | None = None,
    ):
        self.repo = repo
        self.root = root
        self.store = store
        self.on_commit = on_commit

    def commit_batch(self, paths: Iterable[Path | str]) -> bool:
        """Commits all pending working-tree changes with a message built from `paths`.

        Args:
            paths (Iterable[Path | str]): The flushed batch.

        Returns:
            bool: True if a commit was created, False for a no-op or a failure.
        """
        paths = list(paths)
        if not paths:
            return False

        if self.repo.is_busy():
            logger.info("SKIPPED commit: merge or rebase in progress.")
            return False

        try:
            status = self.repo.status()
            if status.is_clean:
                logger.info("SKIPPED commit: working tree clean.")
                return False

            message = build_commit_message(paths, self.root)
            self.repo.add_all()
            self.repo.commit(message)
        except GitError as e:
            logger.error(f"COMMIT ERROR: {e.reason}")
            return False

        self.store.update(last_commit_at=utcnow(), pending_push=True)
        logger.info(f"COMMIT {message.splitlines()[0]}")

        if self.on_commit:
            self.on_commit()
        return True
