"""Tests for commit classification, message composition and the commit step."""

from pathlib import Path
from unittest.mock import MagicMock

import pytest

from dotsync.composer import (
    CommitCategory,
    CommitComposer,
    build_commit_message,
    classify,
)
from dotsync.errors import GitError
from dotsync.git_wrapper import GitStatus
from dotsync.state import StateStore, SyncState

ROOT = Path("/home/user/.claude")


@pytest.mark.parametrize(
    ("rel", "category"),
    [
        ("commands/deploy.md", CommitCategory.COMMANDS),
        ("agents/nested/dir/x.md", CommitCategory.AGENTS),
        ("skills/pdf/SKILL.md", CommitCategory.SKILLS),
        ("rules/style.md", CommitCategory.RULES),
        ("CLAUDE.md", CommitCategory.OTHER),
        ("commands", CommitCategory.OTHER),
        ("commandsx/a.md", CommitCategory.OTHER),
        ("plugins/commands/a.md", CommitCategory.OTHER),
    ],
)
def test_classify(rel: str, category: CommitCategory) -> None:
    assert classify(rel) is category


def test_message_for_small_batch() -> None:
    paths = [ROOT / "commands/a.md", ROOT / "commands/b.md", ROOT / "agents/c.md"]

    message = build_commit_message(paths, ROOT)

    assert message == (
        "update 2 command(s), 1 agent(s)\n"
        "\n"
        "- commands/a.md\n"
        "- commands/b.md\n"
        "- agents/c.md"
    )


def test_message_truncates_preview_after_five() -> None:
    paths = [ROOT / f"rules/r{i}.md" for i in range(6)] + [ROOT / "CLAUDE.md"]

    lines = build_commit_message(paths, ROOT).splitlines()

    assert lines[0] == "update 6 rule(s), 1 other file(s)"
    assert lines[2:7] == [f"- rules/r{i}.md" for i in range(5)]
    assert lines[7] == "...and 2 more"
    assert len(lines) == 8


def test_message_orders_categories() -> None:
    paths = [ROOT / "x.txt", ROOT / "skills/s.md", ROOT / "commands/c.md"]

    title = build_commit_message(paths, ROOT).splitlines()[0]

    assert title == "update 1 command(s), 1 skill(s), 1 other file(s)"


def test_commit_batch_success(repo: MagicMock, store: StateStore) -> None:
    on_commit = MagicMock()
    composer = CommitComposer(repo, ROOT, store, on_commit=on_commit)

    assert composer.commit_batch([ROOT / "commands/a.md"])

    repo.add_all.assert_called_once()
    repo.commit.assert_called_once_with("update 1 command(s)\n\n- commands/a.md")
    on_commit.assert_called_once()
    assert store.current.pending_push
    assert store.current.last_commit_at is not None
    assert store.load() == store.current


def test_commit_batch_clean_tree_is_noop(
    repo: MagicMock, store: StateStore, caplog: pytest.LogCaptureFixture
) -> None:
    """A batch whose changes already reverted (or were committed) is skipped."""
    repo.status.return_value = GitStatus()
    on_commit = MagicMock()
    composer = CommitComposer(repo, ROOT, store, on_commit=on_commit)

    assert not composer.commit_batch([ROOT / "commands/a.md"])

    repo.commit.assert_not_called()
    on_commit.assert_not_called()
    assert store.current == SyncState()
    assert "working tree clean" in caplog.text


def test_commit_batch_failure_leaves_state(
    repo: MagicMock, store: StateStore, caplog: pytest.LogCaptureFixture
) -> None:
    repo.commit.side_effect = GitError("pre-commit hook failed")
    on_commit = MagicMock()
    composer = CommitComposer(repo, ROOT, store, on_commit=on_commit)

    assert not composer.commit_batch([ROOT / "commands/a.md"])

    on_commit.assert_not_called()
    assert store.current == SyncState()
    assert "COMMIT ERROR: pre-commit hook failed" in caplog.text


def test_commit_batch_skips_while_repo_busy(repo: MagicMock, store: StateStore) -> None:
    repo.is_busy.return_value = True
    composer = CommitComposer(repo, ROOT, store)

    assert not composer.commit_batch([ROOT / "commands/a.md"])

    repo.status.assert_not_called()
