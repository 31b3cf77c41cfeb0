import os
from pathlib import Path

"""Global constants and path definitions for dotsync.

This module defines the filesystem layout (adhering to XDG standards where applicable),
application identifiers, the default ignore rules applied to the watched tree and
the directory names used to categorize commits.
"""

# --- Identity ---
APP_NAME = "dotsync"
"""str: The human-readable application name."""

APP_LABEL = "com.dotsync.daemon"
"""str: The reverse-DNS style application identifier used for service units."""

DAEMON_EXECUTABLE = "dotsync-daemon"
"""str: The console script that runs the watcher loop."""

# --- Paths ---
_XDG_STATE = os.environ.get("XDG_STATE_HOME")
_BASE_STATE = Path(_XDG_STATE) if _XDG_STATE else Path.home() / ".local/state"

STATE_DIR = _BASE_STATE / "dotsync"
"""Path: The directory for runtime state data (sync state, logs, pid)."""

# Ensure state directory exists immediately upon module import.
STATE_DIR.mkdir(parents=True, exist_ok=True)

STATE_FILE = STATE_DIR / "state.json"
"""Path: The persisted SyncState record."""

LOG_FILE = STATE_DIR / "daemon.log"
"""Path: The file path for the daemon process logs."""

PID_FILE = STATE_DIR / "daemon.pid"
"""Path: The file path storing the daemon's process ID."""

# --- Configuration Paths ---
CONFIG_DIR: Path = Path.home() / ".config/dotsync"
"""Path: The directory for user configuration files."""

CONFIG_FILE: Path = CONFIG_DIR / "config.toml"
"""Path: The main configuration file path."""

DEFAULT_WATCH_DIR: Path = Path.home() / ".claude"
"""Path: The directory tree mirrored when no watch_dir is configured."""

# --- Watch Rules ---
IGNORED_DIRS = frozenset(
    {
        "node_modules",
        "cache",
        "debug",
        "file-history",
        "paste-cache",
        "shell-snapshots",
        "session-env",
        "todos",
        "plans",
        "tasks",
        "telemetry",
        "projects",
        "contexts",
    }
)
"""frozenset[str]: Directory names whose contents are never synchronized."""

IGNORED_FILES = [
    "history.jsonl",
    "stats-cache.json",
    "pause-state.json",
    "security_warnings_state_*",
    "settings.json",
    "settings.local.json",
    "changelog-config.json",
    "*.log",
    "*.log.[0-9]",
]
"""list[str]: Basename globs for session, settings and log files."""

SELF_SUBTREE = "plugins/dotsync"
"""str: The subtree (relative to the watched root) the daemon manages itself."""

# --- Commit Composition ---
CATEGORY_DIRS = ("commands", "agents", "skills", "rules")
"""tuple[str, ...]: Top-level directories that map to a commit category."""

PREVIEW_LIMIT = 5
"""int: Maximum number of changed paths listed in a commit body."""

GIT_LOCK_FILES = [
    "MERGE_HEAD",
    "REBASE_HEAD",
    "CHERRY_PICK_HEAD",
    "BISECT_LOG",
    "rebase-merge",
    "rebase-apply",
]
"""
list[str]: Git internal files indicating an
active state (merge/rebase) that blocks commits.
"""
