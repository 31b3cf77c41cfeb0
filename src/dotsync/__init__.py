"""dotsync: keep a configuration directory mirrored to a git remote.

This package provides the background daemon that watches a directory tree,
batches changes into categorized commits and pushes them on a bounded
schedule, plus the command-line interface used to run and inspect it.
"""

from . import (
    aggregator,
    cli,
    composer,
    config,
    constants,
    daemon,
    errors,
    git_wrapper,
    observer,
    scheduler,
    service,
    state,
    system,
)

__all__ = [
    "aggregator",
    "cli",
    "composer",
    "config",
    "constants",
    "daemon",
    "errors",
    "git_wrapper",
    "observer",
    "scheduler",
    "service",
    "state",
    "system",
]
