import logging
import os
import re
import tomllib
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

from .constants import (
    APP_NAME,
    CONFIG_FILE,
    DEFAULT_WATCH_DIR,
)

logger = logging.getLogger(APP_NAME)

WATCH_DIR_ENV = "DOTSYNC_WATCH_DIR"


def parse_size(value: int | str) -> int:
    """Converts human-readable size strings (e.g., '5MB') to bytes."""
    if isinstance(value, int):
        return value
    match = re.match(r"^(\d+(?:\.\d+)?)\s*([kmg]b?)$", str(value).strip().lower())
    if not match:
        raise ValueError(f"Invalid size format '{value}'")
    num, unit = float(match.group(1)), match.group(2)
    multiplier = {
        "k": 1024,
        "kb": 1024,
        "m": 1024**2,
        "mb": 1024**2,
        "g": 1024**3,
        "gb": 1024**3,
    }
    return int(num * multiplier[unit])


def parse_time(value: int | float | str) -> float:
    """Converts human-readable time strings (e.g., '30s', '5m') to seconds."""
    if isinstance(value, (int, float)):
        return float(value)
    match = re.match(
        r"^(\d+(?:\.\d+)?)\s*(s|sec|m|min|h|hr)s?$", str(value).strip().lower()
    )
    if not match:
        raise ValueError(f"Invalid time format '{value}'")
    num, unit = float(match.group(1)), match.group(2)
    multiplier = {"s": 1, "sec": 1, "m": 60, "min": 60, "h": 3600, "hr": 3600}
    return num * multiplier[unit]


@dataclass
class CoreConfig:
    """Core application settings.

    Attributes:
        watch_dir (str): The directory tree to watch and commit.
        remote_name (str): The git remote to pull from and push to.
        branch (str): The tracked branch on that remote.
    """

    watch_dir: str = str(DEFAULT_WATCH_DIR)
    remote_name: str = "origin"
    branch: str = "main"

    @property
    def watch_path(self) -> Path:
        """Path: The expanded, absolute watched root."""
        return Path(self.watch_dir).expanduser().absolute()


@dataclass
class LimitsConfig:
    """Resource limitation settings.

    Attributes:
        max_log_size (int): Max bytes for log files before rotation.
    """

    max_log_size: int = 5 * 1024 * 1024


@dataclass
class FilesConfig:
    """File filtering settings.

    Attributes:
        ignore (list[str]): Extra basename globs to ignore (appended to defaults).
    """

    ignore: list[str] = field(default_factory=list)


@dataclass
class DaemonConfig:
    """Daemon operational settings.

    Attributes:
        debounce_interval (float): Quiet period (seconds) before a batch is committed.
        push_interval (float): Seconds between push attempts.
        alert_after (int): Consecutive failed push cycles before a desktop alert.
            Zero disables alerts.
        preset (str | None): A timing preset name (e.g. 'eager').
    """

    debounce_interval: float = 30.0
    push_interval: float = 300.0
    alert_after: int = 3
    preset: str | None = None

    def apply_preset(self) -> None:
        """Overwrites intervals based on the selected preset."""
        if self.preset == "eager":
            self.debounce_interval = 10.0
            self.push_interval = 60.0  # 1 min
        elif self.preset == "balanced":
            self.debounce_interval = 30.0
            self.push_interval = 300.0  # 5 mins
        elif self.preset == "lazy":
            self.debounce_interval = 120.0
            self.push_interval = 1800.0  # 30 mins


@dataclass
class Config:
    """Global configuration aggregator.

    Attributes:
        core (CoreConfig): Core settings.
        limits (LimitsConfig): Resource limits.
        files (FilesConfig): File filtering settings.
        daemon (DaemonConfig): Daemon timing settings.
    """

    core: CoreConfig = field(default_factory=CoreConfig)
    limits: LimitsConfig = field(default_factory=LimitsConfig)
    files: FilesConfig = field(default_factory=FilesConfig)
    daemon: DaemonConfig = field(default_factory=DaemonConfig)

    @classmethod
    def load(cls, path: Path | None = None) -> "Config":
        """Loads configuration from defaults, the config file and the environment.

        Args:
            path (Path | None): An explicit config file. Defaults to CONFIG_FILE.

        Returns:
            Config: The fully merged configuration object.
        """
        instance = cls()
        source = path or CONFIG_FILE
        if source.exists():
            instance._merge_from_file(source)

        if env_dir := os.environ.get(WATCH_DIR_ENV):
            instance.core = replace(instance.core, watch_dir=env_dir)

        return instance

    def _merge_from_file(self, path: Path) -> None:
        """Parses a TOML file and merges it into the current instance.

        Args:
            path (Path): Path to the TOML file.
        """
        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)

            if not data:
                return

            if "core" in data:
                self.core = self._update_dataclass("core", self.core, data["core"])
            if "limits" in data:
                self.limits = self._update_dataclass(
                    "limits", self.limits, data["limits"]
                )
            if "daemon" in data:
                self.daemon = self._update_dataclass(
                    "daemon", self.daemon, data["daemon"]
                )
                self.daemon.apply_preset()
            if "files" in data:
                # Extract ignore list to prevent it from being overwritten during dataclass update
                new_ignores = data["files"].pop("ignore", [])
                self.files = self._update_dataclass("files", self.files, data["files"])
                if new_ignores:
                    self.files.ignore.extend(new_ignores)
                    self.files.ignore = list(dict.fromkeys(self.files.ignore))

        except tomllib.TOMLDecodeError as e:
            logger.error(f"Config syntax error in {path}: {e}")
        except Exception as e:
            logger.warning(f"Failed to load config from {path}: {e}")

    @staticmethod
    def _update_dataclass(section_name: str, instance: Any, updates: dict) -> Any:
        """Updates a dataclass, warning on invalid keys and parsing human-readable formats."""
        valid_keys = instance.__dataclass_fields__.keys()
        filtered_updates = {}

        # 1. Catch and warn about typos / unknown keys
        invalid_keys = set(updates.keys()) - set(valid_keys)
        if invalid_keys:
            logger.warning(
                f"Unknown config keys in [{section_name}]: {', '.join(sorted(invalid_keys))}. Ignoring."
            )

        # 2. Process valid keys
        for k, v in updates.items():
            if k not in valid_keys:
                continue

            try:
                if k == "max_log_size":
                    filtered_updates[k] = parse_size(v)
                elif k in ["debounce_interval", "push_interval"]:
                    filtered_updates[k] = parse_time(v)
                elif k == "alert_after":
                    if not isinstance(v, int) or v < 0:
                        raise ValueError(f"Expected a non-negative integer, got {v!r}")
                    filtered_updates[k] = v
                else:
                    filtered_updates[k] = v
            except ValueError as e:
                logger.warning(
                    f"Config error in [{section_name}].{k}: {e}. Falling back to default."
                )

        return replace(instance, **filtered_updates)
