import argparse
import datetime
import logging
import os
import subprocess
import sys

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from . import daemon, service
from .config import CONFIG_FILE, Config
from .constants import APP_NAME, LOG_FILE, PID_FILE, STATE_FILE
from .state import StateStore

logger = logging.getLogger(APP_NAME)
console = Console()


def _format_time(value: datetime.datetime | None) -> str:
    if value is None:
        return "never"
    return value.astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _daemon_running() -> bool:
    """Checks whether the PID recorded by the daemon belongs to a live process."""
    if not PID_FILE.exists():
        return False
    try:
        with open(PID_FILE) as f:
            pid = int(f.read().strip())
        os.kill(pid, 0)
        return True
    except (ValueError, OSError):
        return False


def show_status() -> None:
    """Displays the daemon process state and the persisted sync state."""
    if _daemon_running():
        status_text, status_style = "Active (Running)", "bold green"
    elif service.is_service_enabled():
        status_text, status_style = "Enabled (Not running)", "yellow"
    else:
        status_text, status_style = "Stopped", "bold red"

    conf = Config.load()
    state = StateStore(STATE_FILE).load()

    content = Text()
    content.append("Daemon:       ", style="bold")
    content.append(status_text + "\n", style=status_style)
    content.append("Watching:     ", style="bold")
    content.append(f"{conf.core.watch_path}\n")
    content.append("Last commit:  ", style="bold")
    content.append(f"{_format_time(state.last_commit_at)}\n")
    content.append("Last push:    ", style="bold")
    content.append(f"{_format_time(state.last_push_at)}\n")
    content.append("Pending push: ", style="bold")
    if state.pending_push:
        content.append("yes", style="bold yellow")
    else:
        content.append("no", style="green")

    console.print(Panel(content, title="dotsync Status", expand=False))


def tail_log() -> None:
    """Follows the daemon log file in real-time."""
    if not LOG_FILE.exists():
        console.print(f"[red]No log file found yet at {LOG_FILE}.[/red]")
        return

    console.print(f"Tailing [bold cyan]{LOG_FILE}[/bold cyan] (Ctrl+C to stop)...")
    try:
        subprocess.run(["tail", "-n", "1000", "-f", str(LOG_FILE)])
    except KeyboardInterrupt:
        console.print("\nStopped.", style="dim")


def open_config() -> None:
    """Opens the configuration file in the user's editor, creating a stub first."""
    if not CONFIG_FILE.exists():
        CONFIG_FILE.parent.mkdir(parents=True, exist_ok=True)
        with open(CONFIG_FILE, "w") as f:
            f.write(
                "# dotsync Configuration\n\n"
                "[daemon]\n"
                "# Options: eager, balanced, lazy\n"
                '# preset = "balanced"\n'
            )

    editor = os.environ.get("EDITOR") or ("open" if sys.platform == "darwin" else "nano")
    console.print(f"Opening [cyan]{CONFIG_FILE}[/cyan]...")
    try:
        subprocess.run([editor, str(CONFIG_FILE)])
    except OSError as e:
        console.print(f"[red]Could not open editor: {e}[/red]")


def show_config_reference() -> None:
    """Displays a formatted table of all available configuration options."""
    table = Table(title="dotsync Configuration Schema", show_lines=True)
    table.add_column("Section", style="cyan", justify="right")
    table.add_column("Key", style="green")
    table.add_column("Type", style="dim")
    table.add_column("Default", style="yellow")
    table.add_column("Description")

    table.add_row(
        "core", "watch_dir", "str", '"~/.claude"', "The directory tree to mirror."
    )
    table.add_row("", "remote_name", "str", '"origin"', "The remote to push to.")
    table.add_row("", "branch", "str", '"main"', "The tracked branch.")

    table.add_row(
        "daemon",
        "preset",
        "str",
        "None",
        "Interval preset: 'eager', 'balanced', or 'lazy'.",
    )
    table.add_row(
        "",
        "debounce_interval",
        "int | str",
        '"30s"',
        "Quiet period after the last change before committing.",
    )
    table.add_row(
        "",
        "push_interval",
        "int | str",
        '"5m"',
        "Time between push attempts (e.g., '5m', '1hr', 300).",
    )
    table.add_row(
        "",
        "alert_after",
        "int",
        "3",
        "Failed push cycles before a desktop alert (0 disables).",
    )

    table.add_row(
        "files", "ignore", "list", "[]", "Extra filename globs to never commit."
    )
    table.add_row(
        "limits",
        "max_log_size",
        "int | str",
        '"5mb"',
        "Max size for log files before rotation (e.g., '5mb', '1gb').",
    )

    console.print(table)


def main() -> None:
    """Main entry point for the dotsync CLI."""
    parser = argparse.ArgumentParser(
        prog=APP_NAME,
        description="Watch a directory tree and mirror it to a git remote.",
    )
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("start", help="Run the watcher in the foreground (default)")
    subparsers.add_parser("status", help="Show daemon and sync state")
    subparsers.add_parser("install", help="Install the background service")
    subparsers.add_parser("uninstall", help="Remove the background service")
    subparsers.add_parser("log", help="Tail the daemon log file")

    config_parser = subparsers.add_parser(
        "config", help="Open the config file or view options"
    )
    config_parser.add_argument(
        "--list",
        "-l",
        action="store_true",
        help="List all available configuration options and their descriptions",
    )

    args = parser.parse_args()

    if args.command == "status":
        show_status()
        return
    elif args.command == "install":
        with console.status("Installing background service...", spinner="dots"):
            service.install()
        return
    elif args.command == "uninstall":
        with console.status("Uninstalling service...", spinner="dots"):
            service.uninstall()
        return
    elif args.command == "log":
        tail_log()
        return
    elif args.command == "config":
        if args.list:
            show_config_reference()
        else:
            open_config()
        return

    # Default Action: run the watcher in the foreground.
    daemon.main(interactive=True)


if __name__ == "__main__":
    main()
