import plistlib
import shutil
import subprocess
import sys
from pathlib import Path

from rich.console import Console

from .constants import APP_LABEL, DAEMON_EXECUTABLE, LOG_FILE

console = Console()


def get_executable() -> str:
    """Locates the installed daemon executable in the system path.

    Returns:
        str: The absolute path to the 'dotsync-daemon' executable.

    Raises:
        SystemExit: If the executable is not found in the PATH.
    """
    exe = shutil.which(DAEMON_EXECUTABLE)
    if not exe:
        console.print(
            f"[bold red]ERROR:[/bold red] Could not find '{DAEMON_EXECUTABLE}'. "
            "Ensure the package is installed."
        )
        sys.exit(1)
    return exe


def get_unit_path() -> Path:
    """Resolves the service definition path for the current OS.

    Returns:
        Path: The systemd user unit (Linux) or LaunchAgent plist (macOS).

    Raises:
        NotImplementedError: On platforms without a supported service manager.
    """
    home = Path.home()
    if sys.platform.startswith("linux"):
        return home / f".config/systemd/user/{APP_LABEL}.service"
    if sys.platform == "darwin":
        return home / f"Library/LaunchAgents/{APP_LABEL}.plist"

    raise NotImplementedError(f"No supported service manager on {sys.platform}.")


def install_linux(unit_path: Path, executable: str) -> None:
    """Writes and enables a long-running systemd user service.

    Args:
        unit_path (Path): The target path for the .service file.
        executable (str): The path to the daemon executable.
    """
    unit_path.parent.mkdir(parents=True, exist_ok=True)

    service_content = f"""[Unit]
Description=dotsync directory synchronization daemon

[Service]
ExecStart={executable}
Restart=on-failure
RestartSec=30

[Install]
WantedBy=default.target
"""
    with open(unit_path, "w") as f:
        f.write(service_content)

    subprocess.run(["systemctl", "--user", "daemon-reload"], check=True)
    subprocess.run(
        ["systemctl", "--user", "enable", "--now", unit_path.name], check=True
    )
    console.print(
        f"[bold green]SUCCESS:[/bold green] dotsync systemd service active (Linux).\n"
        f"Check status: systemctl --user status {unit_path.name}"
    )


def install_macos(plist_path: Path, executable: str) -> None:
    """Writes and loads a KeepAlive LaunchAgent.

    Args:
        plist_path (Path): The target LaunchAgent path.
        executable (str): The path to the daemon executable.
    """
    plist_path.parent.mkdir(parents=True, exist_ok=True)

    agent = {
        "Label": APP_LABEL,
        "ProgramArguments": [executable],
        "RunAtLoad": True,
        "KeepAlive": True,
        "StandardOutPath": str(LOG_FILE.with_name("launchd.out.log")),
        "StandardErrorPath": str(LOG_FILE.with_name("launchd.err.log")),
    }
    with open(plist_path, "wb") as f:
        plistlib.dump(agent, f)

    subprocess.run(["launchctl", "load", str(plist_path)], check=True)
    console.print(
        "[bold green]SUCCESS:[/bold green] dotsync LaunchAgent loaded (macOS).\n"
        f"Logs: {LOG_FILE}"
    )


def install() -> None:
    """Installs the background daemon as a user service."""
    exe = get_executable()
    path = get_unit_path()

    console.print("Installing background service...")
    if sys.platform.startswith("linux"):
        install_linux(path, exe)
    elif sys.platform == "darwin":
        install_macos(path, exe)


def uninstall() -> None:
    """Stops the background daemon and removes its service definition."""
    path = get_unit_path()

    if sys.platform.startswith("linux"):
        subprocess.run(
            ["systemctl", "--user", "disable", "--now", path.name],
            stderr=subprocess.DEVNULL,
        )
        path.unlink(missing_ok=True)
        subprocess.run(["systemctl", "--user", "daemon-reload"])

    elif sys.platform == "darwin":
        if path.exists():
            subprocess.run(
                ["launchctl", "unload", str(path)], stderr=subprocess.DEVNULL
            )
            path.unlink()

    console.print("[bold green]SUCCESS:[/bold green] Service uninstalled.")


def is_service_enabled() -> bool:
    """Reports whether the service definition is installed and enabled."""
    try:
        path = get_unit_path()
    except NotImplementedError:
        return False

    if sys.platform.startswith("linux"):
        try:
            res = subprocess.run(
                ["systemctl", "--user", "is-enabled", path.name],
                capture_output=True,
                text=True,
            )
        except FileNotFoundError:
            return False
        return res.returncode == 0

    return path.exists()
