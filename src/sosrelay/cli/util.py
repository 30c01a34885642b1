"""CLI utility functions"""

import json
import os
from pathlib import Path

import tomli

INSTANCE_FLAG_FILE = ".sosrelay_instance"
PID_FILE = ".sosrelay.pid"


def get_instance_path(path: str | None = None) -> Path:
    """Get instance path, default to ~/.sosrelay

    Args:
        path: Custom path (relative or absolute), None for default

    Returns:
        Resolved absolute path
    """
    if path is None:
        return Path.home() / ".sosrelay"
    return Path(path).resolve()


def is_initialized(instance_path: Path) -> bool:
    """Check if instance is initialized (flag file exists)"""
    return (instance_path / INSTANCE_FLAG_FILE).exists()


def get_instance_info(instance_path: Path) -> dict:
    """Get instance metadata

    Raises:
        FileNotFoundError: If not initialized
    """
    flag_file = instance_path / INSTANCE_FLAG_FILE
    if not flag_file.exists():
        raise FileNotFoundError(
            f"Instance not initialized at {instance_path}"
        )

    with open(flag_file, "r") as f:
        return json.load(f)


def load_config(instance_path: Path) -> dict:
    """Load config.toml

    Raises:
        FileNotFoundError: If config.toml is missing
        tomli.TOMLDecodeError: If config.toml is not valid TOML
    """
    config_file = instance_path / "config.toml"
    with open(config_file, "rb") as f:
        return tomli.load(f)


def get_pid_file(instance_path: Path) -> Path:
    return instance_path / PID_FILE


def read_pid(instance_path: Path) -> int | None:
    """PID recorded by ``start``, or None if missing or unreadable"""
    pid_file = get_pid_file(instance_path)
    try:
        return int(pid_file.read_text().strip())
    except (FileNotFoundError, ValueError):
        return None


def process_alive(pid: int) -> bool:
    """Check whether a process with this PID exists"""
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True


def is_running(instance_path: Path) -> bool:
    """Check if instance is running: PID file exists and its process is alive

    A PID file left behind by a crashed server is removed.
    """
    pid = read_pid(instance_path)
    if pid is None:
        return False
    if process_alive(pid):
        return True
    get_pid_file(instance_path).unlink(missing_ok=True)
    return False
