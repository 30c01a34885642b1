"""Stop command implementation"""

import os
import signal
import time

import click
from rich.console import Console

from ..util import (
    get_instance_path,
    is_initialized,
    is_running,
    get_pid_file,
    process_alive,
    read_pid,
)

console = Console()

GRACE_PERIOD_SECONDS = 10


def _wait_for_exit(pid: int, timeout: float) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if not process_alive(pid):
            return True
        time.sleep(0.2)
    return not process_alive(pid)


@click.command(name="stop", help="Stop SOS Relay server")
@click.argument(
    "path",
    type=click.Path(),
    required=False,
)
@click.option(
    "--force",
    "-f",
    is_flag=True,
    help="Force kill if graceful shutdown fails",
)
def stop(path: str = None, force: bool = False):
    """Stop SOS Relay server

    Sends SIGTERM and waits for the server to exit. With --force, a server
    still running after the grace period is killed.

    Args:
        path: Instance directory path (default: ~/.sosrelay)
        force: Force kill if graceful shutdown fails
    """
    instance_path = get_instance_path(path)

    if not is_initialized(instance_path):
        console.print(
            f"[red]Error: Not initialized at {instance_path}[/red]"
        )
        raise click.Abort()

    if not is_running(instance_path):
        console.print(f"[yellow]Instance not running at {instance_path}[/yellow]")
        return

    pid = read_pid(instance_path)
    pid_file = get_pid_file(instance_path)

    console.print(f"Stopping SOS Relay (pid {pid})...")
    try:
        os.kill(pid, signal.SIGTERM)
    except ProcessLookupError:
        pid_file.unlink(missing_ok=True)
        console.print("[green]✓ Server already stopped[/green]")
        return

    if _wait_for_exit(pid, GRACE_PERIOD_SECONDS):
        pid_file.unlink(missing_ok=True)
        console.print("[green]✓ Server stopped[/green]")
        return

    if not force:
        console.print(
            f"[red]Server did not exit within {GRACE_PERIOD_SECONDS}s. "
            "Re-run with --force to kill it.[/red]"
        )
        raise click.Abort()

    console.print("[yellow]Graceful shutdown timed out, killing server...[/yellow]")
    try:
        os.kill(pid, signal.SIGKILL)
    except ProcessLookupError:
        pass
    _wait_for_exit(pid, 2)
    pid_file.unlink(missing_ok=True)
    console.print("[green]✓ Server killed[/green]")
