"""Status command implementation"""

import click
from rich.console import Console

from ..util import (
    get_instance_path,
    get_instance_info,
    is_initialized,
    is_running,
    read_pid,
)

console = Console()


@click.command(name="status", help="Show whether the SOS Relay server is running")
@click.argument(
    "path",
    type=click.Path(),
    required=False,
)
def status(path: str = None):
    """Show instance status

    Args:
        path: Instance directory path (default: ~/.sosrelay)
    """
    instance_path = get_instance_path(path)

    if not is_initialized(instance_path):
        console.print(f"[red]Not initialized at {instance_path}[/red]")
        raise click.Abort()

    info = get_instance_info(instance_path)
    console.print(f"Location: {instance_path}")
    console.print(f"Initialized: {info.get('initialized_at')}")
    console.print(f"Database: {info.get('database_path')}")

    if is_running(instance_path):
        console.print(f"[green]Running (pid {read_pid(instance_path)})[/green]")
    else:
        console.print("[yellow]Stopped[/yellow]")
