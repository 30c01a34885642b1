"""Start command implementation"""

import errno
import os
import socket

import click
from rich.console import Console

from ..util import (
    get_instance_path,
    is_initialized,
    is_running,
    get_pid_file,
    load_config,
)

console = Console()


def _check_port_free(host: str, port: int) -> None:
    """Fail early with a readable message when the port is taken

    Raises:
        OSError: If the address cannot be bound
    """
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((host, port))


@click.command(name="start", help="Start SOS Relay server")
@click.argument(
    "path",
    type=click.Path(),
    required=False,
)
def start(path: str = None):
    """Start SOS Relay server in the foreground

    The PORT environment variable overrides [server].port and
    SOSRELAY_DATA_DIR overrides [storage].data_dir.

    Args:
        path: Instance directory path (default: ~/.sosrelay)
    """
    instance_path = get_instance_path(path)

    if not is_initialized(instance_path):
        console.print(
            f"[red]Error: Not initialized at {instance_path}[/red]"
        )
        console.print(
            f"[yellow]Run: sosrelay init {path if path else ''}[/yellow]"
        )
        raise click.Abort()

    if is_running(instance_path):
        console.print(
            "[red]Error: Instance already running[/red]"
        )
        console.print(f"[yellow]Location: {instance_path}[/yellow]")
        raise click.Abort()

    try:
        config = load_config(instance_path)
    except Exception as e:
        console.print(f"[red]Error loading config: {e}[/red]")
        raise click.Abort()

    from sosrelay.backend.config import get_data_dir, get_server_settings

    try:
        settings = get_server_settings(config)
    except ValueError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise click.Abort()

    host = settings["host"]
    port = settings["port"]

    try:
        _check_port_free(host, port)
    except OSError as e:
        if e.errno == errno.EADDRINUSE:
            console.print(f"[red]❌ Port {port} is already in use. Try a different port:[/red]")
            console.print(f"[yellow]   PORT={port + 1} sosrelay start {path or ''}[/yellow]")
        else:
            console.print(f"[red]Error: cannot listen on {host}:{port}: {e}[/red]")
        raise click.Abort()

    console.print("[cyan]==========================================[/cyan]")
    console.print("[cyan]🚨 Offline SOS Alert Server 🚨[/cyan]")
    console.print("[cyan]==========================================[/cyan]")
    console.print(f"[cyan]📡 Server: http://{host}:{port}[/cyan]")
    console.print(f"[cyan]🔌 WebSocket: ws://{host}:{port}/ws[/cyan]")
    console.print(f"[cyan]💾 Data: {get_data_dir(instance_path, config)}[/cyan]")
    console.print("[cyan]🌐 Network: available on local WiFi/hotspot[/cyan]")
    console.print("")

    import uvicorn
    from sosrelay.backend.app import create_app

    app = create_app(instance_path, config)

    pid_file = get_pid_file(instance_path)
    pid_file.write_text(str(os.getpid()))

    try:
        uvicorn.run(
            app,
            host=host,
            port=port,
            ws_ping_interval=settings["ws_ping_interval"],
            ws_ping_timeout=settings["ws_ping_timeout"],
            ws_max_size=settings["max_message_bytes"],
        )
    finally:
        pid_file.unlink(missing_ok=True)
