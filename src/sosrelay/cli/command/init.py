"""Init command implementation"""

import json
from datetime import datetime

import click
from rich.console import Console

from ..util import get_instance_path, is_initialized, load_config, INSTANCE_FLAG_FILE

console = Console()

DEFAULT_CONFIG = """[server]
host = "0.0.0.0"
port = 3000
# Transport liveness: ping every 25s, drop peers silent for 60s
ws_ping_interval = 25
ws_ping_timeout = 60
max_message_bytes = 1000000

[storage]
# Relative paths are resolved against the instance directory
data_dir = "data"

[cors]
allow_origins = ["*"]
allow_credentials = false
allow_methods = ["GET", "POST", "PUT", "DELETE", "OPTIONS"]
allow_headers = ["*"]

[logging]
console_level = "INFO"
"""


@click.command(name="init", help="Initialize a new SOS Relay instance")
@click.argument(
    "path",
    type=click.Path(),
    required=False,
)
def init(path: str = None):
    """Initialize a new SOS Relay instance

    Args:
        path: Instance directory path (default: ~/.sosrelay)
    """
    instance_path = get_instance_path(path)

    if is_initialized(instance_path):
        console.print(
            f"[red]Error: Already initialized at {instance_path}[/red]"
        )
        raise click.Abort()

    if instance_path.exists() and any(instance_path.iterdir()):
        console.print(
            f"[red]Error: Directory is not empty: {instance_path}[/red]"
        )
        raise click.Abort()

    # 1. Create directory structure
    console.print(f"Initializing SOS Relay instance at {instance_path}")
    console.print("")

    instance_path.mkdir(parents=True, exist_ok=True)
    (instance_path / "logs").mkdir(exist_ok=True)

    # 2. Generate config.toml with default settings
    console.print("Generating configuration...")

    config_file = instance_path / "config.toml"
    config_file.write_text(DEFAULT_CONFIG)

    # 3. Initialize database
    console.print("Initializing database...")

    from sqlmodel import create_engine, SQLModel

    # Import all models to register them
    from ...backend.model import SosAlert, ServerEvent  # noqa: F401
    from ...backend.config import get_data_dir
    from ...backend.store import EventStore

    # Same resolution as the server: SOSRELAY_DATA_DIR, else [storage].data_dir
    data_dir = get_data_dir(instance_path, load_config(instance_path))
    data_dir.mkdir(parents=True, exist_ok=True)
    db_path = data_dir / EventStore.DB_FILENAME
    engine = create_engine(f"sqlite:///{db_path}", echo=False)
    SQLModel.metadata.create_all(engine)
    engine.dispose()

    # 4. Create flag file
    flag_data = {
        "initialized_at": datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
        "instance_path": str(instance_path),
        "database_path": str(db_path),
    }

    with open(instance_path / INSTANCE_FLAG_FILE, "w") as f:
        json.dump(flag_data, f, indent=2)

    # 5. Display success message
    console.print("")
    console.print("[green]✓ SOS Relay instance initialized successfully![/green]")
    console.print("")
    console.print(f"Location: {instance_path}")
    console.print("")
    console.print("Next steps:")
    console.print("  1. (Optional) Edit configuration:")
    console.print(f"     {config_file}")
    console.print("")
    console.print("  2. Start the relay server:")
    if path:
        console.print(f"     sosrelay start {path}")
    else:
        console.print("     sosrelay start")
    console.print("")
    console.print(f"Database: {db_path}")
    console.print(f"Logs: {instance_path / 'logs'}")
