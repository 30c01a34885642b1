"""Configuration resolution: config.toml values plus environment overrides

Environment variables win over config.toml:
- PORT: listening port
- SOSRELAY_DATA_DIR: directory holding the SQLite database
"""

import os
from pathlib import Path

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 3000
DEFAULT_DATA_DIR = "data"
DEFAULT_WS_PING_INTERVAL = 25.0
DEFAULT_WS_PING_TIMEOUT = 60.0
DEFAULT_MAX_MESSAGE_BYTES = 1_000_000

PORT_ENV_VAR = "PORT"
DATA_DIR_ENV_VAR = "SOSRELAY_DATA_DIR"


def get_server_settings(config: dict) -> dict:
    """Server settings from the [server] section with env overrides applied

    Raises:
        ValueError: If the port is not an integer in 1..65535
    """
    server = config.get("server", {})

    port = os.environ.get(PORT_ENV_VAR) or server.get("port", DEFAULT_PORT)
    try:
        port = int(port)
    except (TypeError, ValueError):
        raise ValueError(f"Invalid port: {port!r}")
    if not 0 < port < 65536:
        raise ValueError(f"Port out of range: {port}")

    return {
        "host": server.get("host", DEFAULT_HOST),
        "port": port,
        "ws_ping_interval": float(server.get("ws_ping_interval", DEFAULT_WS_PING_INTERVAL)),
        "ws_ping_timeout": float(server.get("ws_ping_timeout", DEFAULT_WS_PING_TIMEOUT)),
        "max_message_bytes": int(server.get("max_message_bytes", DEFAULT_MAX_MESSAGE_BYTES)),
    }


def get_data_dir(instance_path: Path, config: dict) -> Path:
    """Absolute data directory; relative paths are resolved against the instance"""
    data_dir = os.environ.get(DATA_DIR_ENV_VAR) or config.get("storage", {}).get("data_dir", DEFAULT_DATA_DIR)
    path = Path(data_dir).expanduser()
    if not path.is_absolute():
        path = instance_path / path
    return path
