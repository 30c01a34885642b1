"""Logging configuration for SOS Relay backend"""

import logging
from pathlib import Path
from logging.handlers import TimedRotatingFileHandler


class ProjectOnlyFilter(logging.Filter):
    """Filter to only allow logs from sosrelay.* modules"""

    def filter(self, record):
        return record.name.startswith('sosrelay.')


def setup_logging(instance_path: Path, console_level: str = "INFO") -> None:
    """Setup logging configuration for SOS Relay backend

    Creates three log files in the instance logs directory:
    - debug.log: DEBUG+ logs from sosrelay.* modules only
    - info.log: INFO+ logs from all modules
    - error.log: ERROR+ logs from all modules

    Additionally, logs from all modules at ``console_level`` and above are
    output to console (stdout).

    All logs are rotated daily at midnight, keeping 30 days of history.

    Args:
        instance_path: Path to the SOS Relay instance directory
        console_level: Minimum level name for the console handler
    """
    logs_dir = instance_path / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)

    log_format = '%(asctime)s.%(msecs)03d - %(levelname)s - %(filename)s:%(lineno)d - %(message)s'
    date_format = '%Y-%m-%d %H:%M:%S'
    formatter = logging.Formatter(log_format, datefmt=date_format)

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)

    # Close handlers from a previous setup (e.g. app re-created in the same process)
    for handler in list(root_logger.handlers):
        if isinstance(handler, TimedRotatingFileHandler):
            handler.close()
            root_logger.removeHandler(handler)
        elif getattr(handler, "_sosrelay_console", False):
            root_logger.removeHandler(handler)

    # ==================== DEBUG Handler ====================
    debug_handler = TimedRotatingFileHandler(
        filename=logs_dir / "debug.log",
        when='midnight',
        interval=1,
        backupCount=30,
        encoding='utf-8'
    )
    debug_handler.setLevel(logging.DEBUG)
    debug_handler.setFormatter(formatter)
    debug_handler.addFilter(ProjectOnlyFilter())
    root_logger.addHandler(debug_handler)

    # ==================== INFO Handler ====================
    info_handler = TimedRotatingFileHandler(
        filename=logs_dir / "info.log",
        when='midnight',
        interval=1,
        backupCount=30,
        encoding='utf-8'
    )
    info_handler.setLevel(logging.INFO)
    info_handler.setFormatter(formatter)
    root_logger.addHandler(info_handler)

    # ==================== ERROR Handler ====================
    error_handler = TimedRotatingFileHandler(
        filename=logs_dir / "error.log",
        when='midnight',
        interval=1,
        backupCount=30,
        encoding='utf-8'
    )
    error_handler.setLevel(logging.ERROR)
    error_handler.setFormatter(formatter)
    root_logger.addHandler(error_handler)

    # ==================== Console Handler ====================
    console_handler = logging.StreamHandler()
    console_handler.setLevel(console_level.upper())
    console_handler.setFormatter(formatter)
    console_handler._sosrelay_console = True
    root_logger.addHandler(console_handler)

    logger = logging.getLogger(__name__)
    logger.info(f"Logging initialized for instance: {instance_path}")
