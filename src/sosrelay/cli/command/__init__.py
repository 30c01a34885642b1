"""CLI command package"""

from .init import init
from .start import start
from .stop import stop
from .status import status

__all__ = ["init", "start", "stop", "status"]
