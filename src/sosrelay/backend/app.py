"""FastAPI application factory and configuration"""

import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware

from .. import __version__
from .api import admin_router, websocket_router
from .broadcast import BroadcastRouter
from .config import get_data_dir, get_server_settings
from .enum import ServerEventType
from .exception import SosRelayException, StoreError
from .logging import setup_logging
from .registry import ConnectionRegistry
from .schema.response import ErrorResponse
from .store import EventStore

logger = logging.getLogger(__name__)


def create_app(instance_path: Path, config: dict) -> FastAPI:
    """Create and configure FastAPI application instance

    This is the application factory function that initializes logging,
    creates the FastAPI app, configures middleware, registers exception
    handlers, and includes routers. The event store, connection registry
    and broadcast router are built in the lifespan handler, once per
    process, and stored in app.state.

    Args:
        instance_path: Path to the SOS Relay instance directory
        config: Configuration dictionary loaded from config.toml

    Returns:
        Configured FastAPI application instance
    """
    setup_logging(instance_path, config.get("logging", {}).get("console_level", "INFO"))

    server_settings = get_server_settings(config)
    data_dir = get_data_dir(instance_path, config)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("SOS Relay starting...")

        # Unable to open durable storage is fatal
        try:
            event_store = EventStore.from_data_dir(data_dir)
            await event_store.initialize()
        except StoreError as e:
            logger.error(f"Event store initialization failed: {e.message}")
            raise

        connection_registry = ConnectionRegistry()
        broadcast_router = BroadcastRouter(event_store, connection_registry)

        app.state.event_store = event_store
        app.state.connection_registry = connection_registry
        app.state.broadcast_router = broadcast_router

        await event_store.append_event(
            ServerEventType.SERVER_STARTED,
            {"port": server_settings["port"], "database": str(event_store.db_path)}
        )
        logger.info(f"SOS Relay ready, database: {event_store.db_path}")

        yield

        logger.info("Disconnecting all sessions...")
        try:
            await connection_registry.disconnect_all()
        except Exception as e:
            logger.error(f"Session cleanup failed: {e}")

        await event_store.append_event(ServerEventType.SERVER_STOPPED, {})
        await event_store.close()
        logger.info("SOS Relay shut down")

    app = FastAPI(
        title="SOS Relay API",
        description="Offline emergency alert relay for local networks",
        version=__version__,
        lifespan=lifespan,
    )

    app.state.config = config
    app.state.instance_path = instance_path
    app.state.max_message_bytes = server_settings["max_message_bytes"]

    # ==================== CORS Configuration ====================

    # Local network clients come from arbitrary origins
    cors_config = config.get('cors', {})
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_config.get('allow_origins', ["*"]),
        allow_credentials=cors_config.get('allow_credentials', False),
        allow_methods=cors_config.get('allow_methods', ["GET", "POST", "PUT", "DELETE", "OPTIONS"]),
        allow_headers=cors_config.get('allow_headers', ["*"]),
    )

    # ==================== Exception Handlers ====================

    @app.exception_handler(SosRelayException)
    async def sosrelay_exception_handler(request: Request, exc: SosRelayException) -> JSONResponse:
        """Handle all SOS Relay exceptions raised by HTTP routes

        Returns:
            JSONResponse with ErrorResponse format and the exception's status code
        """
        logger.warning(f"{exc.code} on {request.method} {request.url.path}: {exc.message}")
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse(error=exc.message, code=exc.code).model_dump()
        )

    # ==================== Router Registration ====================

    app.include_router(admin_router)
    app.include_router(websocket_router)

    return app
