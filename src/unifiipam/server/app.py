"""
UniFi IPAM FastAPI Application.

This module provides the main entry point for the manager server, which
hosts the resource store and, optionally, the controllers reconciling it.

Responsibilities:
    - Resource CRUD over HTTP (pools, claims, instances, secrets)
    - Read access to bound addresses
    - Admission rules for pools and instances
    - Claim, pool and instance reconciliation
"""

import os
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from unifiipam.controllers.manager import Manager
from unifiipam.models.enums import LogLevel
from unifiipam.server import state
from unifiipam.server.config import config
from unifiipam.server.endpoints import addresses, claims, health, instances, pools, secrets
from unifiipam.store.base import close_database, initialize_database
from unifiipam.store.resources import ResourceStore
from unifiipam.utils.logger import configure_logging, get_logger
from unifiipam.webhooks import register_webhooks

logger = get_logger(__name__)


# =============================================================================
# Lifecycle Events
# =============================================================================


async def startup_event():
    """Open the store and start the controllers on server startup."""
    logger.info("Manager server starting up")
    logger.debug(f"Database file: {config.DB_FILE}")

    _ensure_database_directory(config.DB_FILE)
    initialize_database(config.DB_FILE)

    store = ResourceStore()
    if config.WEBHOOKS_ENABLED:
        register_webhooks(store)
        logger.debug("Admission webhooks registered")
    state.set_store(store)

    if config.CONTROLLERS_ENABLED:
        manager = Manager(store, config)
        await manager.start()
        state.set_manager(manager)
    else:
        logger.warning("Controllers disabled, resources will not be reconciled")


async def shutdown_event():
    """Stop the controllers and close the store on server shutdown."""
    logger.info("Manager server shutting down")

    manager = state.get_manager()
    if manager is not None:
        await manager.stop()
        state.set_manager(None)

    state.set_store(None)
    close_database()

    logger.info("Manager server shut down complete")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Run startup before serving requests and shutdown after."""
    await startup_event()
    try:
        yield
    finally:
        await shutdown_event()


# =============================================================================
# Application Setup
# =============================================================================

# FastAPI application instance
app = FastAPI(
    title="UniFi IPAM",
    description="IP address management backed by UniFi Network controllers",
    version=health.VERSION,
    lifespan=lifespan,
)

# Include API routers (all under /api prefix)
app.include_router(pools.router, prefix="/api", tags=["Pools"])
app.include_router(claims.router, prefix="/api", tags=["Claims"])
app.include_router(addresses.router, prefix="/api", tags=["Addresses"])
app.include_router(instances.router, prefix="/api", tags=["Instances"])
app.include_router(secrets.router, prefix="/api", tags=["Secrets"])
app.include_router(health.router, prefix="/api", tags=["Health"])


# =============================================================================
# Startup Helpers
# =============================================================================


def _ensure_database_directory(db_file: str) -> None:
    directory = os.path.dirname(db_file)
    if not directory or db_file == ":memory:" or os.path.isdir(directory):
        return
    logger.warning(f"Database directory '{directory}' does not exist, creating...")
    os.makedirs(directory, exist_ok=True)


# =============================================================================
# Entry Point
# =============================================================================


def run():
    """Run the manager server using uvicorn."""
    configure_logging(config.LOG_LEVEL, config.LOG_FILE)

    uvicorn_level_map = {
        LogLevel.FULL: "debug",
        LogLevel.DEBUG: "debug",
        LogLevel.INFO: "info",
        LogLevel.WARNING: "warning",
    }
    uvicorn_level = uvicorn_level_map.get(config.LOG_LEVEL, "info")

    logger.info(f"Starting manager server on {config.HOST_BIND_IP}:{config.HOST_PORT}")

    uvicorn.run(
        app,
        host=config.HOST_BIND_IP,
        port=config.HOST_PORT,
        log_level=uvicorn_level,
        log_config=None,
    )
