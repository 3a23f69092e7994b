"""
Manager configuration for the IPAM provider.

This module defines the configuration dataclass for the manager process,
providing a centralized place for all configurable parameters.

Configuration can be modified at runtime by importing the global config
instance and updating its attributes before starting the server.

Usage:
    from unifiipam.server.config import config

    # Modify configuration before starting
    config.HOST_PORT = 9000
    config.LOG_LEVEL = LogLevel.DEBUG
"""

from dataclasses import dataclass

from unifiipam.models.enums import LogLevel


# =============================================================================
# Configuration Dataclass
# =============================================================================


@dataclass
class ManagerConfig:
    """
    Manager configuration.

    Attributes:
        HOST_BIND_IP: IP address to bind the API server to.
        HOST_PORT: HTTP API port.
        DB_FILE: Path to the SQLite database file.
        LOG_LEVEL: Logging verbosity level.
        CONTROLLERS_ENABLED: Run the reconcilers inside the server process.
        WEBHOOKS_ENABLED: Register the admission rules on the store.
    """

    # -------------------------------------------------------------------------
    # Network Configuration
    # -------------------------------------------------------------------------

    HOST_BIND_IP: str = "0.0.0.0"
    HOST_PORT: int = 8080

    # -------------------------------------------------------------------------
    # Path Configuration
    # -------------------------------------------------------------------------

    DB_FILE: str = "/var/lib/unifiipam/unifiipam.db"
    LOG_FILE: str = ""

    # -------------------------------------------------------------------------
    # Logging Configuration
    # -------------------------------------------------------------------------

    LOG_LEVEL: LogLevel = LogLevel.INFO

    # -------------------------------------------------------------------------
    # Components
    # -------------------------------------------------------------------------

    CONTROLLERS_ENABLED: bool = True
    WEBHOOKS_ENABLED: bool = True

    # Claim reconciliation always runs with a single worker
    POOL_WORKERS: int = 4
    INSTANCE_WORKERS: int = 2

    # Only reconcile claims carrying the watch-filter label with this value
    WATCH_FILTER: str = ""

    # -------------------------------------------------------------------------
    # Timing Configuration
    # -------------------------------------------------------------------------

    POOL_SYNC_INTERVAL_SECONDS: float = 300
    POOL_DELETION_POLL_SECONDS: float = 30
    DEPENDENCY_RETRY_SECONDS: float = 30

    # Read-your-writes wait after creating an address
    ADDRESS_VISIBLE_POLL_INTERVAL: float = 0.005
    ADDRESS_VISIBLE_TIMEOUT: float = 5
    ADDRESS_VISIBLE_REQUEUE_SECONDS: float = 0.1

    # Per-item exponential backoff on reconcile errors
    BACKOFF_BASE_SECONDS: float = 0.005
    BACKOFF_MAX_SECONDS: float = 300

    # -------------------------------------------------------------------------
    # Provider Configuration
    # -------------------------------------------------------------------------

    PROVIDER_TIMEOUT_SECONDS: float = 30

    # Delete the controller's fixed-IP record when a claim is released
    RELEASE_STATIC_ASSIGNMENTS: bool = True

    # Prefix used when neither subnet, pool nor CIDR provide one
    DEFAULT_PREFIX: int = 24

    # =========================================================================
    # Helper Methods
    # =========================================================================

    def get_server_url(self) -> str:
        """
        Get the API URL for local access.

        Returns:
            URL string like "http://127.0.0.1:8080"
        """
        host = "127.0.0.1" if self.HOST_BIND_IP == "0.0.0.0" else self.HOST_BIND_IP
        return f"http://{host}:{self.HOST_PORT}"


# =============================================================================
# Global Instance
# =============================================================================

# Global config instance - modify before server startup
config = ManagerConfig()
