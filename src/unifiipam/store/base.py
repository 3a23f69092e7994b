"""
Database base configuration for the resource store.

Resources are persisted with Peewee ORM on a SQLite backend, one row per
resource with the full model serialised as JSON.

Components:
    - db: Global SQLite database instance
    - BaseModel: Base class for the store's database models
    - ResourceRecord: The single ``resources`` table
    - initialize_database / close_database: Lifecycle
"""

import peewee

from unifiipam.utils.logger import get_logger

logger = get_logger(__name__)


# =============================================================================
# Database Instance
# =============================================================================

# Global database instance - path set via initialize_database()
db = peewee.SqliteDatabase(None)


# =============================================================================
# Models
# =============================================================================


class BaseModel(peewee.Model):
    class Meta:
        database = db


class ResourceRecord(BaseModel):
    """
    One stored resource.

    Attributes:
        kind: Resource kind, e.g. ``UnifiIPPool``.
        namespace: Resource namespace.
        name: Resource name, unique per kind and namespace.
        uid: Immutable unique ID assigned on create.
        resource_version: Bumped on every write, used for optimistic locking.
        body: JSON serialised resource model.
    """

    kind = peewee.CharField(index=True)
    namespace = peewee.CharField()
    name = peewee.CharField()
    uid = peewee.CharField(unique=True)
    resource_version = peewee.IntegerField()
    body = peewee.TextField()

    class Meta:
        table_name = "resources"
        indexes = ((("kind", "namespace", "name"), True),)


# =============================================================================
# Database Lifecycle
# =============================================================================


def initialize_database(db_path: str) -> None:
    """
    Connect to the database and create tables.

    Args:
        db_path: Path to the SQLite database file, or ``":memory:"``.

    Raises:
        peewee.OperationalError: If database connection fails.
    """
    logger.debug(f"Initializing database at: {db_path}")

    try:
        db.init(db_path)
        db.connect(reuse_if_open=True)
        db.create_tables([ResourceRecord], safe=True)
        logger.info(f"Database initialized: {db_path}")
        logger.debug(f"Database contains {ResourceRecord.select().count()} resources")
    except peewee.OperationalError as e:
        logger.error(f"Failed to initialize database '{db_path}': {e}")
        raise


def close_database() -> None:
    """Close the database connection if open."""
    if not db.is_closed():
        db.close()
        logger.debug("Database connection closed")
