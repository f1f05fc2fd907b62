"""MongoDB Client - Connection and Collection Management"""
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional
from pymongo import MongoClient as PyMongoClient
from pymongo.database import Database
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.errors import BulkWriteError, ConnectionFailure, DuplicateKeyError, PyMongoError

from ..config.settings import settings
from ..domain.errors import StorageUnavailableError
from ..utils.logger import get_logger

logger = get_logger(__name__)

# Global client instance
_client: Optional[PyMongoClient] = None
_database: Optional[Database] = None

AUTHORIZATIONS = "prior_authorizations"
AUTHORIZATION_STEPS = "authorization_steps"
STATE_FORM_TEMPLATES = "state_form_templates"
AUDIT_EVENTS = "audit_events"
COUNTERS = "counters"


def get_client() -> PyMongoClient:
    """Get or create MongoDB client"""
    global _client
    if _client is None:
        logger.info(f"Connecting to MongoDB: {settings.mongo_uri}")
        _client = PyMongoClient(
            settings.mongo_uri,
            serverSelectionTimeoutMS=settings.mongo_server_selection_timeout_ms,
            connectTimeoutMS=settings.mongo_connect_timeout_ms,
            socketTimeoutMS=settings.mongo_socket_timeout_ms,
            tz_aware=True,
        )
        try:
            _client.admin.command("ping")
            logger.info("MongoDB connection successful")
        except ConnectionFailure as e:
            logger.error(f"MongoDB connection failed: {e}")
            raise
    return _client


def get_database() -> Database:
    """Get the application database"""
    global _database
    if _database is None:
        client = get_client()
        _database = client[settings.mongo_db]
        logger.info(f"Using database: {settings.mongo_db}")
    return _database


def resolve_database(database: Optional[Database] = None) -> Database:
    """Use the injected database, or fall back to the application database"""
    return database if database is not None else get_database()


def close_connection() -> None:
    """Close MongoDB connection"""
    global _client, _database
    if _client is not None:
        _client.close()
        _client = None
        _database = None
        logger.info("MongoDB connection closed")


DUPLICATE_KEY_CODE = 11000


def is_duplicate_key_error(error: Exception) -> bool:
    """True for single or bulk writes rejected only by a unique index"""
    if isinstance(error, DuplicateKeyError):
        return True
    if isinstance(error, BulkWriteError):
        write_errors = error.details.get("writeErrors", [])
        return bool(write_errors) and all(err.get("code") == DUPLICATE_KEY_CODE for err in write_errors)
    return False


@contextmanager
def storage_guard(operation: str) -> Iterator[None]:
    """
    Translate driver failures into StorageUnavailableError

    Duplicate-key failures are re-raised untouched; callers turn them into
    domain conflicts.
    """
    try:
        yield
    except PyMongoError as e:
        if is_duplicate_key_error(e):
            raise
        logger.error(f"Storage failure during {operation}: {e}")
        raise StorageUnavailableError(
            f"Storage unavailable during {operation}",
            details={"operation": operation, "reason": type(e).__name__}
        ) from e


def next_sequence(database: Database, name: str) -> int:
    """Atomically increment and return a named counter"""
    doc = database[COUNTERS].find_one_and_update(
        {"_id": name},
        {"$inc": {"value": 1}},
        upsert=True,
        return_document=ReturnDocument.AFTER
    )
    return int(doc["value"])


def create_indexes(database: Optional[Database] = None) -> None:
    """Create all required indexes"""
    db = resolve_database(database)
    logger.info("Creating MongoDB indexes...")

    # Authorizations collection
    authorizations = db[AUTHORIZATIONS]
    authorizations.create_index("authorization_id", unique=True)

    # Workflow steps: one row per (authorization, step number)
    steps = db[AUTHORIZATION_STEPS]
    steps.create_index("step_id", unique=True)
    steps.create_index([("authorization_id", ASCENDING), ("step_number", ASCENDING)], unique=True)
    steps.create_index([("assigned_to", ASCENDING), ("status", ASCENDING)])

    # State form templates
    templates = db[STATE_FORM_TEMPLATES]
    templates.create_index("template_id", unique=True)
    templates.create_index([("state", ASCENDING), ("form_type", ASCENDING), ("is_active", ASCENDING)])

    # Audit events collection
    audit_events = db[AUDIT_EVENTS]
    audit_events.create_index("audit_event_id", unique=True)
    audit_events.create_index([("timestamp", DESCENDING), ("sequence", DESCENDING)])
    audit_events.create_index([("resource_type", ASCENDING), ("resource_id", ASCENDING), ("timestamp", DESCENDING)])
    audit_events.create_index([("actor_id", ASCENDING), ("timestamp", DESCENDING)])
    audit_events.create_index("correlation_id")

    logger.info("MongoDB indexes created successfully")


def health_check() -> Dict[str, Any]:
    """Check MongoDB health"""
    try:
        client = get_client()
        client.admin.command("ping")
        return {
            "status": "healthy",
            "database": settings.mongo_db,
            "connection": "ok"
        }
    except Exception as e:
        logger.error(f"MongoDB health check failed: {e}")
        return {
            "status": "unhealthy",
            "database": settings.mongo_db,
            "error": str(e)
        }
