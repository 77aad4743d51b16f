"""MongoDB Client - Connection and Collection Management"""
from typing import Any, Dict, Optional
from pymongo import MongoClient as PyMongoClient
from pymongo.database import Database
from pymongo.collection import Collection
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.errors import ConnectionFailure, DuplicateKeyError, PyMongoError

from ..config.settings import settings
from ..domain.errors import ConcurrentModificationError, ConflictError, NotFoundError
from ..utils.logger import get_logger

logger = get_logger(__name__)

# Global client instance
_client: Optional[PyMongoClient] = None
_database: Optional[Database] = None


def get_client() -> PyMongoClient:
    """Get or create MongoDB client"""
    global _client
    if _client is None:
        logger.info(f"Connecting to MongoDB: {settings.mongo_uri}")
        _client = PyMongoClient(
            settings.mongo_uri,
            serverSelectionTimeoutMS=5000,
            connectTimeoutMS=5000,
            socketTimeoutMS=30000,
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


def get_collection(name: str) -> Collection:
    """Get a collection from the database"""
    return get_database()[name]


def close_connection() -> None:
    """Close MongoDB connection"""
    global _client, _database
    if _client is not None:
        _client.close()
        _client = None
        _database = None
        logger.info("MongoDB connection closed")


def create_indexes() -> None:
    """Create all required indexes"""
    db = get_database()
    logger.info("Creating MongoDB indexes...")

    # Templates collection
    templates = db["approval_templates"]
    templates.create_index("template_id", unique=True)
    templates.create_index([("organization_id", ASCENDING), ("category", ASCENDING), ("is_default", ASCENDING)])
    templates.create_index(
        [("organization_id", ASCENDING), ("category", ASCENDING)],
        unique=True,
        partialFilterExpression={"is_default": True},
        name="one_default_per_category"
    )
    templates.create_index([("organization_id", ASCENDING), ("updated_at", DESCENDING)])

    # Instances collection
    instances = db["approval_instances"]
    instances.create_index("instance_id", unique=True)
    instances.create_index([("organization_id", ASCENDING), ("status", ASCENDING)])
    instances.create_index([("organization_id", ASCENDING), ("awaiting_approvers", ASCENDING)])
    instances.create_index([("status", ASCENDING), ("next_deadline", ASCENDING)])
    instances.create_index([("status", ASCENDING), ("active_since", ASCENDING)])
    instances.create_index("requester_id")
    instances.create_index("created_at", background=True)

    # Delegation collection
    delegates = db["approval_delegates"]
    delegates.create_index("delegate_record_id", unique=True)
    delegates.create_index([("organization_id", ASCENDING), ("delegator_id", ASCENDING), ("is_active", ASCENDING)])

    # Notification outbox collection
    notification_outbox = db["notification_outbox"]
    notification_outbox.create_index("notification_id", unique=True)
    notification_outbox.create_index([("status", ASCENDING), ("created_at", ASCENDING)])
    notification_outbox.create_index("event.instance_id")

    logger.info("MongoDB indexes created successfully")


def health_check() -> Dict[str, Any]:
    """Check MongoDB health"""
    try:
        get_client().admin.command("ping")
        return {
            "status": "healthy",
            "database": settings.mongo_db,
            "connection": "ok"
        }
    except PyMongoError as e:
        logger.error(f"MongoDB health check failed: {e}")
        return {
            "status": "unhealthy",
            "database": settings.mongo_db,
            "error": str(e)
        }


def save_versioned(
    collection: Collection,
    id_field: str,
    doc: Dict[str, Any],
    expected_version: Optional[int],
    label: str
) -> Dict[str, Any]:
    """
    Insert a new document or update it with optimistic concurrency

    Args:
        collection: Target collection
        id_field: Business key field (also used as _id)
        doc: Full document from model_dump()
        expected_version: None to insert, else the version the caller loaded
        label: Entity name for error messages

    Returns:
        The stored document without _id
    """
    record_id = doc[id_field]

    if expected_version is None:
        try:
            collection.insert_one({**doc, "_id": record_id})
        except DuplicateKeyError:
            raise ConflictError(f"{label} {record_id} already exists")
        return doc

    updates = {**doc, "version": expected_version + 1}
    result = collection.find_one_and_update(
        {id_field: record_id, "version": expected_version},
        {"$set": updates},
        return_document=ReturnDocument.AFTER
    )

    if result is None:
        if collection.find_one({id_field: record_id}, {"_id": 1}):
            raise ConcurrentModificationError(
                f"{label} {record_id} was modified concurrently",
                details={"expected_version": expected_version}
            )
        raise NotFoundError(f"{label} {record_id} not found")

    result.pop("_id", None)
    return result
