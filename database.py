# Example usage:
# from database import insert_unique, get_documents, find_max_matching
# from schemas import User  # Import your schemas from schemas.py
#
# # Create a user using Pydantic model (schemas are strictly enforced)
# user = User(username="john_doe", email="john@example.com")
# stored = insert_unique("users", user)
#
# # Get all users
# users = get_documents("users")
#
# # Highest sample id under a prefix
# latest = find_max_matching("samples", "sample_id", r"^GEN-SOIL-2024-\d{3,}$", "seq")


import logging
import os
from datetime import datetime, timezone
from typing import List, Optional, Tuple, Union

from dotenv import load_dotenv
from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.errors import DuplicateKeyError, PyMongoError

from errors import DuplicateRecordError, StoreError

# Load environment variables from .env file
load_dotenv()

logger = logging.getLogger(__name__)

_client = None
db = None

database_url = os.getenv("DATABASE_URL")
database_name = os.getenv("DATABASE_NAME")

if database_url and database_name:
    _client = MongoClient(database_url)
    db = _client[database_name]
    logger.info("MongoDB client configured for database %s", database_name)

# Unique indexes backing the "no duplicate" guarantees
UNIQUE_INDEXES = {
    "samples": ["sample_id"],
    "users": ["username", "email"],
}

# Plain indexes for sorted lookups
SORT_INDEXES = {
    "samples": ["seq"],
}


def _require_db():
    if db is None:
        raise StoreError("Database not available. Check DATABASE_URL and DATABASE_NAME environment variables.")
    return db


def _to_dict(data: Union[BaseModel, dict]) -> dict:
    # Convert Pydantic model to dict if needed
    if isinstance(data, BaseModel):
        return data.model_dump(mode="json", exclude_none=True)
    return dict(data)


def ensure_indexes(database=None):
    """Create the indexes used by the service (idempotent)"""
    database = database if database is not None else _require_db()
    try:
        for collection_name, fields in UNIQUE_INDEXES.items():
            for field in fields:
                database[collection_name].create_index([(field, ASCENDING)], unique=True)
        for collection_name, fields in SORT_INDEXES.items():
            for field in fields:
                database[collection_name].create_index([(field, DESCENDING)])
    except PyMongoError as e:
        raise StoreError(f"Could not create indexes: {e}") from e


# Helper functions for common database operations
def insert_unique(collection_name: str, data: Union[BaseModel, dict]) -> dict:
    """Insert a single document, surfacing unique index violations

    Args:
        collection_name: Name of the MongoDB collection
        data: Pydantic model instance or dict

    Returns:
        dict: The stored document, including _id, created_at and updated_at

    Raises:
        DuplicateRecordError: a unique index rejected the document
        StoreError: any other driver failure
    """
    collection = _require_db()[collection_name]
    data_dict = _to_dict(data)

    now = datetime.now(timezone.utc)
    data_dict['created_at'] = now
    data_dict['updated_at'] = now

    try:
        result = collection.insert_one(data_dict)
    except DuplicateKeyError as e:
        details = e.details or {}
        key_pattern = details.get("keyPattern")
        raise DuplicateRecordError(
            f"Duplicate key in {collection_name}",
            context={"details": details, "key_fields": list(key_pattern) if key_pattern else None},
        ) from e
    except PyMongoError as e:
        raise StoreError(f"Error inserting into {collection_name}: {e}") from e

    data_dict['_id'] = result.inserted_id
    return data_dict


def get_documents(
    collection_name: str,
    filter_dict: dict = None,
    limit: int = None,
    sort: Optional[List[Tuple[str, int]]] = None,
):
    """Get documents from collection"""
    collection = _require_db()[collection_name]
    try:
        cursor = collection.find(filter_dict or {})
        if sort:
            cursor = cursor.sort(sort)
        if limit:
            cursor = cursor.limit(limit)
        return list(cursor)
    except PyMongoError as e:
        raise StoreError(f"Error reading {collection_name}: {e}") from e


def get_document(collection_name: str, filter_dict: dict) -> Optional[dict]:
    """Get a single document, or None"""
    collection = _require_db()[collection_name]
    try:
        return collection.find_one(filter_dict)
    except PyMongoError as e:
        raise StoreError(f"Error reading {collection_name}: {e}") from e


def find_max_matching(collection_name: str, field: str, pattern: str, sort_field: str) -> Optional[str]:
    """Return the value of `field` on the matching document with the highest `sort_field`

    `pattern` is an anchored regex on `field`; sorting and limiting happen
    server side, so only one document comes back.

    Returns:
        str or None when nothing matches
    """
    collection = _require_db()[collection_name]
    try:
        cursor = (
            collection.find({field: {"$regex": pattern}}, {field: 1, sort_field: 1, "_id": 0})
            .sort([(sort_field, DESCENDING), (field, DESCENDING)])
            .limit(1)
        )
        docs = list(cursor)
    except PyMongoError as e:
        raise StoreError(f"Error reading {collection_name}: {e}") from e

    if not docs:
        return None
    return docs[0].get(field)
