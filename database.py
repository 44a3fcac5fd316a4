"""
MongoDB access for the student records service.

Collections:
- admin:   administrator accounts
- session: bearer tokens issued at login
- student: student records, owned by an admin
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from pymongo import ASCENDING, MongoClient

import config

logger = logging.getLogger(__name__)

client = MongoClient(config.DATABASE_URL)
db = client[config.DATABASE_NAME]


def utcnow() -> datetime:
    # pymongo hands back naive UTC datetimes, so store them that way too
    return datetime.now(timezone.utc).replace(tzinfo=None)


def ensure_indexes(mongo_db) -> None:
    mongo_db["admin"].create_index([("username", ASCENDING)], unique=True)
    mongo_db["admin"].create_index([("email", ASCENDING)], unique=True, sparse=True)
    mongo_db["session"].create_index([("token", ASCENDING)], unique=True)
    mongo_db["student"].create_index(
        [("owner_id", ASCENDING), ("roll_number", ASCENDING)], unique=True
    )
    logger.info("Indexes ensured on %s", getattr(mongo_db, "name", mongo_db))


def to_dict(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not doc:
        return doc
    doc["_id"] = str(doc["_id"])
    return doc


def create_document(collection, data: Dict[str, Any]) -> Dict[str, Any]:
    """Insert a copy of data with timestamps and return it with its _id."""
    now = utcnow()
    doc = dict(data)
    doc.setdefault("created_at", now)
    doc["updated_at"] = now
    res = collection.insert_one(doc)
    doc["_id"] = res.inserted_id
    return doc


def get_documents(
    collection,
    filter_dict: Optional[Dict[str, Any]] = None,
    sort: Optional[List[Tuple[str, int]]] = None,
    limit: int = 0,
) -> List[Dict[str, Any]]:
    cursor = collection.find(filter_dict or {})
    if sort:
        cursor = cursor.sort(sort)
    if limit:
        cursor = cursor.limit(limit)
    return [to_dict(d) for d in cursor]
