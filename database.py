"""
Database helpers

MongoDB access for the API. Every module imports ``db`` from here and talks
to collections by name (lowercased model name, e.g. Product -> "product").

Datetimes are stored as naive UTC, which is what pymongo hands back by
default, so comparisons in Python code never mix aware and naive values.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from bson import ObjectId
from bson.errors import InvalidId
from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING, MongoClient, ReturnDocument

import config
from errors import BadRequest

logger = logging.getLogger(__name__)

_client = None
db = None

if config.DATABASE_URL and config.DATABASE_NAME:
    _client = MongoClient(config.DATABASE_URL)
    db = _client[config.DATABASE_NAME]


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Normalise a datetime to naive UTC; None passes through."""
    if value is None:
        return None
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def to_object_id(id_str: Any) -> ObjectId:
    if isinstance(id_str, ObjectId):
        return id_str
    try:
        return ObjectId(str(id_str))
    except (InvalidId, TypeError):
        raise BadRequest("Invalid id format")


def _require_db():
    if db is None:
        raise Exception("Database not available. Check DATABASE_URL and DATABASE_NAME environment variables.")
    return db


def create_document(collection_name: str, data: Union[BaseModel, dict]) -> str:
    database = _require_db()
    if isinstance(data, BaseModel):
        data_dict = data.model_dump()
    else:
        data_dict = dict(data)
    now = utcnow()
    data_dict.setdefault("created_at", now)
    data_dict["updated_at"] = now
    result = database[collection_name].insert_one(data_dict)
    return str(result.inserted_id)


def get_documents(collection_name: str, filter_dict: Optional[dict] = None, limit: Optional[int] = None,
                  sort: Optional[list] = None) -> List[dict]:
    database = _require_db()
    cursor = database[collection_name].find(filter_dict or {})
    if sort:
        cursor = cursor.sort(sort)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def next_sequence(name: str) -> int:
    """Atomically increment and return the counter called ``name``."""
    database = _require_db()
    counter = database["counter"].find_one_and_update(
        {"_id": name},
        {"$inc": {"sequence": 1}},
        upsert=True,
        return_document=ReturnDocument.AFTER,
    )
    return int(counter["sequence"])


def _serialize_value(value):
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: _serialize_value(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_serialize_value(v) for v in value]
    return value


def serialize_doc(doc: Optional[Dict[str, Any]]):
    if not doc:
        return doc
    doc = dict(doc)
    _id = doc.pop("_id", None)
    if _id is not None:
        doc["id"] = str(_id)
    return {k: _serialize_value(v) for k, v in doc.items()}


def ensure_indexes():
    if db is None:
        return
    specs = [
        ("user", [("email", ASCENDING)], {"unique": True}),
        # only the admin document carries admin_slot, so at most one admin can exist
        ("user", [("admin_slot", ASCENDING)], {"unique": True, "sparse": True}),
        ("product", [("category", ASCENDING)], {}),
        ("product", [("is_active", ASCENDING)], {}),
        ("order", [("user_id", ASCENDING)], {}),
        ("order", [("status", ASCENDING)], {}),
        ("order", [("created_at", DESCENDING)], {}),
        ("order", [("order_number", ASCENDING)], {"unique": True}),
        ("coupon", [("code", ASCENDING)], {"unique": True}),
        ("cart", [("user_id", ASCENDING), ("product_id", ASCENDING)], {"unique": True}),
        ("wishlist", [("user_id", ASCENDING), ("product_id", ASCENDING)], {"unique": True}),
        ("notification", [("created_at", DESCENDING)], {}),
    ]
    for collection, keys, options in specs:
        try:
            db[collection].create_index(keys, **options)
        except Exception as exc:
            logger.warning("Unable to ensure index on %s %s: %s", collection, keys, exc)
