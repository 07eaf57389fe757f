"""
Database Helper Functions

MongoDB connection plus the small helpers shared by every module:
document creation with timestamps, id parsing, serialization and
skip/limit pagination.
"""

import math
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple, Union

from bson import ObjectId
from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.database import Database

import config
from errors import DatabaseUnavailable, NotFound

_client = None
db: Optional[Database] = None

if config.DATABASE_URL and config.DATABASE_NAME:
    _client = MongoClient(config.DATABASE_URL)
    db = _client[config.DATABASE_NAME]

NEWEST_FIRST = [("created_at", DESCENDING), ("_id", DESCENDING)]


def get_db() -> Database:
    """FastAPI dependency returning the shared database handle."""
    if db is None:
        raise DatabaseUnavailable()
    return db


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def create_document(database: Database, collection_name: str, data: Union[BaseModel, dict]) -> str:
    """Insert a single document with timestamps, returning its id"""
    if isinstance(data, BaseModel):
        data_dict = data.model_dump()
    else:
        data_dict = data.copy()

    now = utcnow()
    data_dict["created_at"] = now
    data_dict["updated_at"] = now

    result = database[collection_name].insert_one(data_dict)
    return str(result.inserted_id)


def get_documents(database: Database, collection_name: str, filter_dict: dict = None,
                  sort: Optional[List[Tuple[str, int]]] = None, limit: int = None) -> List[dict]:
    """Get documents from collection"""
    cursor = database[collection_name].find(filter_dict or {})
    if sort:
        cursor = cursor.sort(sort)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def to_object_id(value: Any, message: str = "Not found") -> ObjectId:
    """Parse an id from a path or body; malformed ids read as unknown ones."""
    if isinstance(value, ObjectId):
        return value
    if not isinstance(value, str) or not ObjectId.is_valid(value):
        raise NotFound(message)
    return ObjectId(value)


def _serialize_value(value: Any) -> Any:
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: _serialize_value(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_serialize_value(v) for v in value]
    return value


def serialize_doc(doc: Optional[Dict[str, Any]], exclude: Tuple[str, ...] = ()) -> Optional[Dict[str, Any]]:
    if not doc:
        return doc
    out = {}
    for k, v in doc.items():
        if k in exclude:
            continue
        if k == "_id":
            out["id"] = str(v)
        else:
            out[k] = _serialize_value(v)
    return out


def clamp_page(page: int, page_size: int) -> Tuple[int, int]:
    page = max(int(page or 1), 1)
    page_size = min(max(int(page_size or config.DEFAULT_PAGE_SIZE), 1), config.MAX_PAGE_SIZE)
    return page, page_size


def paginate(collection, filter_dict: dict, sort: List[Tuple[str, int]], page: int, page_size: int,
             projection: Optional[dict] = None) -> Tuple[List[dict], int]:
    """Offset pagination: returns the raw documents of one page and the total match count."""
    page, page_size = clamp_page(page, page_size)
    total = collection.count_documents(filter_dict)
    cursor = (
        collection.find(filter_dict, projection)
        .sort(sort)
        .skip((page - 1) * page_size)
        .limit(page_size)
    )
    return list(cursor), total


def pagination_meta(page: int, page_size: int, total: int) -> Dict[str, Any]:
    page, page_size = clamp_page(page, page_size)
    total_pages = math.ceil(total / page_size) if total else 0
    return {
        "currentPage": page,
        "totalPages": total_pages,
        "totalCount": total,
        "hasNextPage": page < total_pages,
        "hasPrevPage": page > 1,
    }


def ensure_indexes(database: Database) -> None:
    database["user"].create_index("email", unique=True)
    database["category"].create_index("name", unique=True)
    database["category"].create_index("is_active")
    for field in ("brand", "category", "condition", "price", "storage", "is_approved", "is_active", "seller_id"):
        database["product"].create_index(field)
    database["order"].create_index("order_number", unique=True)
    database["order"].create_index([("user_id", ASCENDING), ("created_at", DESCENDING)])
    database["payment_event"].create_index("payment_id", unique=True)
    database["listing_rejection"].create_index("seller_id")
