"""
MongoDB access for the offers API.

A single module-level connection is opened lazily by ``get_db()``; services
address collections by their lowercase schema name (User -> "user").
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from bson import ObjectId
from pydantic import BaseModel
from pymongo import ASCENDING, MongoClient
from pymongo.database import Database
from pymongo.errors import PyMongoError

from config import get_settings
from errors import NotFoundError

logger = logging.getLogger(__name__)

_client: Optional[MongoClient] = None
_db: Optional[Database] = None


def connect(client: Optional[MongoClient] = None) -> Database:
    global _client, _db
    settings = get_settings()
    if client is None:
        client = MongoClient(settings.database_url, serverSelectionTimeoutMS=3000)
    db = client[settings.database_name]
    ensure_indexes(db)
    if _client is not None and _client is not client:
        _client.close()
    _client, _db = client, db
    logger.info("Connected to database %s", settings.database_name)
    return _db


def get_db() -> Database:
    if _db is None:
        return connect()
    return _db


def close() -> None:
    global _client, _db
    if _client is not None:
        _client.close()
    _client = None
    _db = None


def collection(name: str):
    return get_db()[name]


def ensure_indexes(db: Database) -> None:
    db["user"].create_index([("email", ASCENDING)], unique=True)
    db["businessuser"].create_index([("email", ASCENDING)], unique=True)
    db["savedoffer"].create_index([("user", ASCENDING), ("post", ASCENDING)], unique=True)
    db["post"].create_index([("author.id", ASCENDING)])
    db["post"].create_index([("expiresAt", ASCENDING)])
    db["notification"].create_index([("user", ASCENDING), ("createdAt", ASCENDING)])


def ping() -> bool:
    """Ask the server for a round trip; False when it cannot be reached."""
    try:
        get_db().client.admin.command("ping")
        return True
    except PyMongoError as exc:
        logger.warning("Database ping failed: %s", exc)
        return False


def utcnow() -> datetime:
    # pymongo hands back naive UTC datetimes; stored values use the same form.
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def to_obj_id(id_str: str) -> ObjectId:
    if not isinstance(id_str, ObjectId) and not ObjectId.is_valid(str(id_str)):
        raise NotFoundError("Invalid id")
    return ObjectId(str(id_str))


def sanitize(doc: Optional[Dict]) -> Optional[Dict]:
    if not doc:
        return doc
    d = {**doc}
    if "_id" in d:
        d["id"] = str(d.pop("_id"))
    return d


def create_document(collection_name: str, data: Union[BaseModel, Dict[str, Any]]) -> Dict[str, Any]:
    if isinstance(data, BaseModel):
        doc = data.model_dump(by_alias=True)
    else:
        doc = dict(data)
    now = utcnow()
    doc.setdefault("createdAt", now)
    doc.setdefault("updatedAt", now)
    res = collection(collection_name).insert_one(doc)
    doc["_id"] = res.inserted_id
    return sanitize(doc)


def get_documents(
    collection_name: str,
    filter_dict: Optional[Dict[str, Any]] = None,
    limit: Optional[int] = None,
    sort: Optional[List] = None,
) -> List[Dict[str, Any]]:
    cursor = collection(collection_name).find(filter_dict or {})
    if sort:
        cursor = cursor.sort(sort)
    if limit:
        cursor = cursor.limit(limit)
    return [sanitize(doc) for doc in cursor]
