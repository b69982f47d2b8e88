"""
MongoDB access.

The connection is made explicitly by the application on startup (``connect``)
and torn down on shutdown (``close``). Tests hand in their own database with
``use_database``.
"""
import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from bson import ObjectId
from pydantic import BaseModel
from pymongo import ASCENDING, MongoClient
from pymongo.database import Database
from pymongo.errors import PyMongoError

import config
from errors import DatabaseError

logger = logging.getLogger(__name__)

_client: Optional[MongoClient] = None
_db: Optional[Database] = None


def connect() -> Database:
    global _client, _db
    _client = MongoClient(config.DATABASE_URL)
    _db = _client[config.DATABASE_NAME]
    ensure_indexes(_db)
    logger.info("MongoDB connected: %s/%s", _client.address, config.DATABASE_NAME)
    return _db


def use_database(database: Optional[Database]) -> None:
    global _db
    _db = database


def close() -> None:
    global _client, _db
    if _client is not None:
        _client.close()
        logger.info("MongoDB connection closed")
    _client = None
    _db = None


def get_db() -> Database:
    if _db is None:
        raise RuntimeError("Database not available. Call database.connect() first.")
    return _db


def is_connected() -> bool:
    return _db is not None


def ensure_indexes(database: Database) -> None:
    database["category"].create_index("name", unique=True)
    database["stocks"].create_index("product_id", unique=True)
    database["cart_product"].create_index(
        [("user_id", ASCENDING), ("product_id", ASCENDING), ("size", ASCENDING)], unique=True
    )
    database["category_product"].create_index([("category_id", ASCENDING), ("product_id", ASCENDING)])
    database["order_product"].create_index("order_id")
    database["rating"].create_index("product_id")


def now_utc() -> datetime:
    # naive UTC, the way the driver hands dates back
    return datetime.now(timezone.utc).replace(tzinfo=None)


def oid(value: Union[str, ObjectId]) -> ObjectId:
    if isinstance(value, ObjectId):
        return value
    return ObjectId(value)


def create_document(collection_name: str, data: Union[BaseModel, dict], session=None) -> ObjectId:
    """Insert a single document, stamping created_at/updated_at."""
    if isinstance(data, BaseModel):
        data_dict = data.model_dump()
    else:
        data_dict = data.copy()
    now = now_utc()
    data_dict.setdefault("created_at", now)
    data_dict["updated_at"] = now
    result = get_db()[collection_name].insert_one(data_dict, session=session)
    return result.inserted_id


def get_documents(collection_name: str, filter_dict: Optional[dict] = None, limit: Optional[int] = None,
                  session=None) -> List[dict]:
    cursor = get_db()[collection_name].find(filter_dict or {}, session=session)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


@contextmanager
def write_guard(action: str = "write"):
    """Turn driver failures into a DatabaseError, keeping the cause in the log only."""
    try:
        yield
    except PyMongoError:
        logger.exception("Database %s failed", action)
        raise DatabaseError()


@contextmanager
def transaction():
    """
    Run a block inside a multi-document transaction.

    Yields the session to pass to every read and write of the block. The
    transaction commits when the block finishes and aborts on any exception.
    With DATABASE_TRANSACTIONS disabled the block runs without a session.
    """
    database = get_db()
    if not config.DATABASE_TRANSACTIONS:
        with write_guard("transaction"):
            yield None
        return

    with write_guard("transaction"):
        with database.client.start_session() as session:
            with session.start_transaction():
                yield session


def serialize(value: Any) -> Any:
    """Make a document JSON friendly: ``_id`` becomes ``id`` and ObjectIds become strings."""
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, list):
        return [serialize(v) for v in value]
    if isinstance(value, dict):
        out: Dict[str, Any] = {}
        for k, v in value.items():
            if k == "_id":
                out["id"] = serialize(v)
            else:
                out[k] = serialize(v)
        return out
    return value
