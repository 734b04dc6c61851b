"""
Database Helper Functions

MongoDB helpers shared by the stores: connection, indexes, timestamped
writes, error translation and the unit of work used for multi-document
operations.
"""

import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from functools import wraps
from typing import Any, Dict, List, Optional, Tuple, Union

from bson import ObjectId
from bson.errors import InvalidId
from pydantic import BaseModel
from pymongo import ASCENDING, MongoClient, ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError, PyMongoError

from config import Settings
from errors import AppError, Conflict, DependencyUnavailable, NotFound

logger = logging.getLogger(__name__)

USERS = "user"
SELLERS = "seller"
CUSTOMERS = "customer"
PROPERTIES = "property"
CHATS = "chat"


def connect(settings: Settings) -> Tuple[MongoClient, Database]:
    client = MongoClient(settings.database_url, tz_aware=True)
    return client, client[settings.database_name]


def ensure_indexes(db: Database):
    """Unique indexes are the source of truth for uniqueness; pre-checks only save a round-trip."""
    db[USERS].create_index([("email", ASCENDING)], unique=True)
    db[SELLERS].create_index([("email", ASCENDING)], unique=True)
    db[SELLERS].create_index([("username", ASCENDING)], unique=True)
    db[CUSTOMERS].create_index([("email", ASCENDING)], unique=True)
    db[PROPERTIES].create_index([("owner_id", ASCENDING)])
    db[PROPERTIES].create_index([("price", ASCENDING)])
    db[CHATS].create_index([("session_id", ASCENDING)], unique=True)
    db[CHATS].create_index([("owner_id", ASCENDING)])


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_object_id(value: Union[str, ObjectId], entity: str) -> ObjectId:
    """Parse an id; anything unparseable cannot exist, so it is reported as not found."""
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        raise NotFound(entity)


def serialize_doc(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if doc is None:
        return None
    d = dict(doc)
    if "_id" in d:
        d["id"] = str(d.pop("_id"))
    for key, val in list(d.items()):
        if isinstance(val, ObjectId):
            d[key] = str(val)
        elif isinstance(val, datetime):
            d[key] = val.isoformat()
    return d


def _duplicate_message(error: DuplicateKeyError) -> str:
    key_value = (error.details or {}).get("keyValue") if isinstance(error.details, dict) else None
    if key_value:
        field = next(iter(key_value))
        return f"The {field} '{key_value[field]}' already exists"
    return "Duplicate key error"


def store_operation(fn):
    """Translate driver failures into the application's error kinds."""
    @wraps(fn)
    def wrapper(*args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except AppError:
            raise
        except DuplicateKeyError as e:
            raise Conflict(_duplicate_message(e))
        except PyMongoError as e:
            logger.error("Database operation %s failed: %s", fn.__qualname__, e)
            raise DependencyUnavailable("Database unavailable, please retry later")
    return wrapper


# Helper functions for common database operations
def create_document(db: Database, collection_name: str, data: Union[BaseModel, dict], session=None):
    """Insert a single document with timestamps. Returns the inserted id."""
    data_dict = data.model_dump() if isinstance(data, BaseModel) else dict(data)

    now = utcnow()
    data_dict['created_at'] = data_dict.get('created_at', now)
    data_dict['updated_at'] = now

    result = db[collection_name].insert_one(data_dict, session=session)
    return result.inserted_id


def get_document(db: Database, collection_name: str, filter_dict: Dict[str, Any], session=None):
    return db[collection_name].find_one(filter_dict, session=session)


def get_documents(db: Database, collection_name: str, filter_dict: dict = None, limit: int = None, sort: List = None,
                  projection: Dict[str, Any] = None):
    cursor = db[collection_name].find(filter_dict or {}, projection)
    if sort:
        cursor = cursor.sort(sort)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def update_document(db: Database, collection_name: str, filter_dict: Dict[str, Any], update: Dict[str, Any], session=None):
    """Apply an update operator document, stamp updated_at, return the document after the update."""
    update = {op: dict(fields) for op, fields in update.items()}
    update.setdefault("$set", {})['updated_at'] = utcnow()
    return db[collection_name].find_one_and_update(
        filter_dict, update, return_document=ReturnDocument.AFTER, session=session
    )


def update_by_id(db: Database, collection_name: str, _id: Any, updates: Dict[str, Any], session=None):
    return update_document(db, collection_name, {"_id": _id}, {"$set": updates}, session=session)


class UnitOfWork:
    """
    Multi-document write scope.

    With a server session every write joins the session's transaction.
    Without one, inserts, updates and deletes are recorded and undone in
    reverse order by compensate().
    """

    def __init__(self, db: Database, session=None):
        self.db = db
        self.session = session
        self._undo: List[Tuple[str, str, Any]] = []

    def insert(self, collection_name: str, data: Union[BaseModel, dict]):
        _id = create_document(self.db, collection_name, data, session=self.session)
        if self.session is None:
            self._undo.append(("insert", collection_name, _id))
        return _id

    def find_one(self, collection_name: str, filter_dict: Dict[str, Any]):
        return get_document(self.db, collection_name, filter_dict, session=self.session)

    def update(self, collection_name: str, _id: Any, updates: Dict[str, Any]):
        if self.session is None:
            before = self.db[collection_name].find_one({"_id": _id})
            if before is not None:
                self._undo.append(("update", collection_name, before))
        return update_by_id(self.db, collection_name, _id, updates, session=self.session)

    def delete_many(self, collection_name: str, filter_dict: Dict[str, Any]) -> int:
        if self.session is None:
            docs = list(self.db[collection_name].find(filter_dict))
            self._undo.append(("delete", collection_name, docs))
        result = self.db[collection_name].delete_many(filter_dict, session=self.session)
        return result.deleted_count

    def compensate(self):
        while self._undo:
            action, collection_name, payload = self._undo.pop()
            try:
                if action == "insert":
                    self.db[collection_name].delete_one({"_id": payload})
                elif action == "update":
                    self.db[collection_name].replace_one({"_id": payload["_id"]}, payload)
                elif payload:
                    self.db[collection_name].insert_many(payload)
            except PyMongoError:
                logger.exception("Compensation of %s on %s failed", action, collection_name)


@contextmanager
def transaction(client: MongoClient, db: Database, enabled: bool = True):
    """
    Yield a UnitOfWork that either commits entirely or leaves no writes behind.

    Uses a server transaction when enabled (replica set or sharded cluster),
    otherwise compensating writes.
    """
    if enabled:
        with client.start_session() as session:
            with session.start_transaction():
                yield UnitOfWork(db, session)
        return

    uow = UnitOfWork(db)
    try:
        yield uow
    except BaseException:
        logger.warning("Rolling back unit of work by compensation")
        uow.compensate()
        raise
