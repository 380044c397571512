"""
Database connection and store selection

Reads DATABASE_URL / DATABASE_NAME from the environment (a local .env file is
honoured). When no URL is set, USE_IN_MEMORY is set, or the server cannot be
reached, the portal runs on the in-memory store instead.
"""

import logging
import os
from datetime import datetime, timezone
from typing import Optional

from bson import ObjectId
from dotenv import load_dotenv
from pydantic import BaseModel
from pymongo import MongoClient
from pymongo.errors import PyMongoError

from store import MemoryStore

load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_DATABASE_NAME = "campus_portal"


def connect(url: Optional[str] = None, name: Optional[str] = None):
    """Return a pymongo Database handle, or None if Mongo is not configured or unreachable."""
    url = url or os.getenv("DATABASE_URL")
    name = name or os.getenv("DATABASE_NAME", DEFAULT_DATABASE_NAME)
    if not url or os.getenv("USE_IN_MEMORY"):
        logger.info("MongoDB not configured, using in-memory data store")
        return None
    client = None
    try:
        client = MongoClient(url, serverSelectionTimeoutMS=5000)
        client.admin.command("ping")
    except PyMongoError as e:
        if client is not None:
            client.close()
        logger.warning("MongoDB connection failed (%s), falling back to in-memory data store", e)
        return None
    logger.info("Connected to MongoDB database %s", name)
    return client[name]


def _now():
    return datetime.now(timezone.utc)


def create_document(db, collection_name: str, data) -> str:
    """Insert a document (pydantic model or dict) with timestamps, return its id."""
    if isinstance(data, BaseModel):
        data = data.model_dump()
    doc = dict(data)
    doc["created_at"] = doc["updated_at"] = _now()
    result = db[collection_name].insert_one(doc)
    return str(result.inserted_id)


def get_documents(db, collection_name: str, filter_dict: Optional[dict] = None, sort=None):
    cursor = db[collection_name].find(filter_dict or {})
    if sort:
        cursor = cursor.sort(sort)
    return list(cursor)


def to_public(doc: dict):
    """Convert a Mongo document to a JSON-serializable dict with a string ``id``."""
    if not doc:
        return doc
    d = {**doc}
    _id = d.pop("_id", None)
    if isinstance(_id, ObjectId):
        d["id"] = str(_id)
    elif _id is not None:
        d["id"] = _id
    return d


def create_store(db=None):
    """Pick the store implementation once, at process start."""
    # mongo_store imports this module
    from mongo_store import MongoStore

    if db is None:
        db = connect()
    if db is None:
        return MemoryStore()
    return MongoStore(db)
