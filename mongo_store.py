"""
MongoDB implementation of the entity store.

Membership toggles and embedded-array changes are single conditional
``find_one_and_update`` calls, so concurrent writers on the same document never
overwrite each other's changes.
"""

import logging
import re
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from bson import ObjectId
from pymongo import ASCENDING, DESCENDING, ReturnDocument

from database import create_document, get_documents, to_public
from errors import Conflict
from store import USER, EntityStore

logger = logging.getLogger(__name__)

MAX_TOGGLE_ATTEMPTS = 5

AFTER = ReturnDocument.AFTER


def _oid(entity_id) -> Optional[ObjectId]:
    if isinstance(entity_id, ObjectId):
        return entity_id
    if entity_id and ObjectId.is_valid(str(entity_id)):
        return ObjectId(str(entity_id))
    return None


def build_filter(filters: Optional[Dict[str, Any]]) -> dict:
    query = {}
    for key, value in (filters or {}).items():
        if value is None or value == "":
            continue
        query[key] = {"$regex": f"^{re.escape(str(value))}$", "$options": "i"}
    return query


class MongoStore(EntityStore):
    name = "mongodb"

    def __init__(self, db):
        self.db = db

    def _find_and_update(self, kind, query, update) -> Optional[dict]:
        doc = self.db[kind].find_one_and_update(query, update, return_document=AFTER)
        return to_public(doc) if doc else None

    def list(self, kind, filters=None, sort=None):
        order = None
        if sort:
            field, descending = sort
            direction = DESCENDING if descending else ASCENDING
            order = [(field, direction), ("_id", direction)]
        docs = get_documents(self.db, kind, build_filter(filters), sort=order)
        return [to_public(d) for d in docs]

    def get(self, kind, entity_id):
        oid = _oid(entity_id)
        if oid is None:
            return None
        return to_public(self.db[kind].find_one({"_id": oid}))

    def find_one(self, kind, criteria):
        query = dict(criteria)
        if "id" in query:
            query["_id"] = _oid(query.pop("id"))
        return to_public(self.db[kind].find_one(query))

    def create(self, kind, fields):
        inserted_id = create_document(self.db, kind, fields)
        return self.get(kind, inserted_id)

    def update(self, kind, entity_id, fields):
        oid = _oid(entity_id)
        if oid is None:
            return None
        changes = {**fields, "updated_at": datetime.now(timezone.utc)}
        return self._find_and_update(kind, {"_id": oid}, {"$set": changes})

    def delete(self, kind, entity_id):
        oid = _oid(entity_id)
        if oid is None:
            return False
        return self.db[kind].delete_one({"_id": oid}).deleted_count == 1

    def toggle_member(self, kind, entity_id, field, member_id):
        oid = _oid(entity_id)
        if oid is None:
            return None
        collection = self.db[kind]
        for attempt in range(MAX_TOGGLE_ATTEMPTS):
            current = collection.find_one({"_id": oid}, {field: 1})
            if current is None:
                return None
            if member_id in (current.get(field) or []):
                query = {"_id": oid, field: member_id}
                update = {"$pull": {field: member_id}}
            else:
                query = {"_id": oid, field: {"$ne": member_id}}
                update = {"$addToSet": {field: member_id}}
            updated = self._find_and_update(kind, query, update)
            if updated is not None:
                return updated
            logger.debug("%s %s: %s changed concurrently, retry %d", kind, entity_id, field, attempt + 1)
        raise Conflict(f"{kind} {entity_id} is being modified concurrently, try again")

    def push(self, kind, entity_id, field, item, guard=None):
        oid = _oid(entity_id)
        if oid is None:
            return None
        return self._find_and_update(kind, {"_id": oid, **(guard or {})}, {"$push": {field: item}})

    def update_item(self, kind, entity_id, field, item_id, changes, item_guard=None):
        oid = _oid(entity_id)
        if oid is None:
            return None
        query = {"_id": oid, field: {"$elemMatch": {"id": item_id, **(item_guard or {})}}}
        update = {"$set": {f"{field}.$.{key}": value for key, value in changes.items()}}
        return self._find_and_update(kind, query, update)

    def pull(self, kind, entity_id, field, item_id):
        oid = _oid(entity_id)
        if oid is None:
            return None
        query = {"_id": oid, f"{field}.id": item_id}
        return self._find_and_update(kind, query, {"$pull": {field: {"id": item_id}}})

    def compare_and_set(self, kind, entity_id, expected, changes):
        oid = _oid(entity_id)
        if oid is None:
            return None
        update = {"$set": {**changes, "updated_at": datetime.now(timezone.utc)}}
        return self._find_and_update(kind, {"_id": oid, **expected}, update)

    def resolve_members(self, ids):
        ids = list(dict.fromkeys(ids))
        oids = [oid for oid in (_oid(i) for i in ids) if oid is not None]
        users = {}
        if oids:
            for user in self.db[USER].find({"_id": {"$in": oids}}, {"name": 1, "role": 1}):
                users[str(user["_id"])] = user
        resolved = {}
        for member_id in ids:
            user = users.get(member_id)
            resolved[member_id] = {
                "id": member_id,
                "name": user.get("name", "") if user else "",
                "role": user.get("role") if user else None,
            }
        return resolved
