"""
Entity store interface and the in-memory implementation.

Documents are plain dicts with a string ``id``. Every mutation that touches a
membership list or an embedded array goes through a field-scoped primitive so
the MongoDB implementation can map it onto a single atomic update.
"""

import copy
import threading
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple

MENU = "menuitem"
NEWS = "newspost"
EVENT = "event"
ROOM = "room"
THESIS = "thesisslot"
USER = "user"

KINDS = (MENU, NEWS, EVENT, ROOM, THESIS, USER)

# (field, descending)
Sort = Tuple[str, bool]


def new_id() -> str:
    return uuid.uuid4().hex


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def matches_filters(doc: dict, filters: Optional[Dict[str, Any]]) -> bool:
    """Case-insensitive exact match. Empty filter values match everything."""
    for key, value in (filters or {}).items():
        if value is None or value == "":
            continue
        if str(doc.get(key)).lower() != str(value).lower():
            return False
    return True


def matches_exact(doc: dict, criteria: Optional[Dict[str, Any]]) -> bool:
    return all(doc.get(key) == value for key, value in (criteria or {}).items())


def _sort_key(field: str):
    # documents missing the field sort first; insertion index breaks ties
    def key(pair):
        index, doc = pair
        value = doc.get(field)
        return (value is not None, value if value is not None else "", index)
    return key


class EntityStore(ABC):
    """Persistence contract shared by the memory and MongoDB stores.

    Methods returning ``Optional[dict]`` return ``None`` when the document does
    not exist or a guard did not hold; callers re-read to tell which.
    """

    name = "abstract"

    @abstractmethod
    def list(self, kind: str, filters: Optional[Dict[str, Any]] = None,
             sort: Optional[Sort] = None) -> List[dict]:
        ...

    @abstractmethod
    def get(self, kind: str, entity_id: str) -> Optional[dict]:
        ...

    @abstractmethod
    def find_one(self, kind: str, criteria: Dict[str, Any]) -> Optional[dict]:
        ...

    @abstractmethod
    def create(self, kind: str, fields: Dict[str, Any]) -> dict:
        ...

    @abstractmethod
    def update(self, kind: str, entity_id: str, fields: Dict[str, Any]) -> Optional[dict]:
        ...

    @abstractmethod
    def delete(self, kind: str, entity_id: str) -> bool:
        ...

    @abstractmethod
    def toggle_member(self, kind: str, entity_id: str, field: str, member_id: str) -> Optional[dict]:
        ...

    @abstractmethod
    def push(self, kind: str, entity_id: str, field: str, item: dict,
             guard: Optional[Dict[str, Any]] = None) -> Optional[dict]:
        ...

    @abstractmethod
    def update_item(self, kind: str, entity_id: str, field: str, item_id: str,
                    changes: Dict[str, Any],
                    item_guard: Optional[Dict[str, Any]] = None) -> Optional[dict]:
        ...

    @abstractmethod
    def pull(self, kind: str, entity_id: str, field: str, item_id: str) -> Optional[dict]:
        ...

    @abstractmethod
    def compare_and_set(self, kind: str, entity_id: str, expected: Dict[str, Any],
                        changes: Dict[str, Any]) -> Optional[dict]:
        ...

    def resolve_members(self, ids: Iterable[str]) -> Dict[str, dict]:
        """Map principal ids to ``{id, name, role}``; unknown ids keep a bare entry."""
        resolved = {}
        for member_id in dict.fromkeys(ids):
            user = self.get(USER, member_id)
            if user:
                resolved[member_id] = {"id": member_id, "name": user.get("name", ""), "role": user.get("role")}
            else:
                resolved[member_id] = {"id": member_id, "name": "", "role": None}
        return resolved


class MemoryStore(EntityStore):
    """Process-local store used when no database is configured.

    A single re-entrant lock serialises every operation, which makes each
    primitive atomic. Documents handed out are deep copies.
    """

    name = "memory"

    def __init__(self):
        self._lock = threading.RLock()
        self._data: Dict[str, Dict[str, dict]] = {kind: {} for kind in KINDS}

    def _collection(self, kind: str) -> Dict[str, dict]:
        try:
            return self._data[kind]
        except KeyError:
            raise ValueError(f"Unknown entity kind: {kind}")

    def list(self, kind, filters=None, sort=None):
        with self._lock:
            docs = [d for d in self._collection(kind).values() if matches_filters(d, filters)]
            if sort:
                field, descending = sort
                ranked = sorted(enumerate(docs), key=_sort_key(field), reverse=descending)
                docs = [doc for _, doc in ranked]
            return copy.deepcopy(docs)

    def get(self, kind, entity_id):
        with self._lock:
            doc = self._collection(kind).get(str(entity_id))
            return copy.deepcopy(doc) if doc else None

    def find_one(self, kind, criteria):
        with self._lock:
            for doc in self._collection(kind).values():
                if matches_exact(doc, criteria):
                    return copy.deepcopy(doc)
            return None

    def create(self, kind, fields):
        with self._lock:
            now = utcnow()
            doc = {**copy.deepcopy(fields), "id": new_id(), "created_at": now, "updated_at": now}
            self._collection(kind)[doc["id"]] = doc
            return copy.deepcopy(doc)

    def update(self, kind, entity_id, fields):
        with self._lock:
            doc = self._collection(kind).get(str(entity_id))
            if doc is None:
                return None
            doc.update(copy.deepcopy(fields))
            doc["updated_at"] = utcnow()
            return copy.deepcopy(doc)

    def delete(self, kind, entity_id):
        with self._lock:
            return self._collection(kind).pop(str(entity_id), None) is not None

    def toggle_member(self, kind, entity_id, field, member_id):
        with self._lock:
            doc = self._collection(kind).get(str(entity_id))
            if doc is None:
                return None
            members = doc.setdefault(field, [])
            if member_id in members:
                members.remove(member_id)
            else:
                members.append(member_id)
            return copy.deepcopy(doc)

    def push(self, kind, entity_id, field, item, guard=None):
        with self._lock:
            doc = self._collection(kind).get(str(entity_id))
            if doc is None or not matches_exact(doc, guard):
                return None
            doc.setdefault(field, []).append(copy.deepcopy(item))
            return copy.deepcopy(doc)

    def update_item(self, kind, entity_id, field, item_id, changes, item_guard=None):
        with self._lock:
            doc = self._collection(kind).get(str(entity_id))
            if doc is None:
                return None
            for item in doc.get(field, []):
                if item.get("id") == item_id:
                    if not matches_exact(item, item_guard):
                        return None
                    item.update(copy.deepcopy(changes))
                    return copy.deepcopy(doc)
            return None

    def pull(self, kind, entity_id, field, item_id):
        with self._lock:
            doc = self._collection(kind).get(str(entity_id))
            if doc is None:
                return None
            items = doc.get(field, [])
            kept = [item for item in items if item.get("id") != item_id]
            if len(kept) == len(items):
                return None
            doc[field] = kept
            return copy.deepcopy(doc)

    def compare_and_set(self, kind, entity_id, expected, changes):
        with self._lock:
            doc = self._collection(kind).get(str(entity_id))
            if doc is None or not matches_exact(doc, expected):
                return None
            doc.update(copy.deepcopy(changes))
            doc["updated_at"] = utcnow()
            return copy.deepcopy(doc)
