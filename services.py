"""
Per-entity services: the operations the API exposes for menus, news, events,
rooms and thesis slots.

Every mutating call takes the acting Principal, checks the authorization policy
first and only then writes through the store. Results are presented with
membership ids resolved to ``{id, name, role}`` and the derived count
(``likes``, ``interested``, ``favorites``) next to them.
"""

import logging
import os
from typing import Any, Dict, Iterable, List, Optional, Tuple, Type, Union

from pydantic import BaseModel

import thesis
from errors import Forbidden, NotFound, Unauthenticated
from policy import (COMMENT, CREATE, DELETE, FAVORITE, INTEREST, LIKE, SHARE, STATUS, UPDATE,
                    can_mutate)
from schemas import (Comment, Event, EventUpdate, MenuItem, MenuItemUpdate, NewsPost, NewsPostUpdate,
                     Principal, Room, RoomStatusUpdate, RoomUpdate, ThesisSlot, ThesisSlotUpdate)
from store import EVENT, MENU, NEWS, ROOM, THESIS, EntityStore, Sort, new_id, utcnow
from toggles import toggle_membership

logger = logging.getLogger(__name__)

DEFAULT_SHARE_BASE_URL = "https://virtual-campus.local"

Fields = Union[BaseModel, Dict[str, Any]]


def share_link_for(event_id: str) -> str:
    base = os.getenv("SHARE_BASE_URL", DEFAULT_SHARE_BASE_URL).rstrip("/")
    return f"{base}/events/{event_id}"


def _as_dict(fields: Fields, partial: bool = False) -> Dict[str, Any]:
    if isinstance(fields, BaseModel):
        return fields.model_dump(exclude_unset=partial)
    return dict(fields or {})


class EntityService:
    kind: str = ""
    create_schema: Type[BaseModel] = BaseModel
    update_schema: Type[BaseModel] = BaseModel
    sort: Optional[Sort] = None
    # (membership field, derived count field)
    membership: Optional[Tuple[str, str]] = None
    owner_field: Optional[str] = None

    def __init__(self, store: EntityStore):
        self.store = store

    # -- presentation --------------------------------------------------
    def present(self, doc: dict) -> dict:
        return self.present_many([doc])[0]

    def present_many(self, docs: Iterable[dict]) -> List[dict]:
        docs = [dict(d) for d in docs]
        if not self.membership:
            return docs
        field, count_field = self.membership
        members = self.store.resolve_members(m for d in docs for m in d.get(field, []))
        for doc in docs:
            ids = doc.get(field, [])
            doc[field] = [members[m] for m in ids]
            doc[count_field] = len(ids)
        return docs

    # -- helpers -------------------------------------------------------
    def _require(self, principal: Optional[Principal]) -> Principal:
        if principal is None:
            raise Unauthenticated()
        return principal

    def _load(self, entity_id: str) -> dict:
        doc = self.store.get(self.kind, entity_id)
        if doc is None:
            raise NotFound(f"{self.kind} {entity_id} not found")
        return doc

    def authorize(self, action: str, principal: Principal, doc: Optional[dict] = None) -> None:
        owner_id = doc.get(self.owner_field) if doc is not None and self.owner_field else None
        if not can_mutate(action, principal, self.kind, owner_id=owner_id):
            logger.warning("%s (%s) denied %s on %s %s", principal.id, principal.role, action, self.kind,
                           doc.get("id") if doc else "-")
            raise Forbidden(f"Not allowed to {action} this {self.kind}")

    def new_document(self, fields: Dict[str, Any], principal: Principal) -> Dict[str, Any]:
        return fields

    # -- CRUD ----------------------------------------------------------
    def list(self, filters: Optional[Dict[str, Any]] = None) -> List[dict]:
        return self.present_many(self.store.list(self.kind, filters, sort=self.sort))

    def get(self, entity_id: str) -> dict:
        return self.present(self._load(entity_id))

    def create(self, fields: Fields, principal: Optional[Principal]) -> dict:
        principal = self._require(principal)
        self.authorize(CREATE, principal)
        data = self.create_schema.model_validate(_as_dict(fields)).model_dump()
        doc = self.store.create(self.kind, self.new_document(data, principal))
        logger.info("%s created %s %s", principal.id, self.kind, doc["id"])
        return self.present(doc)

    def update(self, entity_id: str, fields: Fields, principal: Optional[Principal]) -> dict:
        principal = self._require(principal)
        doc = self._load(entity_id)
        self.authorize(UPDATE, principal, doc)
        changes = self.update_schema.model_validate(_as_dict(fields, partial=True)).model_dump(exclude_unset=True)
        changes = {k: v for k, v in changes.items() if v is not None}
        if not changes:
            return self.present(doc)
        updated = self.store.update(self.kind, entity_id, changes)
        if updated is None:
            raise NotFound(f"{self.kind} {entity_id} not found")
        return self.present(updated)

    def delete(self, entity_id: str, principal: Optional[Principal]) -> None:
        principal = self._require(principal)
        doc = self._load(entity_id)
        self.authorize(DELETE, principal, doc)
        if not self.store.delete(self.kind, entity_id):
            raise NotFound(f"{self.kind} {entity_id} not found")
        logger.info("%s deleted %s %s", principal.id, self.kind, entity_id)

    def _toggle(self, entity_id: str, principal: Optional[Principal], action: str) -> dict:
        field, _ = self.membership
        return self.present(toggle_membership(self.store, self.kind, field, entity_id, principal, action))


class MenuService(EntityService):
    kind = MENU
    create_schema = MenuItem
    update_schema = MenuItemUpdate

    def list(self, filters=None):
        filters = dict(filters or {})
        allergy = (filters.pop("allergy", None) or "").strip().lower()
        items = super().list(filters)
        if allergy:
            items = [i for i in items if allergy not in [a.lower() for a in i.get("allergies", [])]]
        return items

    def new_document(self, fields, principal):
        fields["allergies"] = [a.strip().lower() for a in fields.get("allergies", [])]
        return fields


class NewsService(EntityService):
    kind = NEWS
    create_schema = NewsPost
    update_schema = NewsPostUpdate
    sort = ("created_at", True)
    membership = ("liked_by", "likes")
    owner_field = "author_id"

    def new_document(self, fields, principal):
        return {**fields, "author_id": principal.id, "author_name": principal.name,
                "liked_by": [], "comments": []}

    def toggle_like(self, news_id: str, principal: Optional[Principal]) -> dict:
        return self._toggle(news_id, principal, LIKE)

    def comment(self, news_id: str, text: str, principal: Optional[Principal]) -> dict:
        principal = self._require(principal)
        doc = self._load(news_id)
        self.authorize(COMMENT, principal, doc)
        comment = Comment(
            id=new_id(),
            text=text,
            author_id=principal.id,
            author_name=principal.name,
            author_role=principal.role,
            created_at=utcnow().isoformat(),
        ).model_dump()
        updated = self.store.push(NEWS, news_id, "comments", comment)
        if updated is None:
            raise NotFound(f"{NEWS} {news_id} not found")
        return self.present(updated)


class EventService(EntityService):
    kind = EVENT
    create_schema = Event
    update_schema = EventUpdate
    sort = ("date", False)
    membership = ("interested_by", "interested")
    owner_field = "author_id"

    def new_document(self, fields, principal):
        return {**fields, "author_id": principal.id, "author_name": principal.name,
                "interested_by": [], "share_link": ""}

    def toggle_interest(self, event_id: str, principal: Optional[Principal]) -> dict:
        return self._toggle(event_id, principal, INTEREST)

    def share(self, event_id: str, principal: Optional[Principal]) -> str:
        """Store and return the event's share link; the same id always yields the same link."""
        principal = self._require(principal)
        doc = self._load(event_id)
        self.authorize(SHARE, principal, doc)
        link = share_link_for(doc["id"])
        if doc.get("share_link") != link:
            if self.store.update(EVENT, event_id, {"share_link": link}) is None:
                raise NotFound(f"{EVENT} {event_id} not found")
        return link


class RoomService(EntityService):
    kind = ROOM
    create_schema = Room
    update_schema = RoomUpdate
    membership = ("favorite_by", "favorites")

    def new_document(self, fields, principal):
        return {**fields, "favorite_by": []}

    def set_status(self, room_id: str, status: str, principal: Optional[Principal]) -> dict:
        principal = self._require(principal)
        status = RoomStatusUpdate(status=status).status
        doc = self._load(room_id)
        self.authorize(STATUS, principal, doc)
        updated = self.store.update(ROOM, room_id, {"status": status})
        if updated is None:
            raise NotFound(f"{ROOM} {room_id} not found")
        logger.info("%s set room %s to %s", principal.id, room_id, status)
        return self.present(updated)

    def toggle_favorite(self, room_id: str, principal: Optional[Principal]) -> dict:
        return self._toggle(room_id, principal, FAVORITE)


class ThesisService(EntityService):
    kind = THESIS
    create_schema = ThesisSlot
    update_schema = ThesisSlotUpdate

    def authorize(self, action, principal, doc=None):
        if doc is None:
            super().authorize(action, principal)
        else:
            thesis.authorize_slot(action, principal, doc)

    def new_document(self, fields, principal):
        if principal.role == "admin" and (fields.get("supervisor_id") or fields.get("supervisor_name")):
            supervisor_id = fields.get("supervisor_id")
            supervisor_name = fields.get("supervisor_name") or ""
        else:
            supervisor_id, supervisor_name = principal.id, principal.name
        return {
            "supervisor_id": supervisor_id,
            "supervisor_name": supervisor_name,
            "topic": fields.get("topic", ""),
            "open": True,
            "status": "open",
            "requests": [],
        }

    def request_supervision(self, slot_id: str, principal: Optional[Principal], topic: str = "",
                            group_members: Optional[List[str]] = None) -> dict:
        return thesis.request_supervision(self.store, slot_id, principal, topic, group_members)

    def set_request_status(self, slot_id: str, request_id: str, principal: Optional[Principal],
                           new_status: str) -> dict:
        return thesis.set_request_status(self.store, slot_id, request_id, principal, new_status)

    def delete_request(self, slot_id: str, request_id: str, principal: Optional[Principal]) -> None:
        thesis.delete_request(self.store, slot_id, request_id, principal)

    def toggle_open(self, slot_id: str, principal: Optional[Principal]) -> dict:
        return self.present(thesis.toggle_slot_open(self.store, slot_id, principal))


class Portal:
    """All services over one store, chosen once at process start."""

    def __init__(self, store: EntityStore):
        self.store = store
        self.menu = MenuService(store)
        self.news = NewsService(store)
        self.events = EventService(store)
        self.rooms = RoomService(store)
        self.thesis = ThesisService(store)
