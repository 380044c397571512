"""
Thesis supervision workflow.

Requests live inside their slot's ``requests`` array and move through
``pending -> accepted | rejected``. Both outcomes are terminal. Only the slot's
supervisor or an admin may review or delete requests. Students file them,
and only while the slot is open.
"""

import logging
from typing import List, Optional

from errors import Conflict, Forbidden, InvalidTransition, NotFound, Unauthenticated
from policy import DELETE_REQUEST, REQUEST, REVIEW, TOGGLE_OPEN, can_mutate
from schemas import Principal, ThesisRequest
from store import THESIS, EntityStore, new_id, utcnow

logger = logging.getLogger(__name__)

PENDING = "pending"
ACCEPTED = "accepted"
REJECTED = "rejected"

MAX_FLIP_ATTEMPTS = 5

# allowed transitions out of each state
TRANSITIONS = {
    PENDING: {ACCEPTED, REJECTED},
    ACCEPTED: set(),
    REJECTED: set(),
}


def slot_status(is_open: bool) -> str:
    return "open" if is_open else "closed"


def find_request(slot: dict, request_id: str) -> Optional[dict]:
    for request in slot.get("requests", []):
        if request.get("id") == request_id:
            return request
    return None


def _require_principal(principal: Optional[Principal]) -> Principal:
    if principal is None:
        raise Unauthenticated()
    return principal


def _load_slot(store: EntityStore, slot_id: str) -> dict:
    slot = store.get(THESIS, slot_id)
    if slot is None:
        raise NotFound(f"Thesis slot {slot_id} not found")
    return slot


def authorize_slot(action: str, principal: Principal, slot: dict) -> None:
    supervisor_id = slot.get("supervisor_id")
    if not supervisor_id and principal.role != "admin":
        logger.warning("thesis slot %s has no supervisor_id, matching supervisor by name", slot.get("id"))
    if not can_mutate(action, principal, THESIS, owner_id=supervisor_id, owner_name=slot.get("supervisor_name")):
        logger.warning("%s (%s) denied %s on thesis slot %s", principal.id, principal.role, action, slot.get("id"))
        raise Forbidden("Only the slot's supervisor or an admin may do this")


def request_supervision(store: EntityStore, slot_id: str, principal: Optional[Principal],
                        topic: str = "", group_members: Optional[List[str]] = None) -> dict:
    principal = _require_principal(principal)
    slot = _load_slot(store, slot_id)
    if not can_mutate(REQUEST, principal, THESIS):
        raise Forbidden("Only students may request supervision")
    if slot.get("status") != "open":
        raise Conflict("Thesis slot is closed")

    request = ThesisRequest(
        id=new_id(),
        student_name=principal.name,
        student_id=principal.id,
        group_members=list(group_members or []),
        topic=topic,
        status=PENDING,
        created_at=utcnow().isoformat(),
    ).model_dump()
    # guard: the slot may have been closed since it was read
    if store.push(THESIS, slot_id, "requests", request, guard={"status": "open"}) is None:
        _load_slot(store, slot_id)
        raise Conflict("Thesis slot is closed")
    logger.info("%s requested supervision on slot %s", principal.id, slot_id)
    return request


def set_request_status(store: EntityStore, slot_id: str, request_id: str,
                       principal: Optional[Principal], new_status: str) -> dict:
    principal = _require_principal(principal)
    slot = _load_slot(store, slot_id)
    request = find_request(slot, request_id)
    if request is None:
        raise NotFound(f"Request {request_id} not found")

    current = request.get("status", PENDING)
    if new_status not in TRANSITIONS.get(current, set()):
        raise InvalidTransition(f"Cannot move request from {current} to {new_status}")
    authorize_slot(REVIEW, principal, slot)

    updated = store.update_item(THESIS, slot_id, "requests", request_id,
                                {"status": new_status}, item_guard={"status": current})
    if updated is None:
        # someone else reviewed it first, or it was deleted
        fresh = find_request(_load_slot(store, slot_id), request_id)
        if fresh is None:
            raise NotFound(f"Request {request_id} not found")
        raise InvalidTransition(f"Cannot move request from {fresh.get('status')} to {new_status}")

    logger.info("%s set request %s on slot %s to %s", principal.id, request_id, slot_id, new_status)
    return find_request(updated, request_id)


def delete_request(store: EntityStore, slot_id: str, request_id: str, principal: Optional[Principal]) -> None:
    principal = _require_principal(principal)
    slot = _load_slot(store, slot_id)
    if find_request(slot, request_id) is None:
        raise NotFound(f"Request {request_id} not found")
    authorize_slot(DELETE_REQUEST, principal, slot)

    if store.pull(THESIS, slot_id, "requests", request_id) is None:
        raise NotFound(f"Request {request_id} not found")
    logger.info("%s deleted request %s on slot %s", principal.id, request_id, slot_id)


def toggle_slot_open(store: EntityStore, slot_id: str, principal: Optional[Principal]) -> dict:
    """Flip ``open`` and ``status`` together, never one without the other."""
    principal = _require_principal(principal)
    slot = _load_slot(store, slot_id)
    authorize_slot(TOGGLE_OPEN, principal, slot)

    for _ in range(MAX_FLIP_ATTEMPTS):
        is_open = bool(slot.get("open", slot.get("status") == "open"))
        updated = store.compare_and_set(
            THESIS, slot_id,
            expected={"open": slot.get("open")},
            changes={"open": not is_open, "status": slot_status(not is_open)},
        )
        if updated is not None:
            logger.info("%s %s thesis slot %s", principal.id, "opened" if not is_open else "closed", slot_id)
            return updated
        slot = _load_slot(store, slot_id)
    raise Conflict("Thesis slot is being modified concurrently, try again")
