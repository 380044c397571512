"""
Authorization policy: who may change what.

``can_mutate`` is a pure decision function. Services call it before touching the
store and raise ``Forbidden`` on a deny.
"""

from typing import Optional

from schemas import Principal
from store import EVENT, MENU, NEWS, ROOM, THESIS

CREATE = "create"
UPDATE = "update"
DELETE = "delete"
LIKE = "like"
COMMENT = "comment"
INTEREST = "interest"
SHARE = "share"
FAVORITE = "favorite"
STATUS = "status"
TOGGLE_OPEN = "toggle_open"
REQUEST = "request"
REVIEW = "review"
DELETE_REQUEST = "delete_request"

# actions any authenticated principal may take, per kind
OPEN_ACTIONS = {
    NEWS: {CREATE, LIKE, COMMENT},
    EVENT: {CREATE, INTEREST, SHARE},
    ROOM: {FAVORITE},
    MENU: set(),
    THESIS: set(),
}

# actions reserved to the resource's owner (admins pass regardless)
OWNER_ACTIONS = {
    NEWS: {UPDATE, DELETE},
    EVENT: {UPDATE, DELETE},
    THESIS: {UPDATE, DELETE, TOGGLE_OPEN, REVIEW, DELETE_REQUEST},
}

# role-gated actions that need no ownership
ROLE_ACTIONS = {
    (ROOM, STATUS): {"faculty"},
    (THESIS, CREATE): {"faculty"},
    (THESIS, REQUEST): {"student"},
}


def is_owner(principal: Principal, owner_id: Optional[str] = None, owner_name: Optional[str] = None) -> bool:
    """Match by id when the resource records one, by display name otherwise."""
    if owner_id:
        return str(owner_id) == str(principal.id)
    if owner_name and principal.name:
        return owner_name.strip().lower() == principal.name.strip().lower()
    return False


def can_mutate(action: str, principal: Optional[Principal], kind: str,
               owner_id: Optional[str] = None, owner_name: Optional[str] = None) -> bool:
    if principal is None:
        return False
    if principal.role == "admin":
        return True
    if action in OPEN_ACTIONS.get(kind, ()):
        return True
    if (kind, action) in ROLE_ACTIONS:
        return principal.role in ROLE_ACTIONS[(kind, action)]
    if action in OWNER_ACTIONS.get(kind, ()):
        # a display name can be chosen by anyone, so only faculty match on it
        if not owner_id and principal.role != "faculty":
            return False
        return is_owner(principal, owner_id, owner_name)
    return False
