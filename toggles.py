"""
Toggle-membership engine behind likes, event interest and room favorites.

The membership list is the only source of truth: counts shown to clients are
derived from its length when the entity is presented.
"""

import logging
from typing import Optional

from errors import Forbidden, NotFound, Unauthenticated
from policy import can_mutate
from schemas import Principal
from store import EntityStore

logger = logging.getLogger(__name__)


def toggle_membership(store: EntityStore, kind: str, field: str, entity_id: str,
                      principal: Optional[Principal], action: str) -> dict:
    """Flip ``principal``'s membership in ``field`` and return the stored document.

    Calling it twice with the same principal restores the previous list.
    """
    if principal is None:
        raise Unauthenticated()
    if store.get(kind, entity_id) is None:
        raise NotFound(f"{kind} {entity_id} not found")
    if not can_mutate(action, principal, kind):
        logger.warning("%s denied %s on %s %s", principal.id, action, kind, entity_id)
        raise Forbidden(f"Not allowed to {action} this {kind}")

    doc = store.toggle_member(kind, entity_id, field, principal.id)
    if doc is None:
        # deleted between the read and the toggle
        raise NotFound(f"{kind} {entity_id} not found")

    added = principal.id in doc.get(field, [])
    logger.info("%s %s %s %s %s", principal.id, "added to" if added else "removed from", kind, entity_id, field)
    return doc
