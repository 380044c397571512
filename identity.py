"""
Identity provider: registration, login and resolving a bearer token to a Principal.
"""

import hashlib
import logging
import secrets
from typing import Optional, Tuple

from errors import NotFound, Unauthenticated
from schemas import Principal, User
from store import USER, EntityStore

logger = logging.getLogger(__name__)


class RegistrationError(ValueError):
    pass


class InvalidCredentials(ValueError):
    pass


def hash_password(password: str) -> str:
    return hashlib.sha256(password.encode()).hexdigest()


def verify_password(password: str, password_hash: Optional[str]) -> bool:
    if not password_hash:
        return False
    return secrets.compare_digest(hash_password(password), password_hash)


def public_user(doc: dict) -> dict:
    return {k: v for k, v in doc.items() if k not in ("password_hash", "token")}


def principal_from_user(doc: dict) -> Principal:
    return Principal(id=str(doc["id"]), role=doc.get("role", "student"), name=doc.get("name", ""))


def register(store: EntityStore, name: str, email: str, password: str, role: str = "student",
             department: str = "", student_id: str = "") -> dict:
    email = email.strip().lower()
    if store.find_one(USER, {"email": email}):
        raise RegistrationError("Email already registered")
    user = User(
        name=name.strip(),
        email=email,
        role=role,
        department=department.strip(),
        student_id=student_id.strip(),
        password_hash=hash_password(password),
    )
    created = store.create(USER, user.model_dump())
    logger.info("registered user %s (%s)", created["id"], role)
    return public_user(created)


def login(store: EntityStore, email: str, password: str) -> Tuple[str, dict]:
    """Verify the credential and issue a fresh session token."""
    user = store.find_one(USER, {"email": email.strip().lower()})
    if not user or not verify_password(password, user.get("password_hash")):
        raise InvalidCredentials("Invalid credentials")
    token = secrets.token_urlsafe(32)
    store.update(USER, user["id"], {"token": token})
    return token, public_user(user)


def resolve_principal(store: EntityStore, credential: Optional[str]) -> Optional[Principal]:
    """Accepts a raw token or an ``Authorization: Bearer <token>`` header value."""
    if not credential:
        return None
    token = credential.strip()
    if token.lower().startswith("bearer "):
        token = token[7:].strip()
    if not token:
        return None
    user = store.find_one(USER, {"token": token})
    if user is None:
        return None
    return principal_from_user(user)


def get_profile(store: EntityStore, principal: Optional[Principal]) -> dict:
    if principal is None:
        raise Unauthenticated()
    user = store.get(USER, principal.id)
    if user is None:
        raise NotFound("User not found")
    return public_user(user)


def update_profile(store: EntityStore, principal: Optional[Principal], name: Optional[str] = None,
                   department: Optional[str] = None, student_id: Optional[str] = None) -> dict:
    """Edit the caller's own profile. A blank name keeps the current one."""
    if principal is None:
        raise Unauthenticated()
    changes = {}
    if name and name.strip():
        changes["name"] = name.strip()
    if department is not None:
        changes["department"] = department.strip()
    if student_id is not None:
        changes["student_id"] = student_id.strip()
    if not changes:
        return get_profile(store, principal)
    user = store.update(USER, principal.id, changes)
    if user is None:
        raise NotFound("User not found")
    logger.info("user %s updated profile fields %s", principal.id, sorted(changes))
    return public_user(user)
