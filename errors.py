"""
Typed errors raised by the portal services.

Each error carries the HTTP status the API layer answers with, so routes never
need to know which service raised what.
"""

from typing import Any, Optional


class PortalError(Exception):
    status_code: int = 400
    default_detail: str = "Bad request"

    def __init__(self, detail: Optional[Any] = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class NotFound(PortalError):
    status_code = 404
    default_detail = "Not found"


class Forbidden(PortalError):
    status_code = 403
    default_detail = "Forbidden"


class Unauthenticated(PortalError):
    status_code = 401
    default_detail = "Authentication required"


class Conflict(PortalError):
    status_code = 409
    default_detail = "Conflict"


class InvalidTransition(PortalError):
    status_code = 409
    default_detail = "Invalid status transition"
