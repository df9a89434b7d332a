"""Error taxonomy shared by the object-access and quote workflow layers.

Every error carries the HTTP status it is surfaced with, so routers never
translate exceptions by hand. Errors flagged ``expose=False`` are logged in
full and reported to clients as a generic server error.
"""

from typing import Optional


class QuoteDeskError(Exception):
    """Base exception for all quotedesk errors."""

    status_code = 500
    expose = False
    public_message = "Internal server error"

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class NotFound(QuoteDeskError):
    """Raised when an object or quote does not exist."""

    status_code = 404
    expose = True
    public_message = "Not found"


class ObjectNotFound(NotFound):
    """Raised when the blob backend has no object under the requested key."""


class Forbidden(QuoteDeskError):
    """Raised when an authenticated principal is not allowed to act."""

    status_code = 403
    expose = True
    public_message = "Forbidden"


class ObjectAccessDenied(Forbidden):
    """Uniform denial for object reads; never says whether the object exists."""

    status_code = 401
    public_message = "Unauthorized"


class Unauthenticated(QuoteDeskError):
    """Raised when a request carries no valid principal."""

    status_code = 401
    expose = True
    public_message = "Unauthorized"


class InvalidTransition(QuoteDeskError):
    """Raised on a status regression or a transition out of a terminal state."""

    status_code = 409
    expose = True
    public_message = "Invalid status transition"


class ValidationError(QuoteDeskError):
    """Raised when a request body or argument is malformed."""

    status_code = 400
    expose = True
    public_message = "Validation error"


class MalformedPolicy(QuoteDeskError):
    """Raised when ACL metadata on an object is corrupt or incomplete."""


class NoPolicy(QuoteDeskError):
    """Raised when an object carries no ACL metadata at all."""


class BackendUnavailable(QuoteDeskError):
    """Raised when the blob backend or relational store fails transiently."""

    def __init__(self, message: str, *, cause: Optional[BaseException] = None, details: Optional[dict] = None):
        super().__init__(message, details)
        self.cause = cause
