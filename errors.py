# errors.py
# type: ignore
# pyright: ignore

"""
Error taxonomy shared by the services and the HTTP layer.

Every failure carries a ``kind`` the caller can branch on, a human
readable ``message`` and the HTTP status it maps to.
"""


class LibraryError(Exception):
    kind = "internal"
    status_code = 500
    default_message = "Unexpected error"

    def __init__(self, message=None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self):
        return {"error": self.message, "kind": self.kind}


class BadRequest(LibraryError):
    kind = "bad_request"
    status_code = 400
    default_message = "Invalid request"


class Unauthorized(LibraryError):
    kind = "unauthorized"
    status_code = 401
    default_message = "Unauthorized"


class Forbidden(LibraryError):
    kind = "forbidden"
    status_code = 403
    default_message = "Forbidden"


class NotFound(LibraryError):
    kind = "not_found"
    status_code = 404
    default_message = "Not found"


class BookNotFound(NotFound):
    default_message = "Book not found"


class Conflict(LibraryError):
    kind = "conflict"
    status_code = 409
    default_message = "Conflict"


class InvalidTransition(LibraryError):
    kind = "invalid_transition"
    status_code = 409
    default_message = "Invalid status transition"


class DuplicateActiveRequest(LibraryError):
    kind = "duplicate_active_request"
    status_code = 409
    default_message = "You already have a pending or active request for this book"


class MissingDates(LibraryError):
    kind = "missing_dates"
    status_code = 400
    default_message = "Issue date and due date are required to approve a request"


class AlreadyAdmin(LibraryError):
    kind = "already_admin"
    status_code = 400
    default_message = "User is already an admin"


class Internal(LibraryError):
    pass
