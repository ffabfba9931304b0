"""
Access rules for every table, as one pure decision function.

``is_allowed(caller, operation, target)`` answers allow/deny from the
caller's identity and roles and the row being touched. It never looks
anything up itself; the roles travel on the ``Caller``.
"""

from collections import namedtuple

from errors import Forbidden, Unauthorized
from models import Role

Caller = namedtuple("Caller", ["user_id", "roles"])


class Operation:
    BOOK_SELECT = "books:select"
    BOOK_INSERT = "books:insert"
    BOOK_UPDATE = "books:update"
    BOOK_DELETE = "books:delete"

    REQUEST_SELECT = "borrow_requests:select"
    REQUEST_INSERT = "borrow_requests:insert"
    REQUEST_UPDATE = "borrow_requests:update"
    REQUEST_DELETE = "borrow_requests:delete"

    PROFILE_SELECT = "profiles:select"
    PROFILE_UPDATE = "profiles:update"

    ROLE_SELECT = "user_roles:select"
    ROLE_INSERT = "user_roles:insert"


def make_caller(user_id, roles):
    return Caller(user_id, frozenset(roles))


def _is_admin(caller):
    return Role.ADMIN in caller.roles


def _owns(caller, target, field):
    return target is not None and getattr(target, field, None) == caller.user_id


def _book_select(caller, target):
    return True


def _admin_only(caller, target):
    return _is_admin(caller)


def _request_select(caller, target):
    return _owns(caller, target, "student_id") or _is_admin(caller)


def _request_insert(caller, target):
    return _owns(caller, target, "student_id") and Role.STUDENT in caller.roles


def _profile_own(caller, target):
    return _owns(caller, target, "id")


def _role_select(caller, target):
    return _owns(caller, target, "user_id")


def _role_insert(caller, target):
    # self-service is limited to the student role
    return _owns(caller, target, "user_id") and getattr(target, "role", None) == Role.STUDENT


RULES = {
    Operation.BOOK_SELECT: _book_select,
    Operation.BOOK_INSERT: _admin_only,
    Operation.BOOK_UPDATE: _admin_only,
    Operation.BOOK_DELETE: _admin_only,
    Operation.REQUEST_SELECT: _request_select,
    Operation.REQUEST_INSERT: _request_insert,
    Operation.REQUEST_UPDATE: _admin_only,
    Operation.REQUEST_DELETE: _admin_only,
    Operation.PROFILE_SELECT: _profile_own,
    Operation.PROFILE_UPDATE: _profile_own,
    Operation.ROLE_SELECT: _role_select,
    Operation.ROLE_INSERT: _role_insert,
}


def is_allowed(caller, operation, target=None):
    # anonymous callers may only browse the catalog
    if caller is None:
        return operation == Operation.BOOK_SELECT

    rule = RULES.get(operation)
    if rule is None:
        return False
    return rule(caller, target)


def authorize(caller, operation, target=None):
    """Raise instead of returning False."""
    if is_allowed(caller, operation, target):
        return
    if caller is None:
        raise Unauthorized()
    raise Forbidden(f"Not allowed to perform {operation}")
