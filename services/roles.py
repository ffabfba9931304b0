"""
Role membership lookups and admin role management.

``has_role`` reads ``user_roles`` directly and is the one place that
is not itself filtered by the access rules, since those rules depend
on it. It only ever answers yes/no.
"""

import logging

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from extension import db
from errors import AlreadyAdmin, BadRequest, Forbidden, Internal
from models import UserRole, Role
from services import identity
from services.policy import make_caller

logger = logging.getLogger(__name__)


def has_role(user_id, role):
    if user_id is None:
        return False
    return db.session.query(
        UserRole.query.filter_by(user_id=user_id, role=role).exists()
    ).scalar()


def roles_for(user_id):
    rows = UserRole.query.filter_by(user_id=user_id).all()
    return {r.role for r in rows}


def caller_for(user):
    """Build a policy ``Caller`` for a logged-in user (or None)."""
    if user is None or not getattr(user, "is_authenticated", False):
        return None
    return make_caller(user.id, roles_for(user.id))


def count_admins():
    return UserRole.query.filter_by(role=Role.ADMIN).count()


def grant_role(user_id, role):
    """
    Insert a role row. Returns False when the user already had it
    (unique constraint hit), True when a row was created.
    """
    if has_role(user_id, role):
        return False

    db.session.add(UserRole(user_id=user_id, role=role))
    try:
        db.session.commit()
    except IntegrityError:
        # lost a race with a concurrent grant
        db.session.rollback()
        return False

    logger.info("Granted role %s to user %s", role, user_id)
    return True


def revoke_role(user_id, role):
    """Delete a role row if present. Returns the number of rows removed."""
    deleted = UserRole.query.filter_by(user_id=user_id, role=role).delete()
    db.session.commit()

    if deleted:
        logger.info("Revoked role %s from user %s", role, user_id)
    return deleted


# ----------------------------
# Admin bootstrap / management
# ----------------------------
def bootstrap_admin(user):
    """
    Make ``user`` an admin, but only while no admin exists at all.
    A concurrent bootstrap that already inserted the same row counts as
    success.
    """
    if count_admins() > 0:
        raise Forbidden("Admins already exist. Ask an admin to grant you access.")

    try:
        grant_role(user.id, Role.ADMIN)
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Failed to bootstrap admin for user %s", user.id)
        raise Internal("Failed to grant admin")

    logger.info("Bootstrapped first admin: user %s", user.id)


def set_admin_role(email, action):
    if not email or not action:
        raise BadRequest("Email and action are required")
    if action not in ("grant", "revoke"):
        raise BadRequest('Action must be either "grant" or "revoke"')

    target = identity.find_user_by_email(email)

    try:
        if action == "grant":
            if not grant_role(target.id, Role.ADMIN):
                raise AlreadyAdmin()
            return {"success": True, "message": "Admin role granted successfully"}

        removed = revoke_role(target.id, Role.ADMIN)
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Failed to %s admin role for user %s", action, target.id)
        raise Internal("Failed to update admin role")

    return {
        "success": True,
        "message": "Admin role revoked successfully",
        "removed": removed,
    }
