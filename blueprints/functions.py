# type: ignore
# pyright: ignore
"""
Privileged account actions, each authenticated from the bearer token
in the Authorization header.

    POST /functions/delete-user        {"email"}            admin only
    POST /functions/bootstrap-admin                         any user, only while no admin exists
    POST /functions/manage-admin-role  {"email", "action"}  admin only
"""

import logging

from flask import Blueprint, request, jsonify

from errors import BadRequest, Forbidden, Unauthorized
from models import Role
from services import identity, roles

logger = logging.getLogger(__name__)

functions_bp = Blueprint("functions", __name__)


def _authenticated_user():
    header = request.headers.get("Authorization")
    if not header:
        raise Unauthorized("Missing authorization header")

    user = identity.user_from_header(header)
    if not user:
        raise Unauthorized()
    return user


def _admin_user():
    user = _authenticated_user()
    if not roles.has_role(user.id, Role.ADMIN):
        raise Forbidden("Admin access required")
    return user


@functions_bp.route("/delete-user", methods=["POST"])
def delete_user():
    caller_id = _admin_user().id

    email = (request.get_json(silent=True) or {}).get("email")
    if not email:
        raise BadRequest("Email is required")

    target = identity.find_user_by_email(email)
    target_id = target.id
    identity.delete_user(target)

    logger.info("User %s deleted account %s", caller_id, target_id)
    return jsonify({"success": True, "message": "User deleted successfully"})


@functions_bp.route("/bootstrap-admin", methods=["POST"])
def bootstrap_admin():
    user = _authenticated_user()
    roles.bootstrap_admin(user)
    return jsonify({"success": True, "role": Role.ADMIN})


@functions_bp.route("/manage-admin-role", methods=["POST"])
def manage_admin_role():
    _admin_user()

    data = request.get_json(silent=True) or {}
    return jsonify(roles.set_admin_role(data.get("email"), data.get("action")))
