# type: ignore
# pyright: ignore
from types import SimpleNamespace

from flask import Blueprint, request, jsonify
from flask_login import login_user, logout_user, login_required, current_user

from errors import BadRequest, NotFound
from extension import db
from models import Profile, UserRole
from services import identity
from services.policy import Operation, authorize, is_allowed
from services.roles import caller_for, grant_role, roles_for

auth_bp = Blueprint('auth', __name__)

PROFILE_FIELDS = ("name", "roll_no", "department", "year")


def _account(user):
    return {
        "user_id": user.id,
        "email": user.email,
        "roles": sorted(roles_for(user.id)),
        "profile": user.profile.to_dict() if user.profile else None,
    }


# ---------------------------------------------
# REGISTER
# ---------------------------------------------
@auth_bp.route('/register', methods=['POST'])
def register():
    data = request.get_json(silent=True) or {}
    user = identity.sign_up(data)

    body = _account(user)
    body["token"] = identity.issue_token(user)
    return jsonify(body), 201


# ---------------------------------------------
# LOGIN
# ---------------------------------------------
@auth_bp.route('/login', methods=['POST'])
def login():
    data = request.get_json(silent=True) or {}
    user = identity.sign_in(data.get('email'), data.get('password'))

    login_user(user)

    body = _account(user)
    body["token"] = identity.issue_token(user)
    return jsonify(body)


# ---------------------------------------------
# LOGOUT
# ---------------------------------------------
@auth_bp.route('/logout', methods=['POST'])
@login_required
def logout():
    logout_user()
    return jsonify({"success": True})


@auth_bp.route('/me')
@login_required
def me():
    return jsonify(_account(current_user))


# ---------------------------------------------
# PROFILE (own row only)
# ---------------------------------------------
def _own_profile(operation):
    profile = db.session.get(Profile, current_user.id)
    if not profile:
        raise NotFound("Profile not found")
    authorize(caller_for(current_user), operation, profile)
    return profile


@auth_bp.route('/profile')
@login_required
def get_profile():
    return jsonify(_own_profile(Operation.PROFILE_SELECT).to_dict())


@auth_bp.route('/profile', methods=['PUT', 'PATCH'])
@login_required
def update_profile():
    profile = _own_profile(Operation.PROFILE_UPDATE)
    data = request.get_json(silent=True) or {}

    for field in PROFILE_FIELDS:
        if field not in data:
            continue

        value = data[field]
        if field == "year":
            if value not in (None, ""):
                try:
                    value = int(value)
                except (TypeError, ValueError):
                    raise BadRequest("Year must be a number")
        elif value is not None and not isinstance(value, str):
            raise BadRequest(f"{field} must be a string")
        elif field == "name":
            value = (value or "").strip()
            if not 2 <= len(value) <= 100:
                raise BadRequest("Name must be between 2 and 100 characters")
        setattr(profile, field, value or None)

    db.session.commit()
    return jsonify(profile.to_dict())


# ---------------------------------------------
# ROLES (own rows; self-insert limited to student)
# ---------------------------------------------
@auth_bp.route('/roles')
@login_required
def my_roles():
    caller = caller_for(current_user)
    rows = UserRole.query.filter_by(user_id=current_user.id).all()

    return jsonify([
        {"role": r.role, "created_at": r.created_at.isoformat()}
        for r in rows
        if is_allowed(caller, Operation.ROLE_SELECT, r)
    ])


@auth_bp.route('/roles', methods=['POST'])
@login_required
def add_my_role():
    data = request.get_json(silent=True) or {}
    role = data.get('role')

    target = SimpleNamespace(user_id=current_user.id, role=role)
    authorize(caller_for(current_user), Operation.ROLE_INSERT, target)

    created = grant_role(current_user.id, role)
    return jsonify({"success": True, "role": role, "created": created}), 201 if created else 200
