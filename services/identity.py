"""
Identity accounts: sign-up, sign-in, bearer tokens and the privileged
admin operations (lookup by email, delete account).
"""

import logging
import re

from flask import current_app
from itsdangerous import URLSafeTimedSerializer, BadData
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from werkzeug.security import generate_password_hash, check_password_hash

from extension import db
from errors import BadRequest, Conflict, Internal, NotFound, Unauthorized
from models import User, Profile, UserRole, Role
from services import borrowing

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
TOKEN_SALT = "access-token"


# ----------------------------
# Validation
# ----------------------------
def _clean(value, field):
    if value is None:
        return None
    if not isinstance(value, str):
        raise BadRequest(f"{field} must be a string")
    return value.strip()


def validate_email(email):
    if not isinstance(email, str):
        raise BadRequest("Email must be a string")
    if not email or not EMAIL_RE.match(email) or len(email) > 255:
        raise BadRequest("Invalid email address")
    return email


def validate_sign_up(data):
    name = _clean(data.get("name"), "Name") or ""
    email = _clean(data.get("email"), "Email") or ""
    password = data.get("password") or ""
    if not isinstance(password, str):
        raise BadRequest("Password must be a string")

    if len(name) < 2:
        raise BadRequest("Name must be at least 2 characters")
    if len(name) > 100:
        raise BadRequest("Name must be at most 100 characters")
    validate_email(email)
    if len(password) < 6:
        raise BadRequest("Password must be at least 6 characters")
    if len(password) > 100:
        raise BadRequest("Password must be at most 100 characters")

    year = data.get("year")
    if year not in (None, ""):
        try:
            year = int(year)
        except (TypeError, ValueError):
            raise BadRequest("Year must be a number")
    else:
        year = None

    return {
        "name": name,
        "email": email.lower(),
        "password": password,
        "roll_no": _clean(data.get("roll_no"), "Roll number") or None,
        "department": _clean(data.get("department"), "Department") or None,
        "year": year,
    }


# ----------------------------
# Sign up / sign in
# ----------------------------
def sign_up(data):
    """
    Create an account, its profile and its student role in one commit.
    Admin rights are never handed out here.
    """
    fields = validate_sign_up(data)

    if User.query.filter_by(email=fields["email"]).first():
        raise Conflict("This email is already registered")

    user = User(
        email=fields["email"],
        password_hash=generate_password_hash(fields["password"])
    )
    db.session.add(user)

    try:
        db.session.flush()
        db.session.add(Profile(
            id=user.id,
            name=fields["name"],
            email=fields["email"],
            roll_no=fields["roll_no"],
            department=fields["department"],
            year=fields["year"],
            borrow_limit=current_app.config["DEFAULT_BORROW_LIMIT"]
        ))
        db.session.add(UserRole(user_id=user.id, role=Role.STUDENT))
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise Conflict("This email is already registered")

    logger.info("Registered user %s", user.id)
    return user


def sign_in(email, password):
    email = (_clean(email, "Email") or "").lower()
    if password is not None and not isinstance(password, str):
        raise BadRequest("Password must be a string")
    user = User.query.filter_by(email=email).first()

    if not user or not check_password_hash(user.password_hash, password or ""):
        raise Unauthorized("Invalid email or password")
    return user


# ----------------------------
# Bearer tokens
# ----------------------------
def _serializer():
    return URLSafeTimedSerializer(
        current_app.config["SECRET_KEY"], salt=TOKEN_SALT
    )


def issue_token(user):
    return _serializer().dumps({"uid": user.id})


def user_from_token(token):
    """Resolve a bearer token to a user, or None if it is bad or expired."""
    try:
        payload = _serializer().loads(
            token, max_age=current_app.config["TOKEN_MAX_AGE"]
        )
    except BadData:
        return None

    return db.session.get(User, payload.get("uid"))


def user_from_header(header):
    if not header:
        return None

    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token:
        return None
    return user_from_token(token.strip())


# ----------------------------
# Privileged administration
# ----------------------------
def find_user_by_email(email):
    email = (_clean(email, "Email") or "").lower()
    user = User.query.filter_by(email=email).first()
    if not user:
        raise NotFound("User not found")
    return user


def delete_user(user):
    """
    Remove an account with its profile, roles and requests. Copies held
    by its approved requests go back on the shelf first.
    """
    user_id = user.id
    try:
        borrowing.release_student_loans(user_id)
        db.session.delete(user)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Failed to delete user %s", user_id)
        raise Internal("Failed to delete user")

    logger.info("Deleted user %s", user_id)
