import pytest

from app import create_app
from extension import db
from models import Role
from services import catalog, identity, roles

TEST_CONFIG = {
    "TESTING": True,
    "SQLALCHEMY_DATABASE_URI": "sqlite://",
    "SECRET_KEY": "test-secret",
    "LOG_LEVEL": "WARNING",
    "CLAMP_RETURNS_TO_TOTAL": False,
}

DATES = {"issue_date": "2026-10-01", "due_date": "2026-10-15"}


@pytest.fixture
def app():
    app = create_app(TEST_CONFIG)
    with app.app_context():
        db.create_all()

    yield app

    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def ctx(app):
    """App context for tests that call the services directly."""
    with app.app_context():
        yield app


def bearer(token):
    return {"Authorization": f"Bearer {token}"}


def make_user(app, email, name="Test Student", admin=False):
    """Register an account; returns (user_id, token)."""
    with app.app_context():
        user = identity.sign_up({
            "name": name,
            "email": email,
            "password": "secret123",
        })
        if admin:
            roles.grant_role(user.id, Role.ADMIN)
        return user.id, identity.issue_token(user)


def make_book(app, title="Dune", total=2, **fields):
    with app.app_context():
        book = catalog.add_book({
            "title": title,
            "author": fields.pop("author", "Frank Herbert"),
            "category": fields.pop("category", "Fiction"),
            "total_count": total,
            **fields,
        })
        return book.id


@pytest.fixture
def student(app):
    return make_user(app, "student@example.com")


@pytest.fixture
def admin(app):
    return make_user(app, "admin@example.com", name="Head Librarian", admin=True)


@pytest.fixture
def book_id(app):
    return make_book(app)
