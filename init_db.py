# init_db.py
# type: ignore
# pyright: ignore

from app import create_app
from extension import db
from models import User, Profile, UserRole, Book, BorrowRequest  # noqa: F401

app = create_app()

with app.app_context():
    db.create_all()
    print("All tables created: users, profiles, user_roles, books, borrow_requests")
