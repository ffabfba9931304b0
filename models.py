# models.py
# type: ignore
# pyright: ignore

from extension import db
from flask_login import UserMixin
from datetime import datetime


# ------------------------
# User Roles
# ------------------------
class Role:
    ADMIN = 'admin'
    STUDENT = 'student'


# ------------------------
# Borrow request states
# ------------------------
class BorrowStatus:
    PENDING = 'pending'
    APPROVED = 'approved'
    REJECTED = 'rejected'
    RETURNED = 'returned'

    ALL = (PENDING, APPROVED, REJECTED, RETURNED)
    ACTIVE = (PENDING, APPROVED)
    TERMINAL = (REJECTED, RETURNED)


# ------------------------
# Identity accounts
# ------------------------
class User(UserMixin, db.Model):
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), unique=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    profile = db.relationship(
        'Profile', backref='user', uselist=False,
        cascade='all, delete-orphan'
    )
    roles = db.relationship(
        'UserRole', backref='user', lazy=True,
        cascade='all, delete-orphan'
    )


# ------------------------
# Profiles
# ------------------------
class Profile(db.Model):
    __tablename__ = 'profiles'

    id = db.Column(
        db.Integer,
        db.ForeignKey('users.id', ondelete='CASCADE'),
        primary_key=True
    )
    name = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(255), nullable=False)
    roll_no = db.Column(db.String(50))
    department = db.Column(db.String(120))
    year = db.Column(db.Integer)

    # declared, not enforced
    borrow_limit = db.Column(db.Integer, default=3)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(
        db.DateTime, nullable=False,
        default=datetime.utcnow, onupdate=datetime.utcnow
    )

    borrow_requests = db.relationship(
        'BorrowRequest', backref='student', lazy=True,
        cascade='all, delete-orphan'
    )

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "roll_no": self.roll_no,
            "department": self.department,
            "year": self.year,
            "borrow_limit": self.borrow_limit,
        }


# ------------------------
# Role assignments
# ------------------------
class UserRole(db.Model):
    __tablename__ = 'user_roles'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.Integer,
        db.ForeignKey('users.id', ondelete='CASCADE'),
        nullable=False
    )
    role = db.Column(db.String(20), nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        db.UniqueConstraint('user_id', 'role', name='unique_user_role'),
    )


# ------------------------
# Books
# ------------------------
class Book(db.Model):
    __tablename__ = 'books'

    id = db.Column(db.Integer, primary_key=True)

    title = db.Column(db.String(200), nullable=False)
    author = db.Column(db.String(200), nullable=False)
    category = db.Column(db.String(100), nullable=False)
    description = db.Column(db.Text)
    isbn = db.Column(db.String(20))
    photo_url = db.Column(db.String(300))
    publisher = db.Column(db.String(200))
    year_published = db.Column(db.Integer)

    total_count = db.Column(db.Integer, nullable=False, default=1)
    available_count = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(
        db.DateTime, nullable=False,
        default=datetime.utcnow, onupdate=datetime.utcnow
    )

    borrow_requests = db.relationship(
        'BorrowRequest', backref='book', lazy=True,
        cascade='all, delete-orphan'
    )

    __table_args__ = (
        db.CheckConstraint(
            'available_count >= 0', name='available_not_negative'
        ),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "title": self.title,
            "author": self.author,
            "category": self.category,
            "description": self.description,
            "isbn": self.isbn,
            "photo_url": self.photo_url,
            "publisher": self.publisher,
            "year_published": self.year_published,
            "total_count": self.total_count,
            "available_count": self.available_count,
        }


# ------------------------
# Borrow Requests
# ------------------------
class BorrowRequest(db.Model):
    __tablename__ = 'borrow_requests'

    id = db.Column(db.Integer, primary_key=True)
    student_id = db.Column(
        db.Integer,
        db.ForeignKey('profiles.id', ondelete='CASCADE'),
        nullable=False
    )
    book_id = db.Column(
        db.Integer,
        db.ForeignKey('books.id', ondelete='CASCADE'),
        nullable=False
    )

    issue_date = db.Column(db.Date)
    due_date = db.Column(db.Date)
    return_date = db.Column(db.Date)

    status = db.Column(
        db.String(20), nullable=False, default=BorrowStatus.PENDING
    )  # pending | approved | rejected | returned
    remarks = db.Column(db.Text)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    # 1 while pending/approved, NULL once terminal. NULLs never collide in
    # a unique constraint, so only one active row per (student, book).
    active_slot = db.Column(db.Integer, default=1)

    __table_args__ = (
        db.UniqueConstraint(
            'student_id',
            'book_id',
            'active_slot',
            name='one_active_request_per_book'
        ),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "student_id": self.student_id,
            "book_id": self.book_id,
            "status": self.status,
            "issue_date": _iso(self.issue_date),
            "due_date": _iso(self.due_date),
            "return_date": _iso(self.return_date),
            "remarks": self.remarks,
            "created_at": _iso(self.created_at),
        }


def _iso(value):
    return value.isoformat() if value else None
