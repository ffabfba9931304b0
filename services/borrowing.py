"""
Borrow request lifecycle over the database.

Every status change is a compare-and-swap on ``(id, expected status)``
committed together with the matching change to the book's available
count. If either statement fails, both are rolled back.
"""

import logging
from datetime import date, datetime, timedelta

from flask import current_app
from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from extension import db
from errors import (
    BadRequest, BookNotFound, DuplicateActiveRequest, Internal,
    InvalidTransition, LibraryError, MissingDates, NotFound, Unauthorized
)
from models import Book, BorrowRequest, BorrowStatus, Profile
from services import lifecycle

logger = logging.getLogger(__name__)


# ----------------------------
# Utility: Safe date converter
# ----------------------------
def to_date(value):
    """
    Accepts date, datetime or an ISO ``YYYY-MM-DD`` string.
    Returns None for empty values.
    """
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        raise BadRequest(f"Invalid date: {value}")
    try:
        return datetime.strptime(value.strip(), "%Y-%m-%d").date()
    except ValueError:
        raise BadRequest(f"Invalid date: {value}")


# ----------------------------
# Inventory
# ----------------------------
def _adjust_inventory(book_id, delta):
    if delta == 0:
        return

    if delta < 0:
        result = db.session.execute(
            update(Book)
            .where(Book.id == book_id, Book.available_count > 0)
            .values(available_count=Book.available_count - 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            # status still moves to approved; the count stays at zero
            logger.warning(
                "Book %s had no available copies on approval; "
                "available_count left at 0", book_id
            )
        return

    stmt = update(Book).where(Book.id == book_id)
    if current_app.config["CLAMP_RETURNS_TO_TOTAL"]:
        stmt = stmt.where(Book.available_count < Book.total_count)

    result = db.session.execute(
        stmt.values(available_count=Book.available_count + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        logger.warning(
            "Book %s already at total_count; copy not added back", book_id
        )
        return

    over = db.session.query(
        Book.query.filter(
            Book.id == book_id,
            Book.available_count > Book.total_count
        ).exists()
    ).scalar()
    if over:
        logger.warning("Book %s now has more available copies than it owns", book_id)


def get_availability(book_id):
    book = db.session.get(Book, book_id)
    if not book:
        raise BookNotFound()
    return {"available": book.available_count, "total": book.total_count}


def approved_count(book_id):
    return BorrowRequest.query.filter_by(
        book_id=book_id, status=BorrowStatus.APPROVED
    ).count()


def inventory_mismatches():
    """
    Books whose available count differs from total minus approved loans.
    Returns ``[(book_id, available, expected), ...]``.
    """
    loans = dict(
        db.session.query(BorrowRequest.book_id, func.count(BorrowRequest.id))
        .filter(BorrowRequest.status == BorrowStatus.APPROVED)
        .group_by(BorrowRequest.book_id)
        .all()
    )

    mismatches = []
    for book in Book.query.order_by(Book.id).all():
        expected = book.total_count - loans.get(book.id, 0)
        if book.available_count != expected:
            mismatches.append((book.id, book.available_count, expected))
    return mismatches


# ----------------------------
# Create
# ----------------------------
def create_request(student_id, book_id, remarks=None):
    if not db.session.get(Book, book_id):
        raise BookNotFound()
    if not db.session.get(Profile, student_id):
        raise NotFound("Student profile not found")

    existing = BorrowRequest.query.filter(
        BorrowRequest.student_id == student_id,
        BorrowRequest.book_id == book_id,
        BorrowRequest.status.in_(BorrowStatus.ACTIVE)
    ).first()
    if existing:
        raise DuplicateActiveRequest()

    req = BorrowRequest(
        student_id=student_id,
        book_id=book_id,
        status=BorrowStatus.PENDING,
        active_slot=lifecycle.active_slot(BorrowStatus.PENDING),
        remarks=remarks
    )
    db.session.add(req)

    try:
        db.session.commit()
    except IntegrityError:
        # a concurrent request won the unique slot
        db.session.rollback()
        raise DuplicateActiveRequest()

    logger.info(
        "Student %s requested book %s (request %s)", student_id, book_id, req.id
    )
    return req


# ----------------------------
# Transition
# ----------------------------
def _transition_values(new_status, payload):
    values = {
        "status": new_status,
        "active_slot": lifecycle.active_slot(new_status),
    }

    if new_status == BorrowStatus.APPROVED:
        issue_date = to_date(payload.get("issue_date"))
        due_date = to_date(payload.get("due_date"))
        if not issue_date or not due_date:
            raise MissingDates()
        values["issue_date"] = issue_date
        values["due_date"] = due_date

    if new_status == BorrowStatus.RETURNED:
        values["return_date"] = to_date(payload.get("return_date")) or date.today()

    remarks = payload.get("remarks")
    if remarks is not None and not isinstance(remarks, str):
        raise BadRequest("remarks must be a string")
    if remarks:
        values["remarks"] = remarks

    return values


def apply_transition(request_id, expected_status, new_status, payload=None):
    """
    Move ``request_id`` from ``expected_status`` to ``new_status`` and
    apply the inventory change, as one commit. Fails with
    InvalidTransition if the row is no longer in ``expected_status``.
    """
    payload = payload or {}

    if not lifecycle.is_legal(expected_status, new_status):
        raise InvalidTransition(
            f"Cannot move a request from {expected_status} to {new_status}"
        )

    values = _transition_values(new_status, payload)

    try:
        result = db.session.execute(
            update(BorrowRequest)
            .where(
                BorrowRequest.id == request_id,
                BorrowRequest.status == expected_status
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise InvalidTransition(
                f"Request {request_id} is no longer {expected_status}"
            )

        book_id = db.session.execute(
            select(BorrowRequest.book_id).where(BorrowRequest.id == request_id)
        ).scalar_one()

        _adjust_inventory(
            book_id, lifecycle.inventory_delta(expected_status, new_status)
        )
        db.session.commit()

    except LibraryError:
        db.session.rollback()
        raise
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Failed to update borrow request %s", request_id)
        raise Internal("Failed to update borrow request")

    logger.info(
        "Request %s moved %s -> %s", request_id, expected_status, new_status
    )

    return db.session.get(BorrowRequest, request_id)


def transition(request_id, new_status, actor_is_admin, payload=None):
    if not actor_is_admin:
        raise Unauthorized("Admin access required")

    if new_status not in BorrowStatus.ALL:
        raise InvalidTransition(f"Unknown status: {new_status}")

    req = db.session.get(BorrowRequest, request_id)
    if not req:
        raise NotFound("Borrow request not found")

    return apply_transition(request_id, req.status, new_status, payload)


# ----------------------------
# Delete
# ----------------------------
def delete_request(request_id):
    """
    Delete a request. An approved one gives its copy back, but only if
    it is still approved when the row is removed.
    """
    req = db.session.get(BorrowRequest, request_id)
    if not req:
        raise NotFound("Borrow request not found")

    status, book_id = req.status, req.book_id

    try:
        result = db.session.execute(
            delete(BorrowRequest).where(
                BorrowRequest.id == request_id,
                BorrowRequest.status == status
            )
        )
        if result.rowcount != 1:
            raise InvalidTransition(f"Request {request_id} is no longer {status}")

        if status == BorrowStatus.APPROVED:
            _adjust_inventory(book_id, 1)
        db.session.commit()

    except LibraryError:
        db.session.rollback()
        raise
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Failed to delete borrow request %s", request_id)
        raise Internal("Failed to delete borrow request")

    logger.info("Deleted borrow request %s (was %s)", request_id, status)


def release_student_loans(student_id):
    """Give back copies held by a student's approved requests. No commit."""
    for req in BorrowRequest.query.filter_by(
        student_id=student_id, status=BorrowStatus.APPROVED
    ).all():
        _adjust_inventory(req.book_id, 1)


# ----------------------------
# Listing
# ----------------------------
def list_requests(status=None):
    query = BorrowRequest.query
    if status:
        if status not in BorrowStatus.ALL:
            raise BadRequest(f"Unknown status: {status}")
        query = query.filter_by(status=status)
    return query.order_by(
        BorrowRequest.created_at.desc(), BorrowRequest.id.desc()
    ).all()


def list_for_student(student_id, active=None):
    query = BorrowRequest.query.filter_by(student_id=student_id)
    if active is True:
        query = query.filter(BorrowRequest.status.in_(BorrowStatus.ACTIVE))
    elif active is False:
        query = query.filter(BorrowRequest.status.in_(BorrowStatus.TERMINAL))
    return query.order_by(
        BorrowRequest.created_at.desc(), BorrowRequest.id.desc()
    ).all()


def default_loan_dates(today=None):
    """Issue today, due after the configured loan period."""
    today = today or date.today()
    return today, today + timedelta(days=current_app.config["DEFAULT_LOAN_DAYS"])
