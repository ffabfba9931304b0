"""
Book catalog: validation, admin CRUD and search.
"""

import logging

from flask import current_app
from fuzzywuzzy import fuzz
from sqlalchemy.exc import SQLAlchemyError

from extension import db
from errors import BadRequest, BookNotFound, Conflict, Internal
from models import Book
from services.borrowing import approved_count

logger = logging.getLogger(__name__)

# field -> (required, max length)
TEXT_FIELDS = {
    "title": (True, 200),
    "author": (True, 200),
    "category": (True, 100),
    "description": (False, 1000),
    "isbn": (False, 20),
    "publisher": (False, 200),
    "photo_url": (False, 300),
}


def _to_int(value, field):
    try:
        return int(value)
    except (TypeError, ValueError):
        raise BadRequest(f"{field} must be a number")


def validate_book(data, partial=False):
    """
    Clean an incoming book payload. With ``partial`` only the keys
    present are checked (used for edits).
    """
    cleaned = {}

    for field, (required, max_len) in TEXT_FIELDS.items():
        if partial and field not in data:
            continue

        value = data.get(field)
        if value is not None and not isinstance(value, str):
            raise BadRequest(f"{field} must be a string")
        value = value.strip() if value else value

        if not value:
            if required:
                raise BadRequest(f"{field.capitalize()} is required")
            cleaned[field] = None
            continue

        if len(value) > max_len:
            raise BadRequest(f"{field} must be at most {max_len} characters")
        cleaned[field] = value

    photo_url = cleaned.get("photo_url")
    if photo_url and not photo_url.startswith(("http://", "https://", "/")):
        raise BadRequest("photo_url must be a URL")

    if "year_published" in data or not partial:
        year = data.get("year_published")
        if year in (None, ""):
            cleaned["year_published"] = None
        else:
            year = _to_int(year, "year_published")
            if not 1000 <= year <= 9999:
                raise BadRequest("year_published must be between 1000 and 9999")
            cleaned["year_published"] = year

    if "total_count" in data or not partial:
        total = _to_int(data.get("total_count", 1), "total_count")
        if total < 1:
            raise BadRequest("Must have at least 1 copy")
        cleaned["total_count"] = total

    return cleaned


def get_book(book_id):
    book = db.session.get(Book, book_id)
    if not book:
        raise BookNotFound()
    return book


# ----------------------------
# Admin CRUD
# ----------------------------
def add_book(data):
    fields = validate_book(data)
    book = Book(available_count=fields["total_count"], **fields)

    db.session.add(book)
    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Failed to add book %r", fields.get("title"))
        raise Internal("Error saving book")

    logger.info("Added book %s (%s copies)", book.id, book.total_count)
    return book


def edit_book(book_id, data):
    book = get_book(book_id)
    fields = validate_book(data, partial=True)

    # copies on loan stay on loan when the total changes
    new_total = fields.pop("total_count", None)
    if new_total is not None:
        borrowed = approved_count(book.id)
        if new_total < borrowed:
            raise Conflict(
                f"Cannot reduce copies to {new_total}: {borrowed} currently borrowed"
            )
        book.total_count = new_total
        book.available_count = new_total - borrowed

    for field, value in fields.items():
        setattr(book, field, value)

    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Failed to update book %s", book_id)
        raise Internal("Error saving book")

    return book


def delete_book(book_id):
    book = get_book(book_id)

    if approved_count(book.id):
        raise Conflict("Cannot delete book. It is currently borrowed.")

    db.session.delete(book)
    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Failed to delete book %s", book_id)
        raise Internal("Error deleting book")

    logger.info("Deleted book %s", book_id)


# ----------------------------
# Search
# ----------------------------
def _fuzzy_match(query, book, threshold):
    return any(
        fuzz.partial_ratio(query, (value or "").lower()) >= threshold
        for value in (book.title, book.author, book.category)
    )


def search_books(query="", category=""):
    """
    Title/author/category substring search; falls back to fuzzy
    matching when nothing matches literally.
    """
    query = (query or "").strip()
    category = (category or "").strip()

    books_query = Book.query
    if category:
        books_query = books_query.filter(Book.category == category)
    books_query = books_query.order_by(Book.title)

    if not query:
        return books_query.all()

    matches = books_query.filter(
        Book.title.ilike(f'%{query}%') |
        Book.author.ilike(f'%{query}%') |
        Book.category.ilike(f'%{query}%')
    ).all()
    if matches:
        return matches

    threshold = current_app.config["FUZZY_THRESHOLD"]
    return [
        b for b in books_query.all()
        if _fuzzy_match(query.lower(), b, threshold)
    ]


def categories():
    rows = db.session.query(Book.category).distinct().order_by(Book.category).all()
    return [c[0] for c in rows if c[0]]
