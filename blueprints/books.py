# type: ignore
# pyright: ignore
from flask import Blueprint, request, jsonify
from flask_login import current_user

from services import borrowing, catalog
from services.policy import Operation, authorize
from services.roles import caller_for

# ----------------------------
# Blueprint
# ----------------------------
books_bp = Blueprint('books', __name__)


def _caller():
    return caller_for(current_user)


# ----------------------------
# View all books (SEARCH + CATEGORY FILTER)
# ----------------------------
@books_bp.route('')
def list_books():
    authorize(_caller(), Operation.BOOK_SELECT)

    books = catalog.search_books(
        request.args.get('q', ''),
        request.args.get('category', '')
    )
    return jsonify([b.to_dict() for b in books])


@books_bp.route('/categories')
def list_categories():
    authorize(_caller(), Operation.BOOK_SELECT)
    return jsonify(catalog.categories())


@books_bp.route('/<int:book_id>')
def get_book(book_id):
    authorize(_caller(), Operation.BOOK_SELECT)
    return jsonify(catalog.get_book(book_id).to_dict())


@books_bp.route('/<int:book_id>/availability')
def availability(book_id):
    authorize(_caller(), Operation.BOOK_SELECT)
    return jsonify(borrowing.get_availability(book_id))


# ----------------------------
# Admin: add / edit / delete
# ----------------------------
@books_bp.route('', methods=['POST'])
def add_book():
    authorize(_caller(), Operation.BOOK_INSERT)

    book = catalog.add_book(request.get_json(silent=True) or {})
    return jsonify(book.to_dict()), 201


@books_bp.route('/<int:book_id>', methods=['PUT', 'PATCH'])
def edit_book(book_id):
    authorize(_caller(), Operation.BOOK_UPDATE)

    book = catalog.edit_book(book_id, request.get_json(silent=True) or {})
    return jsonify(book.to_dict())


@books_bp.route('/<int:book_id>', methods=['DELETE'])
def delete_book(book_id):
    authorize(_caller(), Operation.BOOK_DELETE)

    catalog.delete_book(book_id)
    return jsonify({"success": True, "message": "Book deleted successfully"})
