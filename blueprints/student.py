# blueprints/student.py

from types import SimpleNamespace

from flask import Blueprint, request, jsonify
from flask_login import login_required, current_user

from errors import BadRequest, NotFound
from extension import db
from models import BorrowRequest
from services import borrowing
from services.policy import Operation, authorize, is_allowed
from services.roles import caller_for

# ----------------------------
# Blueprint
# ----------------------------
student_bp = Blueprint('student', __name__)


def request_summary(req):
    body = req.to_dict()
    body["book"] = {
        "title": req.book.title,
        "author": req.book.author,
        "photo_url": req.book.photo_url,
    }
    return body


# ----------------------------
# Request to borrow a book
# ----------------------------
@student_bp.route('/borrow-requests', methods=['POST'])
@login_required
def create_borrow_request():
    data = request.get_json(silent=True) or {}

    book_id = data.get('book_id')
    if book_id is None:
        raise BadRequest("book_id is required")
    try:
        book_id = int(book_id)
    except (TypeError, ValueError):
        raise BadRequest("book_id must be a number")

    # a student may only file requests as themselves
    target = SimpleNamespace(student_id=current_user.id, book_id=book_id)
    authorize(caller_for(current_user), Operation.REQUEST_INSERT, target)

    req = borrowing.create_request(current_user.id, book_id, data.get('remarks'))
    return jsonify(request_summary(req)), 201


# ----------------------------
# View own requests
# ----------------------------
@student_bp.route('/borrow-requests')
@login_required
def my_borrow_requests():
    view = request.args.get('view', 'all')
    if view not in ('all', 'active', 'history'):
        raise BadRequest("view must be one of all, active, history")

    active = {'all': None, 'active': True, 'history': False}[view]
    records = borrowing.list_for_student(current_user.id, active)

    return jsonify([request_summary(r) for r in records])


@student_bp.route('/borrow-requests/<int:request_id>')
@login_required
def get_borrow_request(request_id):
    req = db.session.get(BorrowRequest, request_id)
    caller = caller_for(current_user)

    # hide other students' rows rather than reveal they exist
    if not req or not is_allowed(caller, Operation.REQUEST_SELECT, req):
        raise NotFound("Borrow request not found")

    return jsonify(request_summary(req))
