# type: ignore
# pyright: ignore

from functools import wraps

from flask import Blueprint, request, jsonify, Response
from flask_login import login_required, current_user

from errors import BadRequest, Forbidden, NotFound
from extension import db
from models import Role, BorrowRequest
from services import borrowing, reports
from services.policy import Operation, is_allowed
from services.roles import caller_for, has_role


# =================================================
# BLUEPRINT
# =================================================
admin_bp = Blueprint("admin", __name__)


# =================================================
# ADMIN ACCESS DECORATOR
# =================================================
def admin_required(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        if not has_role(current_user.id, Role.ADMIN):
            raise Forbidden("Admin access required")
        return fn(*args, **kwargs)
    return wrapper


def _request_row(req):
    body = req.to_dict()
    body["student"] = {
        "name": req.student.name,
        "email": req.student.email,
        "roll_no": req.student.roll_no,
    }
    body["book"] = {"title": req.book.title, "author": req.book.author}
    return body


# =================================================
# DASHBOARD
# =================================================
@admin_bp.route("/stats")
@login_required
@admin_required
def stats():
    return jsonify(reports.dashboard_stats())


# =================================================
# BORROW REQUESTS
# =================================================
@admin_bp.route("/requests")
@login_required
@admin_required
def requests_list():
    status = request.args.get("status") or None
    if status == "all":
        status = None

    return jsonify([_request_row(r) for r in borrowing.list_requests(status)])


@admin_bp.route("/requests/default-dates")
@login_required
@admin_required
def default_dates():
    issue_date, due_date = borrowing.default_loan_dates()
    return jsonify({
        "issue_date": issue_date.isoformat(),
        "due_date": due_date.isoformat(),
    })


@admin_bp.route("/requests/<int:request_id>", methods=["PATCH"])
@login_required
def update_request_status(request_id):
    req = db.session.get(BorrowRequest, request_id)
    if not req:
        raise NotFound("Borrow request not found")

    caller = caller_for(current_user)
    if not is_allowed(caller, Operation.REQUEST_UPDATE, req):
        raise Forbidden("Admin access required")

    data = request.get_json(silent=True) or {}
    status = data.get("status")
    if not status:
        raise BadRequest("status is required")

    updated = borrowing.transition(
        request_id,
        status,
        actor_is_admin=True,
        payload={
            "issue_date": data.get("issue_date"),
            "due_date": data.get("due_date"),
            "return_date": data.get("return_date"),
            "remarks": data.get("remarks"),
        }
    )
    return jsonify(_request_row(updated))


@admin_bp.route("/requests/<int:request_id>", methods=["DELETE"])
@login_required
@admin_required
def delete_request(request_id):
    borrowing.delete_request(request_id)
    return jsonify({"success": True, "message": "Borrow request deleted"})


# =================================================
# INVENTORY AUDIT
# =================================================
@admin_bp.route("/inventory/audit")
@login_required
@admin_required
def inventory_audit():
    return jsonify([
        {"book_id": book_id, "available_count": available, "expected": expected}
        for book_id, available, expected in borrowing.inventory_mismatches()
    ])


# -------------------------------------------------
# EXPORT BORROW REPORT (PDF)
# -------------------------------------------------
@admin_bp.route("/export/borrow-report/pdf")
@login_required
@admin_required
def export_borrow_report_pdf():
    return Response(
        reports.borrow_report_pdf(),
        mimetype="application/pdf",
        headers={
            "Content-Disposition":
            "attachment; filename=library_borrow_report.pdf"
        }
    )
