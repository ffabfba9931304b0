"""
Admin dashboard numbers and the PDF borrow report.
"""

from io import BytesIO
from datetime import date

from sqlalchemy import func

from reportlab.lib.pagesizes import A4
from reportlab.platypus import SimpleDocTemplate, Paragraph, Spacer
from reportlab.lib.styles import getSampleStyleSheet
from xml.sax.saxutils import escape

from extension import db
from models import Book, BorrowRequest, BorrowStatus, UserRole, Role


def dashboard_stats():
    return {
        "total_books": db.session.query(
            func.coalesce(func.sum(Book.total_count), 0)
        ).scalar(),
        "available_books": db.session.query(
            func.coalesce(func.sum(Book.available_count), 0)
        ).scalar(),
        "total_titles": Book.query.count(),
        "total_students": UserRole.query.filter_by(role=Role.STUDENT).count(),
        "pending_requests": BorrowRequest.query.filter_by(
            status=BorrowStatus.PENDING
        ).count(),
        "active_loans": BorrowRequest.query.filter_by(
            status=BorrowStatus.APPROVED
        ).count(),
    }


def overdue_requests(today=None):
    today = today or date.today()
    return BorrowRequest.query.filter(
        BorrowRequest.status == BorrowStatus.APPROVED,
        BorrowRequest.due_date < today
    ).order_by(BorrowRequest.due_date).all()


def _fmt(value):
    return value.isoformat() if value else "-"


def borrow_report_pdf(today=None):
    """Render every borrow request plus the overdue list. Returns bytes."""
    today = today or date.today()

    buffer = BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=A4,
        rightMargin=30,
        leftMargin=30,
        topMargin=30,
        bottomMargin=30
    )

    styles = getSampleStyleSheet()
    elements = []

    elements.append(Paragraph("Library Borrow Report", styles["Title"]))
    elements.append(Paragraph(f"Generated on {today.isoformat()}", styles["Normal"]))
    elements.append(Spacer(1, 20))

    # ---------------- REQUESTS ----------------
    elements.append(Paragraph("Borrow Requests", styles["Heading2"]))
    elements.append(Spacer(1, 10))

    requests = BorrowRequest.query.order_by(BorrowRequest.created_at.desc()).all()
    if not requests:
        elements.append(Paragraph("No borrow requests yet.", styles["Normal"]))

    for r in requests:
        elements.append(
            Paragraph(
                f"""
                <b>Book:</b> {escape(r.book.title)}<br/>
                <b>Student:</b> {escape(r.student.name)} ({escape(r.student.email)})<br/>
                <b>Status:</b> {r.status}<br/>
                <b>Issued:</b> {_fmt(r.issue_date)}<br/>
                <b>Due:</b> {_fmt(r.due_date)}<br/>
                <b>Returned:</b> {_fmt(r.return_date)}
                """,
                styles["Normal"]
            )
        )
        elements.append(Spacer(1, 12))

    # ---------------- OVERDUE ----------------
    elements.append(Spacer(1, 20))
    elements.append(Paragraph("Overdue Loans", styles["Heading2"]))
    elements.append(Spacer(1, 10))

    overdue = overdue_requests(today)
    if not overdue:
        elements.append(Paragraph("No overdue loans.", styles["Normal"]))

    for o in overdue:
        elements.append(
            Paragraph(
                f"""
                <b>Student:</b> {escape(o.student.name)}<br/>
                <b>Book:</b> {escape(o.book.title)}<br/>
                <b>Days Overdue:</b> {(today - o.due_date).days}
                """,
                styles["Normal"]
            )
        )
        elements.append(Spacer(1, 12))

    doc.build(elements)
    return buffer.getvalue()
