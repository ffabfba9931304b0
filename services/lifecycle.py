"""
Borrow request state machine.

Pure functions only: which (old, new) status pairs are legal and how
each one moves a book's available copy count. Nothing here touches the
database, so the rules can be checked in isolation.
"""

from models import BorrowStatus

# old status -> statuses it may move to
TRANSITIONS = {
    BorrowStatus.PENDING: (BorrowStatus.APPROVED, BorrowStatus.REJECTED),
    BorrowStatus.APPROVED: (BorrowStatus.RETURNED, BorrowStatus.REJECTED),
    BorrowStatus.REJECTED: (),
    BorrowStatus.RETURNED: (),
}


def is_terminal(status):
    return status in BorrowStatus.TERMINAL


def is_active(status):
    return status in BorrowStatus.ACTIVE


def is_legal(old_status, new_status):
    return new_status in TRANSITIONS.get(old_status, ())


def inventory_delta(old_status, new_status):
    """
    Change to a book's available count caused by moving a request
    from ``old_status`` to ``new_status``.

    Keyed on the pair, never on the new status alone: entering
    ``approved`` takes a copy, leaving it for ``returned`` or
    ``rejected`` gives one back, everything else is neutral.
    """
    if new_status == BorrowStatus.APPROVED and old_status != BorrowStatus.APPROVED:
        return -1
    if old_status == BorrowStatus.APPROVED and new_status in (
        BorrowStatus.RETURNED, BorrowStatus.REJECTED
    ):
        return 1
    return 0


def active_slot(status):
    """Value for the active-request uniqueness column."""
    return 1 if is_active(status) else None
