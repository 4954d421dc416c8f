"""
Loan Engine

WHY: A checkout takes units of several items off the shelf at once and a
return puts exactly those units back. Both must be all-or-nothing: a ticket
that fails on its third line must leave the first two items untouched.

DESIGN PRINCIPLES:
- One store transaction per checkout and per return (loan + stock + history)
- Stock changes go through inventory_service.adjust_stock, never direct writes
- Cart lines are applied one by one in request order and are never merged
- Announcements (inventory, loans, history) only after commit

LIFECYCLE:
1. create_loan -> ACTIVE (stock decremented, SALIDA history entry)
2. return_loan -> RETURNED (stock restored, DEVOLUCION history entry)
RETURNED is terminal; returning twice is a ConflictError.
"""

from __future__ import annotations

import logging
from datetime import datetime

from ..extensions import db
from ..models import Loan, LoanLine
from ..validation import ValidationError, NotFoundError, ConflictError, InvalidStateError
from toolcrib.time_utils import utcnow, to_utc_z
from .concurrency import lock_for_update, run_in_transaction
from .inventory_service import get_item, adjust_stock
from .history_service import append_history, HISTORY_ACTION_CHECKOUT, HISTORY_ACTION_RETURN
from .notifier import announce_after_commit, TOPIC_INVENTORY, TOPIC_LOANS, TOPIC_HISTORY

logger = logging.getLogger(__name__)


# =============================================================================
# LOAN STATUS CONSTANTS
# =============================================================================

LOAN_STATUS_ACTIVE = "ACTIVE"
LOAN_STATUS_RETURNED = "RETURNED"

LOAN_STATUSES = (LOAN_STATUS_ACTIVE, LOAN_STATUS_RETURNED)


def _describe_lines(lines) -> str:
    return ", ".join(f"{line.quantity} x {line.item_name}" for line in lines)


# =============================================================================
# READS
# =============================================================================

def get_loan(loan_id: int, *, lock: bool = False) -> Loan:
    query = db.session.query(Loan).filter_by(id=loan_id)
    if lock:
        query = lock_for_update(query)
    loan = query.first()
    if loan is None:
        raise NotFoundError(f"Loan {loan_id} not found")
    return loan


def list_loans(status: str | None = None) -> list[Loan]:
    """All loans, most recently created first."""
    query = db.session.query(Loan)
    if status is not None:
        query = query.filter(Loan.status == status)
    return query.order_by(Loan.created_at.desc(), Loan.id.desc()).all()


# =============================================================================
# CHECKOUT
# =============================================================================

def create_loan(
    *,
    responsible: str,
    lines: list[dict],
    location: str | None = None,
    date: datetime | None = None,
    signature: str | None = None,
) -> Loan:
    """
    Check out every cart line as one ticket (status: ACTIVE).

    Args:
        responsible: Person accountable for the tools
        lines: Normalized cart lines [{item_id, quantity}], in request order
        location: Where the tools are going
        date: Business date of the checkout (defaults to now)
        signature: Opaque signature capture

    Returns:
        The committed Loan

    Raises:
        ValidationError: The cart is empty
        NotFoundError: A line references an unknown item
        InvalidStateError: A line asks for more units than are on the shelf
        TransactionAbortedError: The store rejected the commit
    """
    if not lines:
        raise ValidationError("A loan needs at least one item")

    def _op():
        now = utcnow()
        loan = Loan(
            responsible=responsible,
            location=location,
            date=date or now,
            signature=signature,
            status=LOAN_STATUS_ACTIVE,
            created_at=now,
        )
        db.session.add(loan)

        for number, line in enumerate(lines, start=1):
            item = get_item(line["item_id"], lock=True)
            adjust_stock(item, -line["quantity"])
            loan.lines.append(LoanLine(
                line_number=number,
                item_id=item.id,
                item_name=item.name,
                quantity=line["quantity"],
            ))

        db.session.flush()  # ensure loan.id exists before history append

        append_history(
            action=HISTORY_ACTION_CHECKOUT,
            description=(
                f"Loan #{loan.id} to {loan.responsible}: {loan.unit_count} units "
                f"({_describe_lines(loan.lines)})"
            ),
            entity_type="loan",
            entity_id=loan.id,
        )
        announce_after_commit(TOPIC_INVENTORY, TOPIC_LOANS, TOPIC_HISTORY)
        return loan

    loan = run_in_transaction(_op)
    logger.info("loan created id=%s units=%s responsible=%r", loan.id, loan.unit_count, loan.responsible)
    return loan


# =============================================================================
# RETURN
# =============================================================================

def return_loan(loan_id: int) -> Loan:
    """
    Put every unit of an ACTIVE loan back on the shelf (ACTIVE -> RETURNED).

    Raises:
        NotFoundError: Unknown loan id
        ConflictError: Loan was already returned
        TransactionAbortedError: The store rejected the commit (e.g. a
            concurrent return of the same loan won the race)
    """
    def _op():
        loan = get_loan(loan_id, lock=True)
        if loan.status == LOAN_STATUS_RETURNED:
            raise ConflictError(
                f"Loan {loan_id} was already returned on {to_utc_z(loan.return_date)}"
            )
        if loan.status != LOAN_STATUS_ACTIVE:
            raise InvalidStateError(f"Loan {loan_id} has unexpected status: {loan.status}")

        loan.status = LOAN_STATUS_RETURNED
        loan.return_date = utcnow()

        for line in loan.lines:
            item = get_item(line.item_id, lock=True)
            adjust_stock(item, line.quantity)

        db.session.flush()

        append_history(
            action=HISTORY_ACTION_RETURN,
            description=(
                f"Loan #{loan.id} returned by {loan.responsible}: {loan.unit_count} units "
                f"({_describe_lines(loan.lines)})"
            ),
            entity_type="loan",
            entity_id=loan.id,
        )
        announce_after_commit(TOPIC_INVENTORY, TOPIC_LOANS, TOPIC_HISTORY)
        return loan

    loan = run_in_transaction(_op)
    logger.info("loan returned id=%s units=%s", loan.id, loan.unit_count)
    return loan
