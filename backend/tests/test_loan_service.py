"""
Loan engine tests.

Verifies:
- Checkout takes units off the shelf, return puts exactly those back
- A cart that fails on any line commits nothing (no loan, no stock, no history)
- RETURNED is terminal: a second return is a ConflictError
- Announcements happen once per successful commit and never on failure
"""

from datetime import datetime

import pytest

from toolcrib.extensions import db
from toolcrib.models import HistoryEntry, Loan
from toolcrib.services import inventory_service, loan_service
from toolcrib.services.history_service import HISTORY_ACTION_CHECKOUT, HISTORY_ACTION_RETURN
from toolcrib.services.notifier import TOPIC_INVENTORY, TOPIC_LOANS, TOPIC_HISTORY
from toolcrib.validation import ConflictError, InvalidStateError, NotFoundError, ValidationError

from conftest import history_count, loan_count, reload_item

ALL_TOPICS = [TOPIC_INVENTORY, TOPIC_LOANS, TOPIC_HISTORY]


def _line(item, qty):
    return {"item_id": item.id, "quantity": qty}


# =============================================================================
# CHECKOUT + RETURN ROUND TRIP
# =============================================================================


class TestDrillRoundTrip:
    """Drill 5/5 -> loan 3 -> 2/5 -> return -> 5/5."""

    def test_round_trip(self, drill, observer):
        loan = loan_service.create_loan(
            responsible="Ana",
            location="Workshop 2",
            lines=[_line(drill, 3)],
            signature="data:image/png;base64,AAAA",
        )

        assert loan.status == loan_service.LOAN_STATUS_ACTIVE
        assert loan.return_date is None
        fresh = reload_item(drill.id)
        assert (fresh.stock, fresh.total) == (2, 5)

        entries = db.session.query(HistoryEntry).all()
        assert [e.action for e in entries] == [HISTORY_ACTION_CHECKOUT]
        assert observer.drain() == ALL_TOPICS

        returned = loan_service.return_loan(loan.id)

        assert returned.status == loan_service.LOAN_STATUS_RETURNED
        assert returned.return_date is not None
        fresh = reload_item(drill.id)
        assert (fresh.stock, fresh.total) == (5, 5)

        actions = sorted(e.action for e in db.session.query(HistoryEntry).all())
        assert actions == sorted([HISTORY_ACTION_CHECKOUT, HISTORY_ACTION_RETURN])
        assert observer.drain() == ALL_TOPICS

    def test_loan_keeps_header_fields(self, drill):
        when = datetime(2026, 10, 1, 9, 30)
        loan = loan_service.create_loan(
            responsible="Luis",
            location="Site B",
            date=when,
            signature="sig-blob",
            lines=[_line(drill, 1)],
        )

        loan = db.session.get(Loan, loan.id)
        assert loan.responsible == "Luis"
        assert loan.location == "Site B"
        assert loan.date == when
        assert loan.signature == "sig-blob"

    def test_date_defaults_to_now(self, drill):
        loan = loan_service.create_loan(responsible="Ana", lines=[_line(drill, 1)])
        assert loan.date is not None


# =============================================================================
# MULTI-LINE CARTS
# =============================================================================


class TestCarts:
    def test_multi_item_cart(self, drill, hammer):
        loan = loan_service.create_loan(responsible="Ana", lines=[_line(drill, 2), _line(hammer, 3)])

        assert (reload_item(drill.id).stock, reload_item(hammer.id).stock) == (3, 0)
        assert [(l.line_number, l.item_name, l.quantity) for l in loan.lines] == [
            (1, "Drill", 2),
            (2, "Hammer", 3),
        ]
        assert loan.unit_count == 5

    def test_same_item_twice_is_not_merged(self, drill):
        loan = loan_service.create_loan(responsible="Ana", lines=[_line(drill, 2), _line(drill, 1)])

        assert len(loan.lines) == 2
        assert reload_item(drill.id).stock == 2

        loan_service.return_loan(loan.id)
        assert reload_item(drill.id).stock == 5

    def test_same_item_twice_counts_against_one_shelf(self, drill, observer):
        with pytest.raises(InvalidStateError):
            loan_service.create_loan(responsible="Ana", lines=[_line(drill, 3), _line(drill, 3)])

        assert reload_item(drill.id).stock == 5
        assert loan_count() == 0
        assert observer.drain() == []

    def test_checkout_entire_stock(self, hammer):
        loan_service.create_loan(responsible="Ana", lines=[_line(hammer, 3)])
        assert reload_item(hammer.id).stock == 0

    def test_history_summarizes_responsible_units_and_names(self, drill, hammer):
        loan_service.create_loan(responsible="Ana", lines=[_line(drill, 2), _line(hammer, 1)])

        entry = db.session.query(HistoryEntry).one()
        assert "Ana" in entry.description
        assert "3 units" in entry.description
        assert "Drill" in entry.description and "Hammer" in entry.description


# =============================================================================
# ALL OR NOTHING
# =============================================================================


class TestCheckoutAborts:
    def test_insufficient_stock_commits_nothing(self, drill, hammer, observer):
        with pytest.raises(InvalidStateError):
            loan_service.create_loan(responsible="Ana", lines=[_line(drill, 2), _line(hammer, 4)])

        assert reload_item(drill.id).stock == 5
        assert reload_item(hammer.id).stock == 3
        assert loan_count() == 0
        assert history_count() == 0
        assert observer.drain() == []

    def test_unknown_item_commits_nothing(self, drill, observer):
        with pytest.raises(NotFoundError):
            loan_service.create_loan(responsible="Ana", lines=[_line(drill, 1), {"item_id": 999, "quantity": 1}])

        assert reload_item(drill.id).stock == 5
        assert loan_count() == 0
        assert history_count() == 0
        assert observer.drain() == []

    def test_empty_cart_is_a_validation_error(self, db_session, observer):
        with pytest.raises(ValidationError):
            loan_service.create_loan(responsible="Ana", lines=[])

        assert loan_count() == 0
        assert history_count() == 0
        assert observer.drain() == []


# =============================================================================
# RETURN STATE MACHINE
# =============================================================================


class TestReturn:
    def test_second_return_conflicts(self, drill, observer):
        loan = loan_service.create_loan(responsible="Ana", lines=[_line(drill, 3)])
        loan_service.return_loan(loan.id)
        observer.drain()
        before = history_count()

        with pytest.raises(ConflictError):
            loan_service.return_loan(loan.id)

        assert reload_item(drill.id).stock == 5
        assert history_count() == before
        assert observer.drain() == []

    def test_return_unknown_loan(self, db_session, observer):
        with pytest.raises(NotFoundError):
            loan_service.return_loan(12345)
        assert observer.drain() == []

    def test_return_after_total_lowered(self, drill):
        loan = loan_service.create_loan(responsible="Ana", lines=[_line(drill, 3)])
        inventory_service.edit_item(item_id=drill.id, patch={"total": 3})  # 0 / 3

        loan_service.return_loan(loan.id)

        fresh = reload_item(drill.id)
        assert (fresh.stock, fresh.total) == (3, 3)


# =============================================================================
# LISTING
# =============================================================================


class TestListLoans:
    def test_newest_first(self, drill):
        first = loan_service.create_loan(responsible="First", lines=[_line(drill, 1)])
        second = loan_service.create_loan(responsible="Second", lines=[_line(drill, 1)])

        assert [l.id for l in loan_service.list_loans()] == [second.id, first.id]

    def test_status_filter(self, drill):
        open_loan = loan_service.create_loan(responsible="Open", lines=[_line(drill, 1)])
        closed = loan_service.create_loan(responsible="Closed", lines=[_line(drill, 1)])
        loan_service.return_loan(closed.id)

        active = loan_service.list_loans(status=loan_service.LOAN_STATUS_ACTIVE)
        returned = loan_service.list_loans(status=loan_service.LOAN_STATUS_RETURNED)
        assert [l.id for l in active] == [open_loan.id]
        assert [l.id for l in returned] == [closed.id]
