"""
Concurrent checkout tests against a file-backed SQLite database.

Verifies:
- Racing checkouts for the last units never drive stock below zero
- Every loser fails cleanly (insufficient stock or aborted transaction)
- Committed loans account for exactly the units that left the shelf
"""

import threading

import pytest

from toolcrib import create_app
from toolcrib.extensions import db
from toolcrib.models import HistoryEntry, Item, Loan
from toolcrib.services import loan_service
from toolcrib.validation import InvalidStateError, TransactionAbortedError

WORKERS = 10
UNITS = 5


@pytest.fixture
def file_app(tmp_path):
    app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": f"sqlite:///{tmp_path / 'concurrency.db'}",
    })

    with app.app_context():
        db.create_all()
        item = Item(name="Drill", brand="Bosch", sku="DR1000", type="Power tool", stock=UNITS, total=UNITS)
        db.session.add(item)
        db.session.commit()
        app.config["DRILL_ID"] = item.id

    yield app

    with app.app_context():
        db.session.remove()
        db.drop_all()
        db.engine.dispose()


def test_concurrent_checkouts_never_oversell(file_app):
    item_id = file_app.config["DRILL_ID"]
    barrier = threading.Barrier(WORKERS)
    outcomes = []
    outcomes_lock = threading.Lock()

    def worker(n):
        with file_app.app_context():
            barrier.wait()
            try:
                loan_service.create_loan(
                    responsible=f"Worker {n}",
                    lines=[{"item_id": item_id, "quantity": 1}],
                )
                result = "ok"
            except (InvalidStateError, TransactionAbortedError) as exc:
                result = exc.__class__.__name__
            except Exception as exc:  # anything else is a test failure
                result = repr(exc)
            finally:
                db.session.remove()
        with outcomes_lock:
            outcomes.append(result)

    threads = [threading.Thread(target=worker, args=(n,)) for n in range(WORKERS)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)

    assert len(outcomes) == WORKERS
    unexpected = [o for o in outcomes if o not in ("ok", "InvalidStateError", "TransactionAbortedError")]
    assert unexpected == []

    successes = outcomes.count("ok")
    assert 1 <= successes <= UNITS

    with file_app.app_context():
        item = db.session.get(Item, item_id)
        assert item.stock == UNITS - successes
        assert item.stock >= 0
        assert db.session.query(Loan).count() == successes
        assert db.session.query(HistoryEntry).count() == successes


def test_concurrent_checkout_and_return_balance(file_app):
    item_id = file_app.config["DRILL_ID"]

    with file_app.app_context():
        loans = [
            loan_service.create_loan(responsible="Seed", lines=[{"item_id": item_id, "quantity": 1}]).id
            for _ in range(2)
        ]

    barrier = threading.Barrier(4)
    errors = []

    def run(fn):
        with file_app.app_context():
            barrier.wait()
            try:
                fn()
            except (InvalidStateError, TransactionAbortedError) as exc:
                errors.append(exc)
            finally:
                db.session.remove()

    jobs = [
        lambda: loan_service.return_loan(loans[0]),
        lambda: loan_service.return_loan(loans[1]),
        lambda: loan_service.create_loan(responsible="A", lines=[{"item_id": item_id, "quantity": 1}]),
        lambda: loan_service.create_loan(responsible="B", lines=[{"item_id": item_id, "quantity": 1}]),
    ]
    threads = [threading.Thread(target=run, args=(job,)) for job in jobs]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)

    with file_app.app_context():
        item = db.session.get(Item, item_id)
        out_on_loan = sum(
            loan.unit_count
            for loan in loan_service.list_loans(status=loan_service.LOAN_STATUS_ACTIVE)
        )
        assert 0 <= item.stock <= item.total
        assert item.stock + out_on_loan == item.total
