"""
Pytest fixtures for tool crib backend tests.

Provides test database setup, seeded items, a change-notifier observer, and
the Flask test client.
"""

import pytest
from toolcrib import create_app
from toolcrib.extensions import db
from toolcrib.models import Item, HistoryEntry, Loan
from toolcrib.services.notifier import get_notifier


TEST_CONFIG = {
    'TESTING': True,
    'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
    'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    'EVENT_STREAM_KEEPALIVE_SECONDS': 0.05,
    'CORS_ALLOWED_ORIGINS': {'*'},
}


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TEST_CONFIG)

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app, db_session):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def observer(app, db_session):
    """A subscriber on the app's change notifier; drain() returns announced topics."""
    subscription = get_notifier().subscribe()
    yield subscription
    subscription.close()


@pytest.fixture(scope='function')
def drill(db_session):
    """Drill with 5 units, all on the shelf. Inserted directly: no history, no announcement."""
    item = Item(name="Drill", brand="Bosch", sku="DR1000", type="Power tool", stock=5, total=5)
    db_session.add(item)
    db_session.commit()
    return item


@pytest.fixture(scope='function')
def hammer(db_session):
    """Hammer with 3 units, all on the shelf."""
    item = Item(name="Hammer", brand="Stanley", sku="HA2000", type="Hand tool", stock=3, total=3)
    db_session.add(item)
    db_session.commit()
    return item


def history_count() -> int:
    return db.session.query(HistoryEntry).count()


def loan_count() -> int:
    return db.session.query(Loan).count()


def reload_item(item_id: int) -> Item:
    """Fresh copy of an item from the database (bypasses the identity map)."""
    db.session.expire_all()
    return db.session.get(Item, item_id)
