# Overview: Unit-of-work helpers shared by the ledger and loan services.

from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..validation import TransactionAbortedError

logger = logging.getLogger(__name__)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    On SQLite the version_id counter on the row catches the lost update instead.
    """
    return query.with_for_update()


def run_in_transaction(func):
    """
    Execute func as one unit of work and commit once.

    Any exception rolls the whole session back before it propagates, so a
    failed mutation leaves no partial rows and no queued announcements.
    Store-level failures (locks, deadlocks, stale versions, constraint
    backstops) surface as TransactionAbortedError. Nothing is retried here;
    the caller decides whether to resubmit.
    """
    try:
        result = func()
        db.session.commit()
        return result
    except (OperationalError, StaleDataError, IntegrityError) as exc:
        db.session.rollback()
        logger.warning("transaction aborted: %s", exc.__class__.__name__)
        raise TransactionAbortedError(
            "The change conflicted with another update and was not saved. Please retry."
        ) from exc
    except Exception:
        db.session.rollback()
        raise
