# Overview: Service-layer operations for the audit history; append and bounded reads.

from __future__ import annotations

from datetime import datetime
from typing import Optional

from ..extensions import db
from ..models import HistoryEntry
from toolcrib.time_utils import utcnow
"""
History Invariants (authoritative)

- Append-only: entries are never updated or deleted here.
- No transaction of its own: append_history() only adds + flushes, the caller
  commits (or rolls back) together with the change being described.
- Reads are newest first: occurred_at DESC, id DESC as tie-break.
"""

HISTORY_ACTION_CREATED = "ALTA"
HISTORY_ACTION_DELETED = "BAJA"
HISTORY_ACTION_EDITED = "EDICION"
HISTORY_ACTION_CHECKOUT = "SALIDA"
HISTORY_ACTION_RETURN = "DEVOLUCION"

HISTORY_ACTIONS = {
    HISTORY_ACTION_CREATED,
    HISTORY_ACTION_DELETED,
    HISTORY_ACTION_EDITED,
    HISTORY_ACTION_CHECKOUT,
    HISTORY_ACTION_RETURN,
}

_DESCRIPTION_MAX = HistoryEntry.__table__.c.description.type.length


def append_history(
    *,
    action: str,
    description: str,
    entity_type: str | None = None,
    entity_id: int | None = None,
    occurred_at: Optional[datetime] = None,
) -> HistoryEntry:
    if action not in HISTORY_ACTIONS:
        raise ValueError(f"unknown history action: {action}")

    if len(description) > _DESCRIPTION_MAX:
        description = description[: _DESCRIPTION_MAX - 3] + "..."

    entry = HistoryEntry(
        action=action,
        description=description,
        entity_type=entity_type,
        entity_id=entity_id,
        occurred_at=occurred_at or utcnow(),
    )
    db.session.add(entry)
    db.session.flush()  # ensures entry.id is assigned without committing
    return entry


def list_recent(limit: int = 100) -> list[HistoryEntry]:
    return (
        db.session.query(HistoryEntry)
        .order_by(HistoryEntry.occurred_at.desc(), HistoryEntry.id.desc())
        .limit(limit)
        .all()
    )
