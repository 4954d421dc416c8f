from __future__ import annotations

from ..extensions import db
from toolcrib.time_utils import to_utc_z


class HistoryEntry(db.Model):
    """Append-only audit row. Written in the same transaction as the change it records."""
    __tablename__ = "history_entries"
    __table_args__ = (
        db.Index("ix_history_occurred_id", "occurred_at", "id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    action = db.Column(db.String(16), nullable=False, index=True)  # ALTA, BAJA, EDICION, SALIDA, DEVOLUCION
    description = db.Column(db.String(1024), nullable=False)

    # What it refers to (generic pointer, no FK so deleted items keep their trail)
    entity_type = db.Column(db.String(32), nullable=True)  # item, loan
    entity_id = db.Column(db.Integer, nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "action": self.action,
            "description": self.description,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "timestamp": to_utc_z(self.occurred_at),
        }
