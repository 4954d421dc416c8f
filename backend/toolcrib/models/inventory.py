from __future__ import annotations

from ..extensions import db
from toolcrib.time_utils import to_utc_z


class Item(db.Model):
    """
    A kind of tool the crib lends out.

    COUNTERS:
    - total: units owned in any state (on the shelf or out on a loan)
    - stock: units on the shelf right now
    - total - stock is what is currently out on ACTIVE loans

    0 <= stock <= total holds after every committed write. The service layer
    checks it before flushing; the CHECK constraints are the backstop.

    SKU is a human label, not a key: two items may share one.
    """
    __tablename__ = "items"
    __table_args__ = (
        db.CheckConstraint("stock >= 0", name="ck_items_stock_non_negative"),
        db.CheckConstraint("stock <= total", name="ck_items_stock_within_total"),
        db.Index("ix_items_name", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False)
    brand = db.Column(db.String(128), nullable=True)
    sku = db.Column(db.String(64), nullable=False, index=True)
    type = db.Column(db.String(64), nullable=True)

    stock = db.Column(db.Integer, nullable=False, default=0)
    total = db.Column(db.Integer, nullable=False, default=0)

    # Optimistic concurrency: a writer holding a stale row fails at flush
    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def on_loan(self) -> int:
        return (self.total or 0) - (self.stock or 0)

    def __repr__(self) -> str:
        return f"<Item id={self.id} sku={self.sku!r} name={self.name!r} stock={self.stock}/{self.total}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "brand": self.brand,
            "sku": self.sku,
            "type": self.type,
            "stock": self.stock,
            "total": self.total,
            "on_loan": self.on_loan,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
