from __future__ import annotations

from ..extensions import db
from toolcrib.time_utils import to_utc_z


class Loan(db.Model):
    """
    One checkout ticket covering one or more items.

    LIFECYCLE: ACTIVE -> RETURNED (terminal). Loans are never edited or
    deleted; the only write after creation is the return.
    """
    __tablename__ = "loans"
    __table_args__ = (
        db.Index("ix_loans_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    responsible = db.Column(db.String(255), nullable=False)
    location = db.Column(db.String(255), nullable=True)
    # Business date of the checkout as entered on the form
    date = db.Column("loan_date", db.DateTime(timezone=True), nullable=False)

    # Opaque signature capture (usually a data: URL from a canvas)
    signature = db.Column(db.Text, nullable=True)

    status = db.Column(db.String(16), nullable=False, default="ACTIVE", index=True)
    return_date = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    lines = db.relationship(
        "LoanLine",
        back_populates="loan",
        order_by="LoanLine.line_number",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def unit_count(self) -> int:
        return sum(line.quantity for line in self.lines)

    def __repr__(self) -> str:
        return f"<Loan id={self.id} responsible={self.responsible!r} status={self.status}>"

    def to_dict(self, include_signature: bool = True) -> dict:
        data = {
            "id": self.id,
            "responsible": self.responsible,
            "location": self.location,
            "date": to_utc_z(self.date),
            "status": self.status,
            "return_date": to_utc_z(self.return_date),
            "items": [line.to_dict() for line in self.lines],
            "unit_count": self.unit_count,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_signature:
            data["signature"] = self.signature
        return data


class LoanLine(db.Model):
    """
    One cart line of a loan. item_name is a snapshot taken at checkout so the
    ticket still reads correctly after the item is renamed or deleted.
    """
    __tablename__ = "loan_lines"
    __table_args__ = (
        db.UniqueConstraint("loan_id", "line_number", name="uq_loan_lines_loan_line"),
        db.CheckConstraint("quantity > 0", name="ck_loan_lines_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    loan_id = db.Column(db.Integer, db.ForeignKey("loans.id"), nullable=False, index=True)
    line_number = db.Column(db.Integer, nullable=False)

    # Nulled when the item is deleted (only possible once nothing is out)
    item_id = db.Column(db.Integer, db.ForeignKey("items.id"), nullable=True, index=True)
    item_name = db.Column(db.String(255), nullable=True)
    quantity = db.Column(db.Integer, nullable=False)

    loan = db.relationship("Loan", back_populates="lines")

    def to_dict(self) -> dict:
        return {
            "line_number": self.line_number,
            "itemId": self.item_id,
            "qty": self.quantity,
            "name": self.item_name,
        }
