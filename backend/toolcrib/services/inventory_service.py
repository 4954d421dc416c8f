# Overview: Service-layer operations for the item ledger; encapsulates business logic and database work.

# backend/toolcrib/services/inventory_service.py

from __future__ import annotations

import logging
import random

from ..extensions import db
from ..models import Item, LoanLine
from ..validation import NotFoundError, ConflictError, InvalidStateError
from .concurrency import lock_for_update, run_in_transaction
from .history_service import (
    append_history,
    HISTORY_ACTION_CREATED,
    HISTORY_ACTION_DELETED,
    HISTORY_ACTION_EDITED,
)
from .notifier import announce_after_commit, TOPIC_INVENTORY, TOPIC_HISTORY
"""
Item Ledger Invariants (authoritative)

Counters:
- total is every unit owned; stock is the part currently on the shelf.
- 0 <= stock <= total after every mutation. A mutation that would break it
  raises before commit and the whole unit of work is rolled back.

Lifecycle:
- Created with stock == total == initial stock.
- Editing total shifts stock by the same delta (units out on loan stay out).
  Rejected only when the shifted stock would be negative; outstanding loan
  lines are not compared separately.
- Deletion is rejected while any unit is out (stock < total).

Audit & notification:
- Every mutation appends exactly one history entry in the same transaction.
- inventory-changed and history-changed are announced only after commit.

SKU:
- Optional on create. When blank it is generated as the first two letters of
  the name, upper-cased and padded with "X", plus a random 1000-9999 suffix.
- SKUs are labels, not keys: uniqueness is not enforced. Generation re-rolls
  a few times to dodge an SKU already in use, then keeps the last roll.
"""

logger = logging.getLogger(__name__)

ITEM_EDITABLE_FIELDS = {"name", "brand", "sku", "type"}

SKU_PREFIX_LENGTH = 2
SKU_PAD_CHAR = "X"
SKU_SUFFIX_MIN = 1000
SKU_SUFFIX_MAX = 9999
SKU_GENERATION_ATTEMPTS = 5

_sku_random = random.Random()


def generate_sku(name: str, rng: random.Random | None = None) -> str:
    rng = rng or _sku_random
    prefix = (name or "").strip()[:SKU_PREFIX_LENGTH].upper().ljust(SKU_PREFIX_LENGTH, SKU_PAD_CHAR)
    return f"{prefix}{rng.randint(SKU_SUFFIX_MIN, SKU_SUFFIX_MAX)}"


def _sku_in_use(sku: str) -> bool:
    return db.session.query(Item.id).filter(Item.sku == sku).first() is not None


def _assign_sku(name: str) -> str:
    sku = generate_sku(name)
    for _ in range(SKU_GENERATION_ATTEMPTS - 1):
        if not _sku_in_use(sku):
            break
        sku = generate_sku(name)
    return sku


def get_item(item_id: int, *, lock: bool = False) -> Item:
    query = db.session.query(Item).filter_by(id=item_id)
    if lock:
        query = lock_for_update(query)
    item = query.first()
    if item is None:
        raise NotFoundError(f"Item {item_id} not found")
    return item


def list_items() -> list[Item]:
    return db.session.query(Item).order_by(Item.id.asc()).all()


def adjust_stock(item: Item, delta: int) -> Item:
    """
    Shift the units on the shelf by delta inside the caller's transaction.

    Used by checkouts (negative delta) and returns (positive delta). Never
    commits; raises InvalidStateError if the result leaves 0..total.
    """
    new_stock = item.stock + delta
    if new_stock < 0:
        raise InvalidStateError(
            f"Insufficient stock for {item.name}: {item.stock} available, {-delta} requested"
        )
    if new_stock > item.total:
        raise InvalidStateError(
            f"Stock for {item.name} cannot exceed its total of {item.total}"
        )
    item.stock = new_stock
    return item


def create_item(*, patch: dict) -> Item:
    """
    Create an item from a validated patch (name, brand, sku?, type, stock).

    Initial stock seeds both counters.
    """
    def _op():
        initial = patch["stock"]
        sku = (patch.get("sku") or "").strip() or _assign_sku(patch["name"])

        item = Item(
            name=patch["name"],
            brand=patch.get("brand"),
            sku=sku,
            type=patch.get("type"),
            stock=initial,
            total=initial,
        )
        db.session.add(item)
        db.session.flush()  # ensure item.id exists before history append

        append_history(
            action=HISTORY_ACTION_CREATED,
            description=f"Added {item.name} (SKU {item.sku}) with {item.total} units",
            entity_type="item",
            entity_id=item.id,
        )
        announce_after_commit(TOPIC_INVENTORY, TOPIC_HISTORY)
        return item

    item = run_in_transaction(_op)
    logger.info("item created id=%s sku=%s total=%s", item.id, item.sku, item.total)
    return item


def edit_item(*, item_id: int, patch: dict) -> Item:
    """
    Apply a validated patch. A new total moves stock by the same delta:
    raising total puts units on the shelf, lowering it takes them off.
    An empty patch is a plain read: no history entry, no announcement.
    """
    if not patch:
        return get_item(item_id)

    def _op():
        item = get_item(item_id, lock=True)

        old_total = item.total
        old_stock = item.stock
        new_total = patch.get("total", old_total)
        new_stock = old_stock + (new_total - old_total)

        if new_stock < 0:
            raise InvalidStateError(
                f"Cannot set total of {item.name} to {new_total}: "
                f"{item.on_loan} units are out on loan"
            )

        for field in ITEM_EDITABLE_FIELDS:
            if field in patch:
                setattr(item, field, patch[field])
        item.total = new_total
        item.stock = new_stock
        db.session.flush()

        append_history(
            action=HISTORY_ACTION_EDITED,
            description=(
                f"Edited {item.name} (SKU {item.sku}): total {old_total} -> {new_total}, "
                f"stock {old_stock} -> {new_stock}"
            ),
            entity_type="item",
            entity_id=item.id,
        )
        announce_after_commit(TOPIC_INVENTORY, TOPIC_HISTORY)
        return item

    item = run_in_transaction(_op)
    logger.info("item edited id=%s stock=%s total=%s", item.id, item.stock, item.total)
    return item


def delete_item(*, item_id: int) -> None:
    def _op():
        item = get_item(item_id, lock=True)
        if item.stock < item.total:
            raise ConflictError(
                f"Cannot delete {item.name}: {item.on_loan} units are still out on loan"
            )

        # Past tickets keep their name snapshot but lose the dangling reference
        db.session.query(LoanLine).filter(LoanLine.item_id == item.id).update(
            {LoanLine.item_id: None}, synchronize_session=False
        )

        description = f"Deleted {item.name} (SKU {item.sku}), {item.total} units"
        db.session.delete(item)
        db.session.flush()

        append_history(
            action=HISTORY_ACTION_DELETED,
            description=description,
            entity_type="item",
            entity_id=item_id,
        )
        announce_after_commit(TOPIC_INVENTORY, TOPIC_HISTORY)

    run_in_transaction(_op)
    logger.info("item deleted id=%s", item_id)
