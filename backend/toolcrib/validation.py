from __future__ import annotations
from datetime import datetime
from toolcrib.time_utils import parse_iso_datetime

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Integer, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta


# Upper bound for any unit count; keeps typos like 1e9 out of the ledger
MAX_UNITS = 1_000_000


class ValidationError(ValueError):
    """400-level input problem."""


class NotFoundError(ValueError):
    """404-level unknown item or loan id."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., loan already returned)."""


class InvalidStateError(ValueError):
    """Mutation would leave an item outside 0 <= stock <= total."""


class TransactionAbortedError(ValueError):
    """Store-level commit failure; nothing from the unit of work persisted."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    # Keyed by mapped attribute name, which may differ from the DB column name
    return dict(model.__mapper__.columns.items())


def _coerce_int(key: str, value: Any) -> int:
    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    # String input - must be plain digits (with optional leading minus)
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{key} must be an integer")
        # Reject scientific notation (e.g., "1e15", "1E10")
        if 'e' in stripped.lower():
            raise ValidationError(f"{key} must be a plain integer (scientific notation not allowed)")
        # Reject decimal points (e.g., "12.5")
        if '.' in stripped:
            raise ValidationError(f"{key} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{key} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{key} must be an integer, not a decimal")
    raise ValidationError(f"{key} must be an integer")


def _coerce_value(key: str, col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return _coerce_int(key, value)

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        return bool(value)

    # Datetimes (accept ISO-8601 dates or datetimes; normalize to UTC)
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{key} must be an ISO-8601 date or datetime")
            if dt is None:
                raise ValidationError(f"{key} must be an ISO-8601 date or datetime")
            return dt
        raise ValidationError(f"{key} must be a datetime")

    # Text holds opaque blobs (signatures); never strip those
    if isinstance(coltype, Text):
        if not isinstance(value, str):
            raise ValidationError(f"{key} must be a string")
        return value

    if isinstance(coltype, String):
        return str(value).strip()

    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if f not in payload)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

    # Reject unknown / non-writable fields
    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(k, col, raw)

        # Blank string check for non-nullable text fields
        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val.strip() == "":
                raise ValidationError(f"{k} cannot be blank")

        # Max length check for String(n)
        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


def _check_unit_count(key: str, value: int, *, minimum: int) -> None:
    if value < minimum:
        raise ValidationError(f"{key} must be >= {minimum}")
    if value > MAX_UNITS:
        raise ValidationError(f"{key} cannot exceed {MAX_UNITS}")


# Nullable in the schema (legacy rows), but required text on every API write
ITEM_LABEL_FIELDS = ("brand", "type")


def _check_label(key: str, value: Any) -> None:
    if value is None:
        raise ValidationError(f"{key} cannot be null")
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{key} cannot be blank")


def enforce_rules_item_create(patch: dict) -> None:
    """Initial stock seeds both counters, so it only needs to be a sane count."""
    for key in ITEM_LABEL_FIELDS:
        _check_label(key, patch.get(key))
    if patch.get("stock") is None:
        raise ValidationError("stock is required")
    _check_unit_count("stock", patch["stock"], minimum=0)


def enforce_rules_item_edit(patch: dict) -> None:
    for key in ITEM_LABEL_FIELDS:
        if key in patch:
            _check_label(key, patch[key])
    # Resulting-stock check belongs to the ledger; here only the shape of total
    if "total" in patch:
        if patch["total"] is None:
            raise ValidationError("total cannot be null")
        _check_unit_count("total", patch["total"], minimum=0)


def validate_cart_lines(raw_lines: Any) -> list[dict]:
    """
    Normalize the `items` array of a loan request.

    Each line is {itemId, qty, name}; lines are kept in request order and never
    merged, even when two lines name the same item. The client's name is only
    display text: the snapshot stored on the ticket is read from the item.
    """
    if not isinstance(raw_lines, list) or not raw_lines:
        raise ValidationError("items must be a non-empty list")

    lines: list[dict] = []
    for position, raw in enumerate(raw_lines, start=1):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{position}] must be an object")
        if raw.get("itemId") is None:
            raise ValidationError(f"items[{position}].itemId is required")
        if raw.get("qty") is None:
            raise ValidationError(f"items[{position}].qty is required")

        item_id = _coerce_int(f"items[{position}].itemId", raw["itemId"])
        qty = _coerce_int(f"items[{position}].qty", raw["qty"])
        _check_unit_count(f"items[{position}].qty", qty, minimum=1)

        name = raw.get("name")
        if name is not None and not isinstance(name, str):
            raise ValidationError(f"items[{position}].name must be a string")

        lines.append({"item_id": item_id, "quantity": qty})
    return lines
