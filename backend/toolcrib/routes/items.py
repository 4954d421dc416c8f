# Overview: Flask API routes for item operations; parses input and returns JSON responses.

# backend/toolcrib/routes/items.py
"""
Item ledger routes.

Status codes:
- 400: validation failure, edit that would make stock negative, or delete
  while units are out on loan
- 404: unknown item id
- 409: transaction aborted by a concurrent update
"""
from flask import Blueprint, request, current_app

from ..models import Item
from ..services import inventory_service
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_item_create,
    enforce_rules_item_edit,
    ValidationError,
    NotFoundError,
    ConflictError,
    InvalidStateError,
    TransactionAbortedError,
)

ITEM_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={"name", "brand", "sku", "type", "stock"},
    required_on_create={"name", "brand", "type", "stock"},
)

ITEM_EDIT_POLICY = ModelValidationPolicy(
    writable_fields={"name", "brand", "sku", "type", "total"},
)

items_bp = Blueprint("items", __name__, url_prefix="/api/items")


@items_bp.get("")
def list_items_route():
    """List every item with its stock and total."""
    return [item.to_dict() for item in inventory_service.list_items()], 200


@items_bp.get("/<int:item_id>")
def get_item_route(item_id: int):
    try:
        item = inventory_service.get_item(item_id)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    return item.to_dict(), 200


@items_bp.post("")
def create_item_route():
    """
    Create an item. A blank or missing sku is generated from the name.

    Request body:
    {"name": "Drill", "brand": "Bosch", "sku": "", "type": "Power tool", "stock": 5}
    """
    payload = request.get_json(silent=True) or {}

    # Blank sku means "generate one"; drop it before column validation rejects it
    if isinstance(payload, dict) and not str(payload.get("sku") or "").strip():
        payload.pop("sku", None)

    try:
        patch = validate_payload(model=Item, payload=payload, policy=ITEM_CREATE_POLICY, partial=False)
        enforce_rules_item_create(patch)
    except ValidationError as e:
        return {"error": str(e)}, 400

    try:
        item = inventory_service.create_item(patch=patch)
    except TransactionAbortedError as e:
        return {"error": str(e)}, 409
    except Exception:
        current_app.logger.exception("Failed to create item")
        return {"error": "Internal server error"}, 500

    return item.to_dict(), 201


@items_bp.put("/<int:item_id>")
def edit_item_route(item_id: int):
    """
    Edit an item. Changing total shifts stock by the same amount.

    Request body:
    {"name": "Drill", "brand": "Bosch", "sku": "DR1234", "type": "Power tool", "total": 7}
    """
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Item, payload=payload, policy=ITEM_EDIT_POLICY, partial=True)
        enforce_rules_item_edit(patch)
    except ValidationError as e:
        return {"error": str(e)}, 400

    try:
        item = inventory_service.edit_item(item_id=item_id, patch=patch)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except InvalidStateError as e:
        return {"error": str(e)}, 400
    except TransactionAbortedError as e:
        return {"error": str(e)}, 409
    except Exception:
        current_app.logger.exception("Failed to edit item")
        return {"error": "Internal server error"}, 500

    return item.to_dict(), 200


@items_bp.delete("/<int:item_id>")
def delete_item_route(item_id: int):
    """Delete an item. Refused while any unit is out on loan."""
    try:
        inventory_service.delete_item(item_id=item_id)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except ConflictError as e:
        return {"error": str(e)}, 400
    except TransactionAbortedError as e:
        return {"error": str(e)}, 409
    except Exception:
        current_app.logger.exception("Failed to delete item")
        return {"error": "Internal server error"}, 500

    return {"ok": True}, 200
