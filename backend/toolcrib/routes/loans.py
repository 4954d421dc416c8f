# Overview: Flask API routes for loan tickets; parses input and returns JSON responses.

# backend/toolcrib/routes/loans.py
"""
Loan (ticket) routes.

DESIGN:
- POST checks out every cart line as one ticket, all or nothing
- PUT /<id>/return restores the ticket's units; a ticket returns only once
- Loans are never edited or deleted through the API
"""

from flask import Blueprint, request, current_app

from ..models import Loan
from ..services import loan_service
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    validate_cart_lines,
    ValidationError,
    NotFoundError,
    ConflictError,
    InvalidStateError,
    TransactionAbortedError,
)

LOAN_POLICY = ModelValidationPolicy(
    writable_fields={"responsible", "location", "date", "signature"},
    required_on_create={"responsible"},
)

loans_bp = Blueprint("loans", __name__, url_prefix="/api/loans")


@loans_bp.get("")
def list_loans_route():
    """
    List loans, newest first.

    Query params:
    - status: ACTIVE | RETURNED (optional)
    """
    status = request.args.get("status")
    if status is not None:
        status = status.strip().upper()
        if status not in loan_service.LOAN_STATUSES:
            return {"error": f"status must be one of {', '.join(loan_service.LOAN_STATUSES)}"}, 400

    return [loan.to_dict() for loan in loan_service.list_loans(status=status)], 200


@loans_bp.get("/<int:loan_id>")
def get_loan_route(loan_id: int):
    try:
        loan = loan_service.get_loan(loan_id)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    return loan.to_dict(), 200


@loans_bp.post("")
def create_loan_route():
    """
    Check out a cart of items.

    Request body:
    {
        "responsible": "Ana",
        "location": "Workshop 2",
        "date": "2026-10-18",                          (optional, default: now)
        "items": [{"itemId": 1, "qty": 3, "name": "Drill"}],
        "signature": "data:image/png;base64,..."       (optional)
    }

    Returns:
        201: Loan created (ACTIVE)
        400: Invalid input
        404: A cart line references an unknown item
        409: Not enough stock for a line, or the transaction was aborted
    """
    payload = request.get_json(silent=True) or {}
    if not isinstance(payload, dict):
        return {"error": "Invalid JSON payload"}, 400

    header = {k: v for k, v in payload.items() if k != "items"}

    try:
        if "items" not in payload:
            raise ValidationError("Missing required fields: items")
        lines = validate_cart_lines(payload["items"])
        patch = validate_payload(model=Loan, payload=header, policy=LOAN_POLICY, partial=False)
    except ValidationError as e:
        return {"error": str(e)}, 400

    try:
        loan = loan_service.create_loan(
            responsible=patch["responsible"],
            location=patch.get("location"),
            date=patch.get("date"),
            signature=patch.get("signature"),
            lines=lines,
        )
    except ValidationError as e:
        return {"error": str(e)}, 400
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except (InvalidStateError, TransactionAbortedError) as e:
        return {"error": str(e)}, 409
    except Exception:
        current_app.logger.exception("Failed to create loan")
        return {"error": "Internal server error"}, 500

    return loan.to_dict(), 201


@loans_bp.put("/<int:loan_id>/return")
def return_loan_route(loan_id: int):
    """
    Return every unit of a loan.

    Returns:
        200: Loan RETURNED
        404: Unknown loan
        409: Already returned, or the transaction was aborted
    """
    try:
        loan = loan_service.return_loan(loan_id)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except (ConflictError, InvalidStateError, TransactionAbortedError) as e:
        return {"error": str(e)}, 409
    except Exception:
        current_app.logger.exception("Failed to return loan")
        return {"error": "Internal server error"}, 500

    return loan.to_dict(), 200
