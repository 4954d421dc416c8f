# Overview: Flask API route for the audit history; read-only.

from flask import Blueprint, request, current_app

from ..services.history_service import list_recent

history_bp = Blueprint("history", __name__, url_prefix="/api/history")


@history_bp.get("")
def list_history_route():
    """Most recent entries first. ?limit=N (default 100)."""
    default_limit = current_app.config["HISTORY_DEFAULT_LIMIT"]
    max_limit = current_app.config["HISTORY_MAX_LIMIT"]

    limit = request.args.get("limit", default=default_limit, type=int)
    limit = max(1, min(limit, max_limit))

    return [entry.to_dict() for entry in list_recent(limit=limit)], 200
