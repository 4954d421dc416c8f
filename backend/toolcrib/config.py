# backend/toolcrib/config.py
from __future__ import annotations
import os


def _origins_from_env(raw: str | None) -> set[str]:
    if not raw:
        return {"*"}
    return {o.strip() for o in raw.split(",") if o.strip()}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/toolcrib.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///toolcrib.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Listen on every interface so phones on the shop network can reach it
    HOST = os.environ.get("HOST", "0.0.0.0")
    PORT = int(os.environ.get("PORT", "3000"))

    # "*" allows any origin; otherwise an explicit allow-list
    CORS_ALLOWED_ORIGINS = _origins_from_env(os.environ.get("CORS_ALLOWED_ORIGINS"))

    HISTORY_DEFAULT_LIMIT = int(os.environ.get("HISTORY_DEFAULT_LIMIT", "100"))
    HISTORY_MAX_LIMIT = int(os.environ.get("HISTORY_MAX_LIMIT", "500"))

    EVENT_STREAM_KEEPALIVE_SECONDS = float(os.environ.get("EVENT_STREAM_KEEPALIVE_SECONDS", "15"))
    EVENT_SUBSCRIBER_QUEUE_SIZE = int(os.environ.get("EVENT_SUBSCRIBER_QUEUE_SIZE", "100"))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
