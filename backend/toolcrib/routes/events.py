# Overview: Server-Sent Events push channel for ledger change announcements.

"""
Event stream.

Each connected observer gets its own subscription on the change notifier.
Frames:
- "hello" once on connect, listing the topics
- one frame per announcement: event: <topic>, data: {"topic": "<topic>"}
- a comment keep-alive when idle so proxies keep the connection open

Observers re-fetch /api/items, /api/loans or /api/history on each frame.
Missed events are not replayed.
"""

import json

from flask import Blueprint, Response, current_app

from ..services.notifier import get_notifier, TOPICS

events_bp = Blueprint("events", __name__, url_prefix="/api/events")

# SSE headers prevent proxy/browser buffering of streamed events.
SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "X-Accel-Buffering": "no",
    "Connection": "keep-alive",
}

KEEPALIVE_FRAME = ": keep-alive\n\n"


def sse_frame(event: str, data: dict) -> str:
    return f"event: {event}\ndata: {json.dumps(data, ensure_ascii=False)}\n\n"


@events_bp.get("")
def stream_events_route():
    keepalive = current_app.config["EVENT_STREAM_KEEPALIVE_SECONDS"]
    notifier = get_notifier()

    def generate():
        # Subscribe lazily: a body that is never read (HEAD, early disconnect)
        # must not leave a mailbox behind
        with notifier.subscribe() as subscription:
            yield sse_frame("hello", {"topics": list(TOPICS)})
            while True:
                topic = subscription.get(timeout=keepalive)
                if topic is None:
                    yield KEEPALIVE_FRAME
                    continue
                yield sse_frame(topic, {"topic": topic})

    return Response(generate(), mimetype="text/event-stream", headers=SSE_HEADERS)
