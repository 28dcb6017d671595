"""Domain events for form and response changes.

Write flows call publish() after a change is committed. Each event is
logged and kept in a bounded in-process buffer, newest last, so callers
(and tests) can inspect recent activity without an external broker.
"""

from __future__ import annotations

import logging
from collections import deque
from datetime import datetime, timezone
from typing import Any, Deque, Dict, List

logger = logging.getLogger(__name__)

FORM_SAVED = "form.saved"
FORM_DELETED = "form.deleted"
RESPONSE_SAVED = "response.saved"
RESPONSE_DELETED = "response.deleted"

EVENT_TYPES = frozenset({FORM_SAVED, FORM_DELETED, RESPONSE_SAVED, RESPONSE_DELETED})

# Oldest events fall off once the buffer is full
EVENT_BUFFER_LIMIT = 1000
EVENT_BUFFER: Deque[Dict[str, Any]] = deque(maxlen=EVENT_BUFFER_LIMIT)


def publish(event_type: str, payload: Dict[str, Any]) -> None:
    if event_type not in EVENT_TYPES:
        raise ValueError(f"unknown event type {event_type!r}")
    event = {
        "type": event_type,
        "payload": dict(payload),
        "occurred_at": datetime.now(timezone.utc).isoformat(),
    }
    EVENT_BUFFER.append(event)
    subject = payload.get("response_id") or payload.get("form_id")
    logger.info("event_published type=%s subject=%s buffered=%s", event_type, subject, len(EVENT_BUFFER))


def get_buffered_events(clear: bool = True) -> List[Dict[str, Any]]:
    """Return buffered events oldest first; optionally clear the buffer."""
    events = list(EVENT_BUFFER)
    if clear:
        EVENT_BUFFER.clear()
    return events


__all__ = [
    "FORM_SAVED",
    "FORM_DELETED",
    "RESPONSE_SAVED",
    "RESPONSE_DELETED",
    "EVENT_TYPES",
    "EVENT_BUFFER_LIMIT",
    "publish",
    "get_buffered_events",
    "EVENT_BUFFER",
]
