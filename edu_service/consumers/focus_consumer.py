"""
FocusConsumer — window focus-loss events published by the exam page
(blur, tab switch, fullscreen exit).

    {"sessionId": "<hex id>", "type": "FOCUS_LOSS", "timestamp": 1712345678901}

Each event is one coarse violation on the session's focus accumulator.
"""
from __future__ import annotations

import logging
from typing import Any

from edu_service.config import get_settings
from edu_service.consumers.base_consumer import EventConsumer
from edu_service.exam.registry import SessionRegistry

logger = logging.getLogger(__name__)

FOCUS_EVENT_TYPES = frozenset({"FOCUS_LOSS", "TAB_SWITCH", "FULLSCREEN_EXIT"})


class FocusConsumer(EventConsumer):

    def __init__(self, registry: SessionRegistry, queue: str | None = None) -> None:
        super().__init__(queue or get_settings().focus_queue)
        self._registry = registry

    def handle(self, event: dict[str, Any]) -> None:
        session_id = event.get("sessionId")
        kind = str(event.get("type", "FOCUS_LOSS")).upper()

        if not session_id:
            logger.warning("Focus event without sessionId dropped: %s", event)
            return
        if kind not in FOCUS_EVENT_TYPES:
            logger.debug("Ignoring %s event for session %s", kind, session_id)
            return

        if not self._registry.deliver_focus_loss(session_id):
            logger.debug("%s for unknown session %s dropped", kind, session_id)
