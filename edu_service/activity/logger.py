"""
Activity log sink — fire-and-forget append of
(user id, action tag, detail payload, timestamp).

Errors are caught and logged so a DB outage never reaches the user.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from edu_service.db.database import get_db
from edu_service.db.models import ActivityLog

logger = logging.getLogger(__name__)

EXAM_STARTED    = "EXAM_STARTED"
EXAM_SUBMITTED  = "EXAM_SUBMITTED"
PATH_GENERATED  = "PATH_GENERATED"
NOTES_GENERATED = "NOTES_GENERATED"


def log_activity(user_id: str | None, action: str, details: dict[str, Any] | None = None) -> None:
    """Anonymous users (no id) are not logged."""
    if not user_id:
        return
    try:
        with get_db() as db:
            db.add(ActivityLog(
                user_id   = user_id,
                action    = action,
                details   = details,
                timestamp = datetime.now(timezone.utc),
            ))
    except Exception as exc:
        logger.warning("Failed to log activity (user=%s action=%s): %s",
                       user_id, action, exc)
