"""
exam/registry.py — in-memory registry of live exam controllers.

Each session gets a UUID; idle sessions expire after the configured TTL and
are torn down (camera released, timer cancelled).  Calls arriving from other
threads (the RabbitMQ focus consumer) are handed to the owning event loop,
so controller state keeps a single owner.
"""
from __future__ import annotations

import asyncio
import logging
import threading
import time
import uuid
from typing import Callable

from edu_service.errors import SessionNotFound
from edu_service.exam.controller import ExamController

logger = logging.getLogger(__name__)


class SessionRegistry:

    def __init__(self, ttl_seconds: int = 4 * 3600) -> None:
        self.ttl_seconds = ttl_seconds
        self._lock = threading.Lock()
        self._controllers: dict[str, ExamController] = {}

    @staticmethod
    def new_id() -> str:
        return uuid.uuid4().hex

    def add(self, controller: ExamController) -> str:
        sid = controller.session.session_id
        with self._lock:
            self._controllers[sid] = controller
        return sid

    def get(self, sid: str) -> ExamController:
        """Controller by id; refreshes its idle timestamp."""
        with self._lock:
            controller = self._controllers.get(sid)
            if controller is None:
                raise SessionNotFound(sid)
            controller.last_active = time.time()
            return controller

    def remove(self, sid: str) -> ExamController | None:
        with self._lock:
            return self._controllers.pop(sid, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._controllers)

    def deliver_focus_loss(self, sid: str) -> bool:
        """
        Thread-safe entry point for focus-loss events.  Returns False when the
        session is unknown.
        """
        try:
            controller = self.get(sid)
        except SessionNotFound:
            logger.debug("Focus event for unknown session %s dropped", sid)
            return False
        return self._call_on_owner(controller, controller.record_focus_loss)

    def cleanup_expired(self, now: float | None = None) -> int:
        """Close and drop idle sessions. Returns the number removed."""
        now = now if now is not None else time.time()
        with self._lock:
            expired = [sid for sid, c in self._controllers.items()
                       if now - c.last_active > self.ttl_seconds]
            removed = [self._controllers.pop(sid) for sid in expired]
        for controller in removed:
            self._call_on_owner(controller, controller.close)
        return len(removed)

    def close_all(self) -> None:
        with self._lock:
            controllers = list(self._controllers.values())
            self._controllers.clear()
        for controller in controllers:
            self._call_on_owner(controller, controller.close)

    @staticmethod
    def _call_on_owner(controller: ExamController, fn: Callable[[], object]) -> bool:
        loop = controller.loop
        if loop is None or loop.is_closed():
            fn()
            return True
        if _running_on(loop):
            fn()
        else:
            loop.call_soon_threadsafe(fn)
        return True


def _running_on(loop: asyncio.AbstractEventLoop) -> bool:
    try:
        return asyncio.get_running_loop() is loop
    except RuntimeError:
        return False
