"""
Pushes proctoring escalations and final exam results to the topic exchange
so proctor dashboards can follow sessions live.

    {
        "sessionId":      "<hex id>",
        "eventType":      "PROCTOR_STATUS" | "EXAM_SUBMITTED",
        "status":         "secure" | "warning" | "danger",
        "violationCount": 12,
        "label":          "Looking Away",        # nullable
        "timestamp":      1712345678901,         # epoch millis
        "metadata":       {...}                  # e.g. the ExamResult
    }

Publishing is best effort: called from executor threads, it never raises.
"""
from __future__ import annotations

import json
import logging
import threading
import time
from typing import Any

import pika
import pika.exceptions

from edu_service.config import Settings, get_settings

logger = logging.getLogger(__name__)

PROCTOR_STATUS = "PROCTOR_STATUS"
EXAM_SUBMITTED = "EXAM_SUBMITTED"


def build_message(
    session_id:      str,
    event_type:      str,
    status:          str,
    violation_count: int,
    label:           str | None = None,
    metadata:        dict[str, Any] | None = None,
) -> dict[str, Any]:
    return {
        "sessionId":      session_id,
        "eventType":      event_type,
        "status":         status,
        "violationCount": int(violation_count),
        "label":          label,
        "timestamp":      int(time.time() * 1000),
        "metadata":       metadata or {},
    }


class EventPublisher:
    """
    One BlockingConnection per calling thread.  A failed publish drops that
    thread's connection and tries once more on a fresh one.
    """

    def __init__(self, settings: Settings | None = None, attempts: int = 2) -> None:
        self._settings = settings
        self.attempts  = attempts
        self._local    = threading.local()

    @property
    def settings(self) -> Settings:
        return self._settings or get_settings()

    def publish(self, message: dict[str, Any]) -> bool:
        """Returns False when the message was dropped."""
        payload = json.dumps(message, default=str).encode()
        for attempt in range(1, self.attempts + 1):
            try:
                self._channel().basic_publish(
                    exchange    = self.settings.exchange_name,
                    routing_key = self.settings.results_routing_key,
                    body        = payload,
                    properties  = pika.BasicProperties(
                        content_type  = "application/json",
                        delivery_mode = pika.DeliveryMode.Persistent,
                    ),
                )
                return True
            except Exception as exc:
                logger.warning("Publish %s/%s attempt %d/%d failed: %s",
                               message.get("eventType"), message.get("sessionId"),
                               attempt, self.attempts, exc)
                self._reset()
        logger.error("Dropped %s event for session %s",
                     message.get("eventType"), message.get("sessionId"))
        return False

    def _channel(self):
        connection = getattr(self._local, "connection", None)
        if connection is None or connection.is_closed:
            params = pika.URLParameters(self.settings.rabbitmq_url)
            params.heartbeat = 60
            params.blocked_connection_timeout = 30
            connection = pika.BlockingConnection(params)
            channel = connection.channel()
            channel.exchange_declare(exchange=self.settings.exchange_name,
                                     exchange_type="topic", durable=True)
            self._local.connection = connection
            self._local.channel    = channel
            logger.info("Publisher connected (thread %s)", threading.get_ident())
        return self._local.channel

    def _reset(self) -> None:
        connection = getattr(self._local, "connection", None)
        self._local.connection = None
        if connection is not None and connection.is_open:
            try:
                connection.close()
            except pika.exceptions.AMQPError as exc:
                logger.debug("Publisher close failed: %s", exc)


_default = EventPublisher()


def publish_event(
    session_id:      str,
    event_type:      str,
    status:          str,
    violation_count: int,
    label:           str | None = None,
    metadata:        dict[str, Any] | None = None,
) -> None:
    """No-op when RabbitMQ is disabled."""
    if not get_settings().rabbitmq_enabled:
        return
    _default.publish(build_message(session_id, event_type, status, violation_count, label, metadata))
