"""
EventConsumer — background thread that drains one RabbitMQ queue of JSON
events and hands each decoded object to ``handle()``.

The thread owns its BlockingConnection outright (pika connections are not
thread-safe).  Consumption polls with an inactivity timeout, so ``stop()``
only has to set an event: the thread notices within one poll interval,
cancels its consumer and closes the connection itself.
"""
from __future__ import annotations

import abc
import json
import logging
import threading
from typing import Any

import pika
import pika.exceptions

from edu_service.config import get_settings

logger = logging.getLogger(__name__)

_RETRY_DELAY   = 5.0    # seconds before reconnecting after a broker failure
_POLL_INTERVAL = 1.0    # stop flag is checked at least this often


class EventConsumer(threading.Thread, abc.ABC):
    """
    Subclasses set ``queue`` (and optionally ``binding``) and implement
    ``handle(event)``.  A handler exception dead-letters the message
    (nack, no requeue); undecodable payloads are dropped the same way.
    """

    def __init__(self, queue: str, binding: str | None = None, prefetch: int = 10) -> None:
        super().__init__(name=f"{type(self).__name__}[{queue}]", daemon=True)
        self.queue    = queue
        self.binding  = binding or queue
        self.prefetch = prefetch
        self.handled  = 0
        self._halt    = threading.Event()

    @abc.abstractmethod
    def handle(self, event: dict[str, Any]) -> None:
        """Process one decoded event."""

    # ── Thread entry point ──────────────────────────────────────────────────

    def run(self) -> None:
        logger.info("%s started", self.name)
        while not self._halt.is_set():
            connection = None
            try:
                connection = self._open()
                self._drain(connection.channel())
            except pika.exceptions.AMQPError as exc:
                logger.warning("%s broker error: %s; retrying in %.0fs",
                               self.name, exc, _RETRY_DELAY)
                self._halt.wait(_RETRY_DELAY)
            except Exception as exc:
                logger.error("%s crashed: %s; retrying in %.0fs",
                             self.name, exc, _RETRY_DELAY, exc_info=True)
                self._halt.wait(_RETRY_DELAY)
            finally:
                _close_quietly(connection)
        logger.info("%s stopped after %d events", self.name, self.handled)

    def stop(self, timeout: float | None = None) -> None:
        self._halt.set()
        if timeout is not None and self.is_alive():
            self.join(timeout)

    # ── Broker plumbing ─────────────────────────────────────────────────────

    def _open(self) -> pika.BlockingConnection:
        settings = get_settings()
        params = pika.URLParameters(settings.rabbitmq_url)
        params.heartbeat = 60
        params.blocked_connection_timeout = 30
        connection = pika.BlockingConnection(params)

        channel = connection.channel()
        channel.exchange_declare(exchange=settings.exchange_name,
                                 exchange_type="topic", durable=True)
        channel.queue_declare(queue=self.queue, durable=True)
        channel.queue_bind(queue=self.queue, exchange=settings.exchange_name,
                           routing_key=self.binding)
        channel.basic_qos(prefetch_count=self.prefetch)
        logger.info("%s bound to %s/%s", self.name, settings.exchange_name, self.binding)
        return connection

    def _drain(self, channel) -> None:
        for method, _props, body in channel.consume(self.queue, inactivity_timeout=_POLL_INTERVAL):
            if self._halt.is_set():
                break
            if method is None:          # poll timeout
                continue
            if self._dispatch(body):
                channel.basic_ack(delivery_tag=method.delivery_tag)
            else:
                channel.basic_nack(delivery_tag=method.delivery_tag, requeue=False)
        channel.cancel()

    def _dispatch(self, body: bytes) -> bool:
        """Decode and handle one payload.  False means dead-letter it."""
        try:
            event = json.loads(body)
        except (TypeError, ValueError) as exc:
            logger.warning("%s dropped undecodable message: %s", self.name, exc)
            return False
        if not isinstance(event, dict):
            logger.warning("%s dropped non-object message: %r", self.name, event)
            return False
        try:
            self.handle(event)
        except Exception as exc:
            logger.error("%s handler failed for %r: %s", self.name, event, exc, exc_info=True)
            return False
        self.handled += 1
        return True


def _close_quietly(connection: pika.BlockingConnection | None) -> None:
    if connection is None or connection.is_closed:
        return
    try:
        connection.close()
    except pika.exceptions.AMQPError as exc:
        logger.debug("Connection close failed: %s", exc)
