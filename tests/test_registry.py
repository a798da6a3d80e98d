"""
Tests for the session registry and the focus-event consumer.
Run with: pytest tests/test_registry.py -v
"""
import asyncio
import json
from unittest.mock import MagicMock

import pytest

from conftest import FakeClassifier, RecordingActivity, make_session


def _controller(settings, session_id="a" * 32):
    from edu_service.exam.controller import ExamController
    session = make_session()
    session.session_id = session_id
    return ExamController(
        session,
        settings           = settings,
        classifier_factory = lambda: FakeClassifier("Normal"),
        log_activity       = RecordingActivity(),
    )


class TestSessionRegistry:
    def test_add_get_remove(self, fast_settings):
        from edu_service.errors import SessionNotFound
        from edu_service.exam.registry import SessionRegistry
        registry = SessionRegistry()
        c = _controller(fast_settings)
        sid = registry.add(c)
        assert registry.get(sid) is c
        assert len(registry) == 1
        assert registry.remove(sid) is c
        with pytest.raises(SessionNotFound):
            registry.get(sid)

    def test_new_ids_are_unique(self):
        from edu_service.exam.registry import SessionRegistry
        ids = {SessionRegistry.new_id() for _ in range(100)}
        assert len(ids) == 100

    def test_deliver_focus_loss_unknown_session(self):
        from edu_service.exam.registry import SessionRegistry
        assert SessionRegistry().deliver_focus_loss("missing") is False

    def test_deliver_focus_loss_without_loop(self, fast_settings):
        from edu_service.exam.registry import SessionRegistry
        registry = SessionRegistry()
        c = _controller(fast_settings)
        registry.add(c)
        assert registry.deliver_focus_loss(c.session.session_id) is True
        assert c.focus_accumulator.violation_count == 1

    def test_deliver_from_other_thread_runs_on_owner_loop(self, fast_settings):
        from edu_service.exam.registry import SessionRegistry
        registry = SessionRegistry()

        async def scenario():
            c = _controller(fast_settings)
            registry.add(c)
            c.start()
            for _ in range(4):
                await asyncio.to_thread(registry.deliver_focus_loss, c.session.session_id)
            await asyncio.sleep(0.01)
            status = c.focus_accumulator.status.value
            count  = c.focus_accumulator.violation_count
            c.close()
            return status, count

        assert asyncio.run(scenario()) == ("danger", 4)

    def test_cleanup_expired(self, fast_settings):
        from edu_service.exam.registry import SessionRegistry
        registry = SessionRegistry(ttl_seconds=60)
        stale = _controller(fast_settings, session_id="s" * 32)
        fresh = _controller(fast_settings, session_id="f" * 32)
        registry.add(stale)
        registry.add(fresh)
        stale.last_active = 1000.0
        fresh.last_active = 1100.0

        assert registry.cleanup_expired(now=1090.0) == 1
        assert len(registry) == 1
        assert registry.get("f" * 32) is fresh
        assert stale.monitor.stopped

    def test_close_all(self, fast_settings):
        from edu_service.exam.registry import SessionRegistry
        registry = SessionRegistry()
        controllers = [_controller(fast_settings, session_id=str(i) * 32) for i in range(3)]
        for c in controllers:
            registry.add(c)
        registry.close_all()
        assert len(registry) == 0
        assert all(c.monitor.stopped for c in controllers)


class TestFocusConsumer:
    def test_routes_focus_events(self):
        from edu_service.consumers.focus_consumer import FocusConsumer
        registry = MagicMock()
        consumer = FocusConsumer(registry)
        for kind in ("FOCUS_LOSS", "tab_switch", "FULLSCREEN_EXIT"):
            consumer.handle({"sessionId": "abc", "type": kind})
        assert registry.deliver_focus_loss.call_count == 3
        registry.deliver_focus_loss.assert_called_with("abc")

    def test_ignores_other_events_and_missing_session(self):
        from edu_service.consumers.focus_consumer import FocusConsumer
        registry = MagicMock()
        consumer = FocusConsumer(registry)
        consumer.handle({"sessionId": "abc", "type": "HEARTBEAT"})
        consumer.handle({"type": "FOCUS_LOSS"})
        registry.deliver_focus_loss.assert_not_called()

    def test_dispatch_decodes_json(self):
        from edu_service.consumers.focus_consumer import FocusConsumer
        registry = MagicMock()
        consumer = FocusConsumer(registry)
        assert consumer._dispatch(json.dumps({"sessionId": "abc"}).encode()) is True
        assert consumer.handled == 1
        registry.deliver_focus_loss.assert_called_once_with("abc")

    @pytest.mark.parametrize("body", [b"not json", b"[1, 2]", b"null"])
    def test_bad_payload_is_dead_lettered(self, body):
        from edu_service.consumers.focus_consumer import FocusConsumer
        consumer = FocusConsumer(MagicMock())
        assert consumer._dispatch(body) is False
        assert consumer.handled == 0

    def test_handler_failure_is_dead_lettered(self):
        from edu_service.consumers.focus_consumer import FocusConsumer
        registry = MagicMock()
        registry.deliver_focus_loss.side_effect = RuntimeError("boom")
        consumer = FocusConsumer(registry)
        assert consumer._dispatch(b'{"sessionId": "abc"}') is False

    def test_queue_and_binding(self):
        from edu_service.consumers.focus_consumer import FocusConsumer
        consumer = FocusConsumer(MagicMock())
        assert consumer.queue == "focus.events"
        assert consumer.binding == "focus.events"
        assert consumer.daemon

    def test_stop_before_start(self):
        from edu_service.consumers.focus_consumer import FocusConsumer
        consumer = FocusConsumer(MagicMock(), queue="focus.test")
        consumer.stop(timeout=0.1)
        assert consumer._halt.is_set()
