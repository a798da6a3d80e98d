"""
Tests for the activity log sink and the result publisher.
Run with: pytest tests/test_activity.py -v
"""
from contextlib import contextmanager

import pytest


@pytest.fixture
def sqlite_db(monkeypatch):
    from sqlalchemy import create_engine
    from sqlalchemy.orm import sessionmaker
    from sqlalchemy.pool import StaticPool
    from edu_service.db import database
    from edu_service.db import models  # noqa: F401

    engine = create_engine("sqlite://", poolclass=StaticPool,
                           connect_args={"check_same_thread": False})
    monkeypatch.setattr(database, "_engine", engine)
    monkeypatch.setattr(database, "_session_factory", sessionmaker(bind=engine))
    database.Base.metadata.create_all(bind=engine)
    return database


class TestActivityLog:
    def test_appends_entry(self, sqlite_db):
        from edu_service.activity.logger import EXAM_SUBMITTED, log_activity
        from edu_service.db.models import ActivityLog

        log_activity("user-7", EXAM_SUBMITTED, {"score": 80, "type": "JEE"})

        with sqlite_db.get_db() as db:
            rows = db.query(ActivityLog).all()
            assert len(rows) == 1
            assert rows[0].user_id == "user-7"
            assert rows[0].action == "EXAM_SUBMITTED"
            assert rows[0].details == {"score": 80, "type": "JEE"}
            assert rows[0].timestamp is not None

    def test_anonymous_user_not_logged(self, sqlite_db):
        from edu_service.activity.logger import EXAM_STARTED, log_activity
        from edu_service.db.models import ActivityLog

        log_activity(None, EXAM_STARTED, {})
        log_activity("", EXAM_STARTED, {})

        with sqlite_db.get_db() as db:
            assert db.query(ActivityLog).count() == 0

    def test_database_errors_are_swallowed(self, monkeypatch, caplog):
        from edu_service.activity import logger as activity

        @contextmanager
        def broken_db():
            raise ConnectionError("database is down")
            yield

        monkeypatch.setattr(activity, "get_db", broken_db)
        activity.log_activity("user-1", activity.PATH_GENERATED, {"career": "Pilot"})
        assert "Failed to log activity" in caplog.text

    def test_check_db_connection(self, sqlite_db):
        assert sqlite_db.check_db_connection() is True


class TestResultPublisher:
    def test_build_message_contract(self):
        from edu_service.publisher.result_publisher import PROCTOR_STATUS, build_message
        msg = build_message("sid", PROCTOR_STATUS, "warning", 3, label="Looking Away")
        assert msg["sessionId"] == "sid"
        assert msg["eventType"] == "PROCTOR_STATUS"
        assert msg["status"] == "warning"
        assert msg["violationCount"] == 3
        assert msg["label"] == "Looking Away"
        assert msg["metadata"] == {}
        assert isinstance(msg["timestamp"], int)

    def test_disabled_publisher_is_noop(self, monkeypatch):
        from edu_service.config import Settings
        from edu_service.publisher import result_publisher

        def fail(message):
            raise AssertionError("should not publish")

        monkeypatch.setattr(result_publisher, "get_settings",
                            lambda: Settings(rabbitmq_enabled=False))
        monkeypatch.setattr(result_publisher._default, "publish", fail)
        result_publisher.publish_event("sid", result_publisher.EXAM_SUBMITTED, "secure", 0)

    def test_publish_failure_never_raises(self, monkeypatch):
        from edu_service.config import Settings
        from edu_service.publisher.result_publisher import EventPublisher, build_message
        publisher = EventPublisher(Settings(), attempts=2)
        attempts = []

        def unreachable():
            attempts.append(1)
            raise ConnectionError("broker unreachable")

        monkeypatch.setattr(publisher, "_channel", unreachable)
        assert publisher.publish(build_message("sid", "EXAM_SUBMITTED", "secure", 0)) is False
        assert len(attempts) == 2

    def test_publish_uses_results_routing_key(self, monkeypatch):
        from unittest.mock import MagicMock
        from edu_service.config import Settings
        from edu_service.publisher.result_publisher import EventPublisher, build_message
        publisher = EventPublisher(Settings(results_routing_key="proctoring.test"))
        channel = MagicMock()
        monkeypatch.setattr(publisher, "_channel", lambda: channel)

        assert publisher.publish(build_message("sid", "PROCTOR_STATUS", "danger", 101)) is True
        kwargs = channel.basic_publish.call_args.kwargs
        assert kwargs["routing_key"] == "proctoring.test"
        assert b'"violationCount": 101' in kwargs["body"]
