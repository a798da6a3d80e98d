"""
Tests for exam durations and the session countdown.
Run with: pytest tests/test_timer.py -v
"""
import asyncio

import pytest


class TestDurations:
    @pytest.mark.parametrize("count,seconds", [
        (20, 900),
        (50, 1800),
        (75, 3600),
        (100, 5400),
        (200, 10800),
    ])
    def test_bracket_durations(self, count, seconds):
        from edu_service.exam.timer import duration_for
        assert duration_for(count) == seconds

    @pytest.mark.parametrize("count,bracket", [(1, 20), (21, 50), (60, 75), (101, 200)])
    def test_counts_round_up(self, count, bracket):
        from edu_service.exam.timer import bracket_for
        assert bracket_for(count) == bracket

    @pytest.mark.parametrize("count", [0, -5, 201, 1000])
    def test_out_of_range_rejected(self, count):
        from edu_service.errors import InvalidExamConfig
        from edu_service.exam.timer import duration_for
        with pytest.raises(InvalidExamConfig):
            duration_for(count)

    def test_exam_config_rounds_count(self):
        from edu_service.models.exam import ExamConfig
        assert ExamConfig(category="UPSC", question_count=30).question_count == 50

    def test_exam_config_rejects_huge_count(self):
        from pydantic import ValidationError
        from edu_service.models.exam import ExamConfig
        with pytest.raises(ValidationError):
            ExamConfig(category="UPSC", question_count=500)

    def test_exam_config_rejects_blank_category(self):
        from pydantic import ValidationError
        from edu_service.models.exam import ExamConfig
        with pytest.raises(ValidationError):
            ExamConfig(category="   ")

    @pytest.mark.parametrize("seconds,text", [
        (900, "15:00"),
        (59, "00:59"),
        (3600, "1:00:00"),
        (5405, "1:30:05"),
        (-3, "00:00"),
    ])
    def test_format_remaining(self, seconds, text):
        from edu_service.exam.timer import format_remaining
        assert format_remaining(seconds) == text


class TestSessionTimer:
    def test_expires_exactly_once(self):
        from edu_service.exam.timer import SessionTimer

        async def scenario():
            fired, ticks = [], []
            timer = SessionTimer(5, on_expire=lambda: fired.append(1),
                                 on_tick=ticks.append, tick_seconds=0.001)
            timer.start()
            timer.start()       # second start is a no-op
            await asyncio.wait_for(timer._task, timeout=2)
            return timer, fired, ticks

        timer, fired, ticks = asyncio.run(scenario())
        assert fired == [1]
        assert ticks == [4, 3, 2, 1, 0]
        assert timer.remaining == 0
        assert timer.elapsed == 5
        assert not timer.running

    def test_awaits_async_on_expire(self):
        from edu_service.exam.timer import SessionTimer

        async def scenario():
            done = []

            async def on_expire():
                await asyncio.sleep(0)
                done.append(True)

            timer = SessionTimer(1, on_expire=on_expire, tick_seconds=0.001)
            timer.start()
            await asyncio.wait_for(timer._task, timeout=2)
            return done

        assert asyncio.run(scenario()) == [True]

    def test_stop_prevents_expiry(self):
        from edu_service.exam.timer import SessionTimer

        async def scenario():
            fired = []
            timer = SessionTimer(1000, on_expire=lambda: fired.append(1), tick_seconds=0.001)
            timer.start()
            await asyncio.sleep(0.02)
            timer.stop()
            await asyncio.sleep(0.02)
            return timer, fired

        timer, fired = asyncio.run(scenario())
        assert fired == []
        assert timer.remaining < 1000
        assert not timer.running

    def test_cannot_restart_after_stop(self):
        from edu_service.exam.timer import SessionTimer

        async def scenario():
            timer = SessionTimer(10, on_expire=lambda: None)
            timer.stop()
            timer.start()

        with pytest.raises(RuntimeError):
            asyncio.run(scenario())
