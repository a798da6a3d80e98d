"""
ExamController — owns one exam attempt end to end.

  session       answers, remaining time, submitted flag
  frame monitor ProctorMonitor → per-frame ViolationAccumulator (threshold 100)
  focus         per-event ViolationAccumulator for window focus loss (threshold 3)
  timer         SessionTimer → auto-submit at zero

All mutation happens on the event loop that called ``start()``.  Submission
is guarded by a single check-and-set under a lock taken before any side
effect runs, so a manual submit racing the timer produces exactly one
result.
"""
from __future__ import annotations

import asyncio
import logging
import threading
import time
from typing import Callable

from edu_service.activity import logger as activity
from edu_service.config import Settings, get_settings
from edu_service.errors import SessionAlreadySubmitted
from edu_service.exam import scoring
from edu_service.exam.timer import SessionTimer
from edu_service.llm.generators import FeedbackGenerator
from edu_service.models.exam import ExamResult, ExamSession
from edu_service.proctoring.accumulator import ProctorStatus, ViolationAccumulator
from edu_service.proctoring.classifier import BehaviorClassifier, SimulatedClassifier, open_classifier
from edu_service.proctoring.labels import LabelTable
from edu_service.proctoring.monitor import Observer, ProctorMonitor
from edu_service.proctoring.sample import ClassificationSample

logger = logging.getLogger(__name__)

FOCUS_LOST_LABEL = "Focus Lost"

_SEVERITY = {ProctorStatus.SECURE: 0, ProctorStatus.WARNING: 1, ProctorStatus.DANGER: 2}

ActivityFn     = Callable[[str | None, str, dict | None], None]
ResultObserver = Callable[[ExamResult], None]


def worst_status(*statuses: ProctorStatus) -> ProctorStatus:
    return max(statuses, key=_SEVERITY.__getitem__)


class ExamController:

    def __init__(
        self,
        session:            ExamSession,
        settings:           Settings | None = None,
        labels:             LabelTable | None = None,
        classifier_factory: Callable[[], BehaviorClassifier] | None = None,
        fallback_factory:   Callable[[], BehaviorClassifier] | None = None,
        feedback:           FeedbackGenerator | None = None,
        log_activity:       ActivityFn = activity.log_activity,
    ) -> None:
        self.settings = settings or get_settings()
        self.session  = session
        labels        = labels or LabelTable(self.settings.label_map)

        self.frame_accumulator = ViolationAccumulator(
            self.settings.frame_danger_threshold, labels, name=f"frame:{session.session_id[:8]}")
        self.focus_accumulator = ViolationAccumulator(
            self.settings.focus_danger_threshold, labels, name=f"focus:{session.session_id[:8]}")

        self.monitor = ProctorMonitor(
            self.frame_accumulator,
            classifier_factory or (lambda: open_classifier(self.settings)),
            fallback_factory or (lambda: SimulatedClassifier(
                labels, self.settings.simulated_violation_probability)),
            tick_seconds           = self.settings.monitor_tick_seconds,
            simulated_tick_seconds = self.settings.simulated_tick_seconds,
            name                   = f"monitor:{session.session_id[:8]}",
        )
        self.timer = SessionTimer(
            session.remaining_seconds,
            on_expire    = self._on_timer_expired,
            on_tick      = self._on_timer_tick,
            tick_seconds = self.settings.timer_tick_seconds,
        )

        self._feedback       = feedback or FeedbackGenerator()
        self._log_activity   = log_activity
        self._result_observers: list[ResultObserver] = []
        self._focus_observers:  list[Observer] = []
        self._submit_lock    = threading.Lock()
        self._result_future: asyncio.Future | None = None
        self._closed         = False
        self.loop: asyncio.AbstractEventLoop | None = None
        self.last_active     = time.time()

    # ── Lifecycle ───────────────────────────────────────────────────────────

    def start(self) -> None:
        """Start timer and monitoring. Must be called on the owning event loop."""
        self.loop = asyncio.get_running_loop()
        self.timer.start()
        self.monitor.start()
        logger.info("Exam session %s started (%s/%s, %d questions, %ds)",
                    self.session.session_id, self.session.config.category,
                    self.session.config.difficulty.value, len(self.session.questions),
                    self.session.duration_seconds)
        self._fire_and_forget(self._log_activity, self.session.user_id, activity.EXAM_STARTED, {
            "session_id": self.session.session_id,
            "type":       self.session.config.category,
            "difficulty": self.session.config.difficulty.value,
        })

    def close(self) -> None:
        """Teardown without submitting (session expired or service shutdown)."""
        if self._closed:
            return
        self._closed = True
        self.monitor.stop()
        self.timer.stop()

    def add_proctor_observer(self, observer: Observer) -> None:
        self.monitor.add_observer(observer)

    def add_focus_observer(self, observer: Observer) -> None:
        """Called after every focus-loss event with the focus accumulator state."""
        self._focus_observers.append(observer)

    def add_result_observer(self, observer: ResultObserver) -> None:
        self._result_observers.append(observer)

    # ── Candidate actions ───────────────────────────────────────────────────

    def answer(self, question_id: int, option_index: int) -> None:
        if self.session.is_submitted:
            raise SessionAlreadySubmitted(self.session.session_id)
        question = self.session.question(question_id)      # KeyError if unknown
        if not 0 <= option_index < len(question.options):
            raise ValueError(
                f"option {option_index} out of range for question {question_id}")
        self.session.answers[question_id] = option_index
        self.last_active = time.time()

    def record_focus_loss(self) -> bool:
        """One window blur event.  Returns True when the focus status changed."""
        sample  = ClassificationSample.single(FOCUS_LOST_LABEL, 1.0)
        changed = self.focus_accumulator.update(sample)
        if changed:
            logger.info("Session %s focus status → %s (%d focus losses)",
                        self.session.session_id, self.focus_accumulator.status.value,
                        self.focus_accumulator.violation_count)
        for observer in list(self._focus_observers):
            try:
                observer(self.focus_accumulator.state, sample, changed)
            except Exception as exc:
                logger.warning("Focus observer %r failed: %s", observer, exc)
        return changed

    @property
    def proctor_status(self) -> ProctorStatus:
        return worst_status(self.frame_accumulator.status, self.focus_accumulator.status)

    def snapshot(self) -> dict:
        return {
            "session_id":        self.session.session_id,
            "remaining_seconds": self.session.remaining_seconds,
            "answered":          len(self.session.answers),
            "total":             len(self.session.questions),
            "is_submitted":      self.session.is_submitted,
            "proctoring": {
                "status":    self.proctor_status.value,
                "simulated": self.monitor.simulated,
                "frame":     self.frame_accumulator.state.as_dict(),
                "focus":     self.focus_accumulator.state.as_dict(),
            },
        }

    # ── Submission ──────────────────────────────────────────────────────────

    async def submit(self, auto: bool = False) -> ExamResult:
        """
        Finalize the session.  Only the first call does any work; every later
        call (manual double click, timer racing a click) gets the same result.
        """
        with self._submit_lock:
            first = not self.session.is_submitted
            if first:
                self.session.is_submitted = True
                self.session.submitted_at = time.time()
                self._result_future = asyncio.get_running_loop().create_future()
        future = self._result_future
        if not first:
            logger.debug("Duplicate submit ignored for session %s", self.session.session_id)
            return await asyncio.shield(future)

        try:
            result = await self._finalize(auto)
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as exc:
            # the session stays submitted; later callers get the same error
            logger.error("Finalizing session %s failed: %s",
                         self.session.session_id, exc, exc_info=True)
            future.set_exception(exc)
            future.exception()      # retrieved here, waiting callers still receive it
            raise
        future.set_result(result)
        return result

    async def _finalize(self, auto: bool) -> ExamResult:
        self.monitor.stop()
        self.timer.stop()
        frame_state = self.frame_accumulator.freeze()
        focus_state = self.focus_accumulator.freeze()

        result = scoring.build_result(
            self.session,
            violation_count  = frame_state.violation_count,
            focus_loss_count = focus_state.violation_count,
            proctor_status   = self.proctor_status.value,
            auto_submitted   = auto,
        )
        result.feedback = await asyncio.to_thread(self._feedback.generate, result)

        logger.info("Session %s submitted (%s): %d/%d (%d%%), proctor=%s violations=%d",
                    self.session.session_id, "auto" if auto else "manual",
                    result.correct, result.total, result.percentage,
                    result.proctor_status, result.violation_count)

        self._fire_and_forget(self._log_activity, self.session.user_id, activity.EXAM_SUBMITTED, {
            "session_id":     result.session_id,
            "type":           result.category,
            "score":          result.percentage,
            "warnings":       result.violation_count + result.focus_loss_count,
            "auto_submitted": auto,
        })
        for observer in list(self._result_observers):
            try:
                observer(result)
            except Exception as exc:
                logger.warning("Result observer %r failed: %s", observer, exc)
        self._closed = True
        return result

    # ── Timer callbacks ─────────────────────────────────────────────────────

    def _on_timer_tick(self, remaining: int) -> None:
        if not self.session.is_submitted:
            self.session.remaining_seconds = remaining

    async def _on_timer_expired(self) -> None:
        logger.info("Time's up for session %s, auto-submitting", self.session.session_id)
        await self.submit(auto=True)

    # ── Helpers ─────────────────────────────────────────────────────────────

    def _fire_and_forget(self, fn: Callable, *args) -> None:
        try:
            loop = self.loop or asyncio.get_running_loop()
            loop.run_in_executor(None, fn, *args)
        except Exception as exc:
            logger.warning("Could not schedule %r: %s", fn, exc)
