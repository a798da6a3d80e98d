"""
ProctorMonitor — the self-rescheduling sampling loop for one exam session.

Each tick:
  1. acquire one ClassificationSample (blocking inference runs in a worker
     thread, the event loop only awaits it)
  2. drop it if the monitor was stopped meanwhile
  3. feed it to the ViolationAccumulator
  4. notify observers

The next tick is scheduled only after the current one finishes.  If the real
classifier cannot be opened or fails mid-session, the monitor switches to the
simulated classifier for the rest of the session; proctoring errors never
propagate into the exam.

``stop()`` is final: it prevents further ticks, releases the camera (now, or
as soon as an in-flight inference returns) and discards late results.
"""
from __future__ import annotations

import asyncio
import logging
import threading
from typing import Callable

from edu_service.proctoring.accumulator import ProctoringState, ViolationAccumulator
from edu_service.proctoring.classifier import BehaviorClassifier
from edu_service.proctoring.sample import ClassificationSample

logger = logging.getLogger(__name__)

Observer = Callable[[ProctoringState, ClassificationSample, bool], None]


class _Stopped(Exception):
    pass


class ProctorMonitor:

    def __init__(
        self,
        accumulator:            ViolationAccumulator,
        classifier_factory:     Callable[[], BehaviorClassifier],
        fallback_factory:       Callable[[], BehaviorClassifier],
        tick_seconds:           float = 0.05,
        simulated_tick_seconds: float = 1.0,
        name:                   str = "monitor",
    ) -> None:
        self.accumulator             = accumulator
        self._classifier_factory     = classifier_factory
        self._fallback_factory       = fallback_factory
        self._tick_seconds           = tick_seconds
        self._simulated_tick_seconds = simulated_tick_seconds
        self.name                    = name

        self._observers: list[Observer] = []
        self._task:       asyncio.Task | None = None
        self._classifier: BehaviorClassifier | None = None
        self._clf_lock    = threading.Lock()
        self._stopped     = False
        self._released    = False
        self.ticks        = 0

    # ── Public interface ────────────────────────────────────────────────────

    @property
    def stopped(self) -> bool:
        return self._stopped

    @property
    def simulated(self) -> bool:
        return self._classifier is not None and self._classifier.simulated

    def add_observer(self, observer: Observer) -> None:
        self._observers.append(observer)

    def start(self) -> None:
        if self._stopped:
            raise RuntimeError(f"{self.name} was stopped and cannot be restarted")
        if self._task is None:
            self._task = asyncio.get_running_loop().create_task(self._run(), name=self.name)

    def stop(self) -> None:
        """Idempotent; safe to call from inside an observer."""
        if self._stopped:
            return
        self._stopped = True
        if self._task is not None and not self._task.done():
            if self._task is not _current_task():
                self._task.cancel()
        # If an inference holds the lock, the worker thread releases the
        # classifier as soon as it returns.
        self._try_release()
        logger.info("%s stopped after %d ticks", self.name, self.ticks)

    # ── Loop ────────────────────────────────────────────────────────────────

    async def _run(self) -> None:
        try:
            await self._open(self._classifier_factory, fallback=True)
            while not self._stopped:
                sample = await self._sample()
                if sample is None or self._stopped:
                    continue
                self._apply(sample)
                interval = (self._simulated_tick_seconds if self.simulated
                            else self._tick_seconds)
                await asyncio.sleep(interval)
        except _Stopped:
            pass
        except Exception as exc:
            logger.error("%s: monitoring loop aborted: %s", self.name, exc, exc_info=True)
        finally:
            self._stopped = True
            self._try_release()

    async def _open(self, factory: Callable[[], BehaviorClassifier], fallback: bool) -> None:
        try:
            await asyncio.to_thread(self._open_blocking, factory)
        except _Stopped:
            raise
        except Exception as exc:
            if not fallback:
                raise
            logger.warning("%s: classifier unavailable (%s) — falling back to simulated monitoring",
                           self.name, exc)
            await asyncio.to_thread(self._open_blocking, self._fallback_factory)

    def _open_blocking(self, factory: Callable[[], BehaviorClassifier]) -> None:
        clf = factory()
        with self._clf_lock:
            if self._stopped:
                clf.close()
                raise _Stopped()
            self._classifier = clf
            self._released   = False

    async def _sample(self) -> ClassificationSample | None:
        try:
            return await asyncio.to_thread(self._classify_blocking)
        except _Stopped:
            raise
        except Exception as exc:
            if self.simulated:
                logger.warning("%s: simulated sampling failed: %s", self.name, exc)
                await asyncio.sleep(self._simulated_tick_seconds)
                return None
            logger.warning("%s: classifier failed mid-session (%s) — switching to simulation",
                           self.name, exc)
            with self._clf_lock:
                self._release_locked()
            await self._open(self._fallback_factory, fallback=False)
            return None

    def _classify_blocking(self) -> ClassificationSample:
        try:
            with self._clf_lock:
                if self._stopped or self._classifier is None or self._released:
                    raise _Stopped()
                return self._classifier.classify()
        finally:
            # stop() may have run while we held the lock; checked after
            # unlocking so one of the two sides always releases
            if self._stopped:
                with self._clf_lock:
                    self._release_locked()

    def _apply(self, sample: ClassificationSample) -> None:
        self.ticks += 1
        changed = self.accumulator.update(sample)
        for observer in list(self._observers):
            try:
                observer(self.accumulator.state, sample, changed)
            except Exception as exc:
                logger.warning("%s observer %r failed: %s", self.name, observer, exc)

    def _try_release(self) -> None:
        # never block the event loop on a hung inference
        if self._clf_lock.acquire(blocking=False):
            try:
                self._release_locked()
            finally:
                self._clf_lock.release()

    def _release_locked(self) -> None:
        """Caller holds ``_clf_lock``."""
        if self._classifier is None or self._released:
            return
        self._released = True
        try:
            self._classifier.close()
        except Exception as exc:
            logger.warning("%s: classifier close failed: %s", self.name, exc)


def _current_task() -> asyncio.Task | None:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None
