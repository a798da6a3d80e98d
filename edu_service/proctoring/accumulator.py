"""
Violation Accumulator — turns a stream of classification samples into a
three-level proctoring status and a monotonic violation counter.

    normal label            → secure   (counter unchanged)
    any other label         → warning  (counter += 1)
    counter > threshold     → danger   (sticky until the session ends)

Empty or malformed samples carry no signal: nothing changes, the anomaly is
logged.  Once frozen (at submission) every further sample is ignored.

Thresholds differ by sampling granularity: per-frame sampling uses a high
threshold (100), coarse per-event sampling such as window focus loss a low
one (3).
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from edu_service.proctoring.labels import NORMAL, LabelTable
from edu_service.proctoring.sample import ClassificationSample

logger = logging.getLogger(__name__)


class ProctorStatus(str, Enum):
    SECURE  = "secure"
    WARNING = "warning"
    DANGER  = "danger"


@dataclass
class ProctoringState:
    status:          ProctorStatus = ProctorStatus.SECURE
    current_label:   str | None    = None
    violation_count: int           = 0
    feedback:        str           = "Monitoring..."
    frozen:          bool          = False

    def as_dict(self) -> dict:
        return {
            "status":          self.status.value,
            "current_label":   self.current_label,
            "violation_count": self.violation_count,
            "feedback":        self.feedback,
            "frozen":          self.frozen,
        }


class ViolationAccumulator:
    """Single-owner state machine; mutate only through ``update``/``freeze``."""

    def __init__(self, danger_threshold: int, labels: LabelTable, name: str = "frame") -> None:
        if danger_threshold < 0:
            raise ValueError("danger_threshold must be >= 0")
        self.danger_threshold = danger_threshold
        self.labels = labels
        self.name   = name
        self.state  = ProctoringState()

    @property
    def status(self) -> ProctorStatus:
        return self.state.status

    @property
    def violation_count(self) -> int:
        return self.state.violation_count

    def reset(self) -> None:
        self.state = ProctoringState()

    def freeze(self) -> ProctoringState:
        self.state.frozen = True
        return self.state

    def update(self, sample: ClassificationSample) -> bool:
        """
        Apply one sample.  Returns True when the status changed.
        """
        st = self.state
        if st.frozen:
            return False

        winner = sample.winner
        if winner is None:
            logger.warning("%s accumulator: empty or malformed sample ignored: %r",
                           self.name, sample.predictions)
            return False

        raw_label, _conf = winner
        category = self.labels.canonical(raw_label)
        before   = st.status
        st.current_label = category

        if category == NORMAL:
            if st.status is not ProctorStatus.DANGER:
                st.status   = ProctorStatus.SECURE
                st.feedback = "Normal behaviour detected. Continue exam."
        else:
            st.violation_count += 1
            if st.violation_count > self.danger_threshold:
                st.status   = ProctorStatus.DANGER
                st.feedback = "CRITICAL: Repeated violations. Session flagged for review."
            elif st.status is not ProctorStatus.DANGER:
                st.status   = ProctorStatus.WARNING
                st.feedback = f"Suspicious Activity: {category} detected!"

        changed = st.status is not before
        if changed and st.status is ProctorStatus.DANGER:
            logger.warning("%s accumulator escalated to DANGER after %d violations",
                           self.name, st.violation_count)
        return changed
