"""
ClassificationSample — one instant's output from the behaviour classifier.

A ranked list of (label, confidence) pairs.  Produced and consumed once per
sampling tick.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any


@dataclass
class ClassificationSample:
    predictions: list[tuple[str, float]] = field(default_factory=list)
    simulated:   bool = False

    @classmethod
    def single(cls, label: str, confidence: float = 1.0, simulated: bool = False) -> "ClassificationSample":
        return cls(predictions=[(label, confidence)], simulated=simulated)

    @property
    def is_valid(self) -> bool:
        """False for an empty sample or one with a bad label/confidence."""
        if not isinstance(self.predictions, (list, tuple)) or not self.predictions:
            return False
        for item in self.predictions:
            if not _valid_pair(item):
                return False
        return True

    @property
    def winner(self) -> tuple[str, float] | None:
        """Arg-max (label, confidence); ``None`` when there is no signal."""
        if not self.is_valid:
            return None
        label, conf = max(self.predictions, key=lambda p: p[1])
        return label, float(conf)

    def top(self, n: int = 3) -> list[tuple[str, float]]:
        if not self.is_valid:
            return []
        return sorted(self.predictions, key=lambda p: p[1], reverse=True)[:n]


def _valid_pair(item: Any) -> bool:
    if not isinstance(item, (list, tuple)) or len(item) != 2:
        return False
    label, conf = item
    if not isinstance(label, str) or not label.strip():
        return False
    if isinstance(conf, bool) or not isinstance(conf, (int, float)):
        return False
    return not math.isnan(conf) and 0.0 <= conf <= 1.0
