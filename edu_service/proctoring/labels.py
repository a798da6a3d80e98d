"""
Label normalization — maps raw classifier labels ("Looking Left",
"Class 1", "using phone", …) to canonical behaviour categories.

The table is configuration data (``Settings.label_map``) so a retrained
model with a different label set only needs a config change.
"""
from __future__ import annotations

import logging
import re
from typing import Mapping

logger = logging.getLogger(__name__)

NORMAL  = "Normal"
UNKNOWN = "Unknown"

# "normal" or "correct" as a standalone word ("Class 1 (Normal)", "Normal_Posture"),
# never inside another word ("Abnormal")
_NORMAL_HINT = re.compile(r"(?<![a-z])(normal|correct)(?![a-z])")


class LabelTable:
    """Case-insensitive raw label → canonical category lookup."""

    def __init__(self, mapping: Mapping[str, str]) -> None:
        self._map = {_key(raw): canonical for raw, canonical in mapping.items()}

    @classmethod
    def from_settings(cls) -> "LabelTable":
        from edu_service.config import get_settings
        return cls(get_settings().label_map)

    def canonical(self, raw_label: str) -> str:
        key = _key(raw_label)
        hit = self._map.get(key)
        if hit is not None:
            return hit
        if _NORMAL_HINT.search(key):
            return NORMAL
        logger.debug("Unmapped classifier label %r → %s", raw_label, UNKNOWN)
        return UNKNOWN

    def is_normal(self, raw_label: str) -> bool:
        return self.canonical(raw_label) == NORMAL


def _key(label: str) -> str:
    return " ".join(label.strip().lower().split())
