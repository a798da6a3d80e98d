"""
Exam data models — configuration, generated questions, live session state
and the finalized result record.

Pydantic v2 models so they serialize straight into API responses.
"""
from __future__ import annotations

import time
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from edu_service.exam.timer import DURATION_BRACKETS, bracket_for


EXAM_CATEGORIES = [
    "NEET",
    "JEE",
    "IIT",
    "UPSC",
    "TNPSC",
    "Digital Marketing",
    "Software Engineering",
    "Artificial Intelligence",
]

QUESTION_COUNTS = list(DURATION_BRACKETS)


class Difficulty(str, Enum):
    EASY   = "Easy"
    MEDIUM = "Medium"
    HARD   = "Hard"


class ExamConfig(BaseModel):
    """What the user picked on the configuration screen."""

    category:       str        = Field(..., min_length=1)
    difficulty:     Difficulty = Difficulty.MEDIUM
    question_count: int        = 20

    @field_validator("category")
    @classmethod
    def _strip_category(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("exam category must not be blank")
        return v

    @field_validator("question_count")
    @classmethod
    def _round_to_bracket(cls, v: int) -> int:
        # InvalidExamConfig is a ValueError, so pydantic reports it as a
        # regular validation error
        return bracket_for(v)


class Question(BaseModel):
    """
    One multiple-choice question, immutable for the life of a session.
    Accepts the generator's ``correctAnswer`` key as well as ``correct_answer``.
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id:             int
    text:           str       = Field(..., min_length=1)
    options:        List[str]
    correct_answer: int       = Field(..., alias="correctAnswer")

    @field_validator("options")
    @classmethod
    def _at_least_two_options(cls, v: List[str]) -> List[str]:
        if len(v) < 2:
            raise ValueError("a question needs at least two options")
        return v

    @model_validator(mode="after")
    def _answer_in_range(self) -> "Question":
        if not 0 <= self.correct_answer < len(self.options):
            raise ValueError(
                f"correct answer index {self.correct_answer} outside "
                f"options range 0..{len(self.options) - 1}"
            )
        return self

    def public(self) -> dict:
        """Question as shown to the candidate (no answer key)."""
        return {"id": self.id, "text": self.text, "options": list(self.options)}


class ExamSession(BaseModel):
    """
    State of one timed exam attempt.

    Attributes:
        answers:           question id → selected option index.
        remaining_seconds: kept in sync by the session timer.
        is_submitted:      set once, atomically, by the controller.
    """
    session_id:        str
    config:            ExamConfig
    questions:         List[Question]
    user_id:           Optional[str] = None
    answers:           Dict[int, int] = Field(default_factory=dict)
    duration_seconds:  int
    remaining_seconds: int
    started_at:        float = Field(default_factory=time.time)
    is_submitted:      bool  = False
    submitted_at:      Optional[float] = None

    @property
    def elapsed_seconds(self) -> int:
        return self.duration_seconds - self.remaining_seconds

    def question(self, question_id: int) -> Question:
        for q in self.questions:
            if q.id == question_id:
                return q
        raise KeyError(question_id)


class ExamResult(BaseModel):
    """Finalized record produced exactly once per session."""
    session_id:           str
    category:             str
    difficulty:           Difficulty
    total:                int
    correct:              int
    percentage:           int
    time_taken_seconds:   int
    violation_count:      int
    focus_loss_count:     int
    proctor_status:       str
    auto_submitted:       bool
    incorrect_question_ids: List[int] = Field(default_factory=list)
    feedback:             str = ""
