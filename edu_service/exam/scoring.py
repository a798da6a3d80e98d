"""
exam/scoring.py

Scoring and result report logic.
Pure functions — no I/O, no global state; the same inputs always give the
same result.
"""
from __future__ import annotations

from typing import Dict, List

from edu_service.models.exam import ExamResult, ExamSession, Question


def count_correct(questions: List[Question], answers: Dict[int, int]) -> int:
    """
    Number of questions whose selected option index equals the answer key.
    Unanswered questions count as wrong.
    """
    return sum(1 for q in questions if answers.get(q.id) == q.correct_answer)


def percentage(correct: int, total: int) -> int:
    """``round(correct / total * 100)``; an empty exam scores 0."""
    if total <= 0:
        return 0
    return round(correct / total * 100)


def incorrect_question_ids(questions: List[Question], answers: Dict[int, int]) -> List[int]:
    """Ids of wrong or unanswered questions, in question order (review list)."""
    return [q.id for q in questions if answers.get(q.id) != q.correct_answer]


def build_result(
    session:          ExamSession,
    violation_count:  int,
    focus_loss_count: int,
    proctor_status:   str,
    auto_submitted:   bool,
) -> ExamResult:
    total   = len(session.questions)
    correct = count_correct(session.questions, session.answers)
    return ExamResult(
        session_id             = session.session_id,
        category               = session.config.category,
        difficulty             = session.config.difficulty,
        total                  = total,
        correct                = correct,
        percentage             = percentage(correct, total),
        time_taken_seconds     = session.elapsed_seconds,
        violation_count        = violation_count,
        focus_loss_count       = focus_loss_count,
        proctor_status         = proctor_status,
        auto_submitted         = auto_submitted,
        incorrect_question_ids = incorrect_question_ids(session.questions, session.answers),
    )
