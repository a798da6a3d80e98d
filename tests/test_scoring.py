"""
Tests for exam scoring.
Run with: pytest tests/test_scoring.py -v
"""
from conftest import make_questions, make_session


class TestScoring:
    def test_three_of_five_is_sixty_percent(self):
        from edu_service.exam import scoring
        session = make_session(correct_answers=(0, 1, 2, 3, 0))
        session.answers.update({1: 0, 2: 1, 3: 9, 4: 3, 5: 1})
        session.remaining_seconds = 600

        result = scoring.build_result(session, violation_count=2, focus_loss_count=1,
                                      proctor_status="warning", auto_submitted=False)
        assert result.correct == 3
        assert result.total == 5
        assert result.percentage == 60
        assert result.incorrect_question_ids == [3, 5]
        assert result.time_taken_seconds == 300
        assert result.violation_count == 2
        assert result.focus_loss_count == 1

    def test_unanswered_counts_as_wrong(self):
        from edu_service.exam import scoring
        questions = make_questions((0, 1, 2))
        assert scoring.count_correct(questions, {1: 0}) == 1
        assert scoring.incorrect_question_ids(questions, {1: 0}) == [2, 3]

    def test_percentage_rounds(self):
        from edu_service.exam.scoring import percentage
        assert percentage(1, 3) == 33
        assert percentage(2, 3) == 67
        assert percentage(20, 20) == 100

    def test_empty_exam_scores_zero(self):
        from edu_service.exam.scoring import percentage
        assert percentage(0, 0) == 0

    def test_scoring_is_pure(self):
        from edu_service.exam import scoring
        session = make_session()
        session.answers.update({1: 0, 2: 1})
        first  = scoring.build_result(session, 0, 0, "secure", False)
        second = scoring.build_result(session, 0, 0, "secure", False)
        assert first == second
        assert session.answers == {1: 0, 2: 1}


class TestQuestion:
    def test_accepts_camel_case_answer_key(self):
        from edu_service.models.exam import Question
        q = Question.model_validate(
            {"id": 1, "text": "2 + 2?", "options": ["3", "4"], "correctAnswer": 1})
        assert q.correct_answer == 1
        assert "correct_answer" not in q.public()

    def test_answer_index_must_be_in_range(self):
        import pytest
        from pydantic import ValidationError
        from edu_service.models.exam import Question
        with pytest.raises(ValidationError):
            Question(id=1, text="?", options=["a", "b"], correct_answer=2)

    def test_needs_two_options(self):
        import pytest
        from pydantic import ValidationError
        from edu_service.models.exam import Question
        with pytest.raises(ValidationError):
            Question(id=1, text="?", options=["only"], correct_answer=0)
