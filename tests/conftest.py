"""
Shared fixtures for the education service tests.
Run with: pytest tests -v
"""
import threading

import pytest


def make_questions(correct_answers):
    from edu_service.models.exam import Question
    return [
        Question(id=i, text=f"Question {i}?", options=["A", "B", "C", "D"], correct_answer=ans)
        for i, ans in enumerate(correct_answers, start=1)
    ]


def make_session(correct_answers=(0, 1, 2, 3, 0), duration=900, user_id="user-1"):
    from edu_service.models.exam import ExamConfig, ExamSession
    return ExamSession(
        session_id        = "a" * 32,
        config            = ExamConfig(category="JEE", difficulty="Medium", question_count=20),
        questions         = make_questions(correct_answers),
        user_id           = user_id,
        duration_seconds  = duration,
        remaining_seconds = duration,
    )


class FakeClassifier:
    """Scripted classifier; returns ``label`` until closed."""

    def __init__(self, label="Normal", simulated=False):
        self.label     = label
        self.simulated = simulated
        self.calls     = 0
        self.closed    = False

    def classify(self):
        from edu_service.proctoring.sample import ClassificationSample
        self.calls += 1
        return ClassificationSample.single(self.label, 0.9, simulated=self.simulated)

    def close(self):
        self.closed = True


class BlockingClassifier(FakeClassifier):
    """Blocks inside ``classify`` until ``gate`` is set."""

    def __init__(self, label="Using Phone"):
        super().__init__(label)
        self.entered = threading.Event()
        self.gate    = threading.Event()

    def classify(self):
        self.entered.set()
        self.gate.wait(5)
        return super().classify()


class BrokenClassifier(FakeClassifier):
    def classify(self):
        self.calls += 1
        raise RuntimeError("inference backend crashed")


class RecordingActivity:
    def __init__(self):
        self.calls = []
        self._lock = threading.Lock()

    def __call__(self, user_id, action, details=None):
        with self._lock:
            self.calls.append((user_id, action, details))

    def actions(self):
        with self._lock:
            return [c[1] for c in self.calls]


@pytest.fixture
def labels():
    from edu_service.config import DEFAULT_LABEL_MAP
    from edu_service.proctoring.labels import LabelTable
    return LabelTable(DEFAULT_LABEL_MAP)


@pytest.fixture
def fast_settings():
    from edu_service.config import Settings
    return Settings(
        rabbitmq_enabled       = False,
        gemini_api_key         = "",
        monitor_tick_seconds   = 0.001,
        simulated_tick_seconds = 0.001,
        timer_tick_seconds     = 0.001,
    )
