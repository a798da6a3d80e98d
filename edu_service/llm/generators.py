"""
Language-model backed services.

  QuestionGenerator  — exam questions; failure is fatal for session start
  FeedbackGenerator  — result narrative; failure → static fallback text
  MentorChat         — tutoring chat; failure → apology reply
  SpeechNotes        — transcript → structured HTML study notes
  LearningPathPlanner — career goal → step-by-step roadmap

Each takes the text function it calls as a constructor argument so tests
can substitute the network call.
"""
from __future__ import annotations

import logging
from typing import Callable, List

from pydantic import ValidationError

from edu_service.errors import GenerationError
from edu_service.llm import gemini_client
from edu_service.models.exam import ExamConfig, ExamResult, Question
from edu_service.models.learning import ChatMessage, LearningPlan

logger = logging.getLogger(__name__)

TextFn = Callable[[str], str]

FEEDBACK_FALLBACK = "Great effort! Keep practicing to improve your speed and accuracy."
MENTOR_GREETING   = "Hello! I'm your AI Mentor. How can I help you with your studies today?"
MENTOR_FALLBACK   = "I'm having trouble connecting right now. Please try again."


class QuestionGenerator:

    def __init__(self, generate: TextFn = gemini_client.generate_text) -> None:
        self._generate = generate

    def generate(self, config: ExamConfig) -> List[Question]:
        prompt = (
            f"Generate {config.question_count} multiple choice questions for a "
            f"{config.category} exam.\n"
            f"Difficulty Level: {config.difficulty.value}\n"
            "Format the output as a JSON array of objects:\n"
            '[{"id": 1, "text": "Question text here?", '
            '"options": ["Option A", "Option B", "Option C", "Option D"], '
            '"correctAnswer": 0}]\n'
            f"Ensure the questions are accurate and relevant to {config.category}.\n"
            "Only return the JSON."
        )
        raw    = self._generate(prompt)
        parsed = gemini_client.parse_json_response(raw)
        questions = _to_questions(parsed, config.question_count)
        logger.info("Generated %d questions (category=%s difficulty=%s)",
                    len(questions), config.category, config.difficulty.value)
        return questions


def _to_questions(parsed: object, limit: int) -> List[Question]:
    if isinstance(parsed, dict) and isinstance(parsed.get("questions"), list):
        parsed = parsed["questions"]
    if not isinstance(parsed, list) or not parsed:
        raise GenerationError("expected a non-empty JSON array of questions")

    questions: List[Question] = []
    seen_ids: set[int] = set()
    for idx, item in enumerate(parsed[:limit], start=1):
        if not isinstance(item, dict):
            raise GenerationError(f"question #{idx} is not an object")
        data = dict(item)
        # renumber when ids are missing or collide
        if not isinstance(data.get("id"), int) or data["id"] in seen_ids:
            data["id"] = max(seen_ids, default=0) + 1
        try:
            q = Question.model_validate(data)
        except ValidationError as exc:
            raise GenerationError(f"question #{idx} is malformed: {exc.errors()[0]['msg']}") from exc
        seen_ids.add(q.id)
        questions.append(q)
    return questions


class FeedbackGenerator:

    def __init__(self, generate: TextFn = gemini_client.generate_text) -> None:
        self._generate = generate

    def generate(self, result: ExamResult) -> str:
        minutes, seconds = divmod(result.time_taken_seconds, 60)
        prompt = (
            "Analyze the following exam results and provide a concise, "
            "motivational feedback report.\n"
            f"Exam Type: {result.category}\n"
            f"Difficulty: {result.difficulty.value}\n"
            f"Score: {result.correct} / {result.total}\n"
            f"Time Taken: {minutes} minutes and {seconds} seconds.\n"
            "Provide a brief performance summary, key strengths, areas for "
            "improvement and a suggested study strategy. "
            "Keep it professional and encouraging."
        )
        try:
            return self._generate(prompt)
        except Exception as exc:
            logger.warning("Feedback generation failed for session %s, using fallback: %s",
                           result.session_id, exc)
            return FEEDBACK_FALLBACK


class MentorChat:

    def __init__(self, reply: Callable[[list[dict[str, str]], str], str] = gemini_client.chat_reply) -> None:
        self._reply = reply

    def reply(self, history: List[ChatMessage], message: str) -> str:
        if not message.strip():
            raise ValueError("message must not be empty")
        turns = [{"role": m.role, "text": m.text} for m in history]
        try:
            return self._reply(turns, message)
        except Exception as exc:
            logger.warning("Mentor chat failed: %s", exc)
            return MENTOR_FALLBACK


class SpeechNotes:

    def __init__(self, generate: TextFn = gemini_client.generate_text) -> None:
        self._generate = generate

    def generate(self, transcript: str) -> str:
        transcript = transcript.strip()
        if not transcript:
            raise ValueError("transcript is empty")
        prompt = (
            "You are an AI assistant for a speech-to-notes system.\n"
            "Correct grammar and spelling, remove filler words and repeated "
            "phrases, and convert the content into clear, well-structured "
            "educational notes with these sections: Title, Abstract, "
            "Introduction, Topic Explanation, Examples (if applicable), "
            "Conclusion, Key Learning Outcomes.\n"
            "Tone: formal, educational, student-friendly.\n"
            "Return ONLY raw semantic HTML (<h1>, <h2>, <p>, <ul>, <li>, <strong>). "
            "No <html>, <head> or <body> tags and no markdown code fences.\n\n"
            f"INPUT TRANSCRIPT:\n{transcript}"
        )
        html = gemini_client.strip_fences(self._generate(prompt))
        logger.info("Generated notes from %d-character transcript", len(transcript))
        return html


class LearningPathPlanner:

    def __init__(self, generate: TextFn = gemini_client.generate_text) -> None:
        self._generate = generate

    def generate(self, goal: str, background: str) -> LearningPlan:
        if not goal.strip():
            raise ValueError("career goal must not be empty")
        prompt = (
            "You are an AI learning-path architect for a Smart Education platform.\n"
            f"Career Goal: {goal}\n"
            f"Current Knowledge Level: {background}\n"
            "Generate a step-by-step learning journey from the user's current "
            "level to job-ready level, skipping basics they already know.\n"
            "Output machine-readable JSON only, in exactly this shape:\n"
            f'{{"career": "{goal}", "current_level": "string", "journey": '
            '[{"step": 1, "title": "string", "description": "string", '
            '"level": "beginner | intermediate | advanced", "milestone": true}]}'
        )
        parsed = gemini_client.parse_json_response(self._generate(prompt))
        try:
            return LearningPlan.model_validate(parsed)
        except ValidationError as exc:
            raise GenerationError(
                "AI was unable to generate a valid roadmap. Please try again with more details."
            ) from exc
