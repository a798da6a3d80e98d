"""
FastAPI route definitions for the education service.

  GET  /health                          — liveness/readiness check
  GET  /exams/options                   — categories, difficulties, durations
  POST /exams/sessions                  — generate questions, start a session
  GET  /exams/sessions/{id}             — timer + proctoring status
  POST /exams/sessions/{id}/answers     — record one answer
  POST /exams/sessions/{id}/focus-loss  — window blur event
  POST /exams/sessions/{id}/submit      — finalize (idempotent)
  POST /mentor/chat                     — tutoring chat
  POST /speech-notes                    — transcript → study notes
  POST /learning-path                   — career roadmap
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, List, Optional

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, Field

from edu_service.activity import logger as activity
from edu_service.config import get_settings
from edu_service.db.database import check_db_connection
from edu_service.errors import GenerationError, SessionAlreadySubmitted, SessionNotFound
from edu_service.exam.controller import ExamController
from edu_service.exam.registry import SessionRegistry
from edu_service.exam.timer import DURATION_BRACKETS, duration_for, format_remaining
from edu_service.llm.generators import MENTOR_GREETING
from edu_service.ml.model_loader import get_models
from edu_service.models.exam import (
    EXAM_CATEGORIES,
    Difficulty,
    ExamConfig,
    ExamResult,
    ExamSession,
)
from edu_service.models.learning import ChatMessage, LearningPlan
from edu_service.proctoring.accumulator import ProctoringState
from edu_service.proctoring.sample import ClassificationSample
from edu_service.publisher import result_publisher

logger = logging.getLogger(__name__)

router = APIRouter()


def _registry(request: Request) -> SessionRegistry:
    return request.app.state.registry


def _controller(request: Request, session_id: str) -> ExamController:
    try:
        return _registry(request).get(session_id)
    except SessionNotFound:
        raise HTTPException(status_code=404, detail="Exam session not found or expired")


# ── Health ─────────────────────────────────────────────────────────────────────

@router.get("/health")
def health(request: Request) -> dict[str, Any]:
    models   = get_models()
    settings = get_settings()
    db_ok    = check_db_connection()

    return {
        "status": "ok" if db_ok else "degraded",
        "models": {
            "pose_classifier_loaded": models.pose_classifier_loaded,
            "mediapipe_ready":        models.mediapipe_available,
            "proctoring_mode":        "live" if models.classifier_ready else "simulated",
        },
        "dependencies": {
            "database": "ok" if db_ok else "error",
            "gemini":   "configured" if settings.gemini_api_key else "missing key",
        },
        "active_sessions": len(_registry(request)),
    }


# ── Exams ──────────────────────────────────────────────────────────────────────

@router.get("/exams/options")
def exam_options() -> dict[str, Any]:
    return {
        "categories":   EXAM_CATEGORIES,
        "difficulties": [d.value for d in Difficulty],
        "question_counts": [
            {"count": n, "duration_seconds": secs, "duration": format_remaining(secs)}
            for n, secs in DURATION_BRACKETS.items()
        ],
    }


class StartExamRequest(ExamConfig):
    user_id: Optional[str] = None


@router.post("/exams/sessions", status_code=201)
async def start_exam(req: StartExamRequest, request: Request) -> dict[str, Any]:
    config = ExamConfig(
        category=req.category, difficulty=req.difficulty, question_count=req.question_count)
    generator = request.app.state.question_generator
    try:
        questions = await asyncio.to_thread(generator.generate, config)
    except GenerationError as exc:
        logger.warning("Question generation failed (%s/%s): %s",
                       config.category, config.difficulty.value, exc)
        raise HTTPException(
            status_code=502,
            detail={"message": "Failed to generate questions. Please retry.", "retry": True},
        )

    duration = duration_for(config.question_count)
    session = ExamSession(
        session_id        = SessionRegistry.new_id(),
        config            = config,
        questions         = questions,
        user_id           = req.user_id,
        duration_seconds  = duration,
        remaining_seconds = duration,
    )
    controller = ExamController(session, feedback=request.app.state.feedback_generator)
    _wire_publisher(controller)
    _registry(request).add(controller)
    controller.start()

    return {
        "session_id":       session.session_id,
        "category":         config.category,
        "difficulty":       config.difficulty.value,
        "duration_seconds": duration,
        "questions":        [q.public() for q in questions],
    }


def _wire_publisher(controller: ExamController) -> None:
    sid = controller.session.session_id

    def publish(*args) -> None:
        loop = controller.loop or asyncio.get_running_loop()
        loop.run_in_executor(None, result_publisher.publish_event, sid, *args)

    def on_proctor_change(state: ProctoringState, sample: ClassificationSample, changed: bool) -> None:
        if changed:
            publish(result_publisher.PROCTOR_STATUS, state.status.value,
                    state.violation_count, state.current_label)

    def on_result(result: ExamResult) -> None:
        publish(result_publisher.EXAM_SUBMITTED, result.proctor_status,
                result.violation_count, None, result.model_dump(mode="json"))

    controller.add_proctor_observer(on_proctor_change)
    controller.add_focus_observer(on_proctor_change)
    controller.add_result_observer(on_result)


@router.get("/exams/sessions/{session_id}")
async def exam_status(session_id: str, request: Request) -> dict[str, Any]:
    controller = _controller(request, session_id)
    snap = controller.snapshot()
    snap["remaining"] = format_remaining(snap["remaining_seconds"])
    return snap


class AnswerRequest(BaseModel):
    question_id:  int
    option_index: int = Field(..., ge=0)


@router.post("/exams/sessions/{session_id}/answers")
async def submit_answer(session_id: str, req: AnswerRequest, request: Request) -> dict[str, Any]:
    controller = _controller(request, session_id)
    try:
        controller.answer(req.question_id, req.option_index)
    except SessionAlreadySubmitted:
        raise HTTPException(status_code=409, detail="Exam already submitted")
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Unknown question {req.question_id}")
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    return {"answered": len(controller.session.answers)}


@router.post("/exams/sessions/{session_id}/focus-loss")
async def focus_loss(session_id: str, request: Request) -> dict[str, Any]:
    controller = _controller(request, session_id)
    controller.record_focus_loss()
    return controller.focus_accumulator.state.as_dict()


@router.post("/exams/sessions/{session_id}/submit", response_model=ExamResult)
async def submit_exam(session_id: str, request: Request) -> ExamResult:
    controller = _controller(request, session_id)
    return await controller.submit()


# ── Mentor chat ────────────────────────────────────────────────────────────────

class ChatRequest(BaseModel):
    history: List[ChatMessage] = Field(default_factory=list)
    message: str = Field(..., min_length=1)


@router.get("/mentor/greeting")
def mentor_greeting() -> dict[str, str]:
    return {"role": "model", "text": MENTOR_GREETING}


@router.post("/mentor/chat")
async def mentor_chat(req: ChatRequest, request: Request) -> dict[str, str]:
    mentor = request.app.state.mentor
    try:
        reply = await asyncio.to_thread(mentor.reply, req.history, req.message)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    return {"role": "model", "text": reply}


# ── Speech notes ───────────────────────────────────────────────────────────────

class NotesRequest(BaseModel):
    transcript: str
    user_id:    Optional[str] = None


@router.post("/speech-notes")
async def speech_notes(req: NotesRequest, request: Request) -> dict[str, str]:
    notes = request.app.state.speech_notes
    try:
        html = await asyncio.to_thread(notes.generate, req.transcript)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    except GenerationError as exc:
        logger.warning("Notes generation failed: %s", exc)
        raise HTTPException(status_code=502, detail="Failed to generate notes. Please try again.")

    asyncio.get_running_loop().run_in_executor(
        None, activity.log_activity, req.user_id, activity.NOTES_GENERATED,
        {"transcript_chars": len(req.transcript)},
    )
    return {"html": html}


# ── Learning path ──────────────────────────────────────────────────────────────

class LearningPathRequest(BaseModel):
    goal:       str = Field(..., min_length=1)
    background: str = ""
    user_id:    Optional[str] = None


@router.post("/learning-path", response_model=LearningPlan)
async def learning_path(req: LearningPathRequest, request: Request) -> LearningPlan:
    planner = request.app.state.learning_path
    try:
        plan = await asyncio.to_thread(planner.generate, req.goal, req.background)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    except GenerationError as exc:
        raise HTTPException(status_code=502, detail=str(exc))

    asyncio.get_running_loop().run_in_executor(
        None, activity.log_activity, req.user_id, activity.PATH_GENERATED,
        {"career": req.goal, "steps": len(plan.journey)},
    )
    return plan
