"""
FastAPI application entry point.

Lifespan:
  startup  → load pose model → create tables → start expired-session sweeper
             → start focus consumer thread
  shutdown → stop consumer, close every live session (releases cameras)
"""
from __future__ import annotations

import asyncio
import logging
import sys
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from edu_service.config import get_settings

settings = get_settings()

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    stream=sys.stdout,
)
logger = logging.getLogger(__name__)

_SWEEP_INTERVAL = 300   # seconds between expired-session sweeps


async def _sweep_expired(registry) -> None:
    while True:
        await asyncio.sleep(_SWEEP_INTERVAL)
        removed = registry.cleanup_expired()
        if removed:
            logger.info("Closed %d expired exam sessions", removed)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # ── Startup ────────────────────────────────────────────────────────────
    logger.info("Education service starting up …")

    # 1. Pre-load the pose classifier (non-fatal; sessions fall back to simulation)
    from edu_service.ml.model_loader import load_models
    load_models(settings.pose_model_path)

    # 2. Activity log table
    from edu_service.db.database import init_db
    try:
        init_db()
    except Exception as exc:
        logger.warning("Database init failed (activity logging degraded): %s", exc)

    # 3. Expired-session sweeper
    sweeper = asyncio.create_task(_sweep_expired(app.state.registry), name="session-sweeper")
    app.state.consumers = consumers = []
    try:
        # 4. Focus-event consumer thread
        if settings.rabbitmq_enabled:
            from edu_service.consumers.focus_consumer import FocusConsumer
            consumer = FocusConsumer(app.state.registry)
            consumer.start()
            logger.info("Started consumer thread: %s", consumer.name)
            consumers.append(consumer)

        yield

    finally:
        # ── Shutdown ───────────────────────────────────────────────────────
        logger.info("Education service shutting down …")
        sweeper.cancel()
        for c in consumers:
            c.stop(timeout=2)
        app.state.registry.close_all()


def create_app() -> FastAPI:
    from edu_service.exam.registry import SessionRegistry
    from edu_service.llm.generators import (
        FeedbackGenerator,
        LearningPathPlanner,
        MentorChat,
        QuestionGenerator,
        SpeechNotes,
    )

    app = FastAPI(
        title       = "Smart Education Service",
        description = "AI exams, proctoring, mentor chat, speech notes and learning paths",
        version     = "1.0.0",
        lifespan    = lifespan,
    )

    app.state.registry           = SessionRegistry(settings.session_ttl_seconds)
    app.state.question_generator = QuestionGenerator()
    app.state.feedback_generator = FeedbackGenerator()
    app.state.mentor             = MentorChat()
    app.state.speech_notes       = SpeechNotes()
    app.state.learning_path      = LearningPathPlanner()

    from edu_service.api.routes import router
    app.include_router(router)

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(
        "edu_service.main:app",
        host   = "0.0.0.0",
        port   = settings.port,
        reload = False,
        workers= 1,       # sessions live in process memory
    )
