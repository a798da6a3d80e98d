from __future__ import annotations

from typing import List, Literal

from pydantic import BaseModel, Field


class JourneyStep(BaseModel):
    step:        int
    title:       str
    description: str = ""
    level:       Literal["beginner", "intermediate", "advanced"] = "beginner"
    milestone:   bool = False


class LearningPlan(BaseModel):
    career:        str
    current_level: str = ""
    journey:       List[JourneyStep] = Field(..., min_length=1)


class ChatMessage(BaseModel):
    role: Literal["user", "model"]
    text: str
