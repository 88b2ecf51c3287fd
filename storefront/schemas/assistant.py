"""Pydantic schemas for the FAQ assistant and recommendations."""

from datetime import datetime
from pydantic import BaseModel, Field


class AssistantQuestion(BaseModel):
    user_id: str
    question: str = Field(..., min_length=1, max_length=500)


class AssistantAnswer(BaseModel):
    id: str = Field(..., description="Response id used for feedback")
    question: str
    answer: str
    suggestions: list[str] = Field(default_factory=list)
    timestamp: datetime


class AssistantFeedback(BaseModel):
    response_id: str
    user_id: str
    feedback_type: str = Field(..., description="helpful or not_helpful")
