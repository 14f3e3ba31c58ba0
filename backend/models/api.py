"""API request/response models."""
from typing import List

from pydantic import BaseModel, Field


class ChatRequest(BaseModel):
    """Natural-language request from a user."""
    user_id: str = Field(..., min_length=1, description="Owner of the task list")
    message: str = Field(..., min_length=1, description="Free-form user message")


class ChatResponse(BaseModel):
    """Final reply for one turn."""
    response: str
    state: str
    iterations: int
    actions: List[str] = Field(default_factory=list)


class StatusResponse(BaseModel):
    """Availability of the language-model service."""
    enabled: bool
    model: str
