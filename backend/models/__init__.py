"""Data models for the TodoBot assistant."""
from .conversation import Message, ConversationState
from .task import Task
from .observation import Observation
from .protocol import (
    ActionRequest,
    ModelReply,
    ObservationEcho,
    OutputReply,
    PlanReply,
    RawText,
    parse_model_reply,
)
from .api import ChatRequest, ChatResponse, StatusResponse

__all__ = [
    "Message",
    "ConversationState",
    "Task",
    "Observation",
    "ActionRequest",
    "ModelReply",
    "ObservationEcho",
    "OutputReply",
    "PlanReply",
    "RawText",
    "parse_model_reply",
    "ChatRequest",
    "ChatResponse",
    "StatusResponse",
]
