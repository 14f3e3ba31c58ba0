"""
Model reply protocol.

Every reply from the language model is exactly one JSON object in one of
four shapes:

    {"type":"assistant","message":"PLAN: <text>"}
    {"type":"assistant","action":"<name>","params":{...}}
    {"type":"assistant","message":"Observation: <text>"}
    {"type":"assistant","message":"OUTPUT: <text>"}

parse_model_reply() maps raw text onto a closed set of variants. Anything it
cannot classify becomes RawText, so callers never deal with parse errors.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Union

logger = logging.getLogger(__name__)

PLAN_PREFIX = "PLAN:"
OBSERVATION_PREFIX = "Observation:"
OUTPUT_PREFIX = "OUTPUT:"

# Bare string params are promoted to the field the action expects
STRING_PARAM_FIELDS = {
    "createTodo": "title",
    "searchTodos": "query",
    "updateTodo": "todoId",
    "deleteTodo": "todoId",
}


@dataclass
class PlanReply:
    text: str


@dataclass
class ObservationEcho:
    text: str


@dataclass
class ActionRequest:
    name: str
    params: Dict[str, Any] = field(default_factory=dict)


@dataclass
class OutputReply:
    text: str


@dataclass
class RawText:
    """Fallback variant: the text is shown to the user as-is."""
    text: str


ModelReply = Union[PlanReply, ObservationEcho, ActionRequest, OutputReply, RawText]


def parse_model_reply(raw: str) -> ModelReply:
    """
    Classify one model reply.

    Args:
        raw: Text content returned by the model

    Returns:
        One of PlanReply, ObservationEcho, ActionRequest, OutputReply, RawText
    """
    raw = raw or ""
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        logger.warning(f"Model reply is not valid JSON, treating as text: {raw[:100]}")
        return RawText(raw.strip())

    if not isinstance(data, dict):
        logger.warning(f"Model reply is not a JSON object, treating as text: {raw[:100]}")
        return RawText(raw.strip())

    action = data.get("action")
    if isinstance(action, str) and action.strip():
        return ActionRequest(name=action.strip(), params=_normalize_params(action.strip(), data.get("params")))

    message = data.get("message")
    if not isinstance(message, str):
        logger.warning(f"Model reply has no action or message, treating as text: {raw[:100]}")
        return RawText(raw.strip())

    stripped = message.strip()
    if stripped.startswith(PLAN_PREFIX):
        return PlanReply(stripped[len(PLAN_PREFIX):].strip())
    if stripped.startswith(OBSERVATION_PREFIX):
        return ObservationEcho(stripped[len(OBSERVATION_PREFIX):].strip())
    if stripped.startswith(OUTPUT_PREFIX):
        return OutputReply(stripped[len(OUTPUT_PREFIX):].strip())

    return RawText(stripped)


def _normalize_params(action: str, params: Any) -> Dict[str, Any]:
    if isinstance(params, dict):
        return dict(params)
    if isinstance(params, str) and params.strip() and action in STRING_PARAM_FIELDS:
        return {STRING_PARAM_FIELDS[action]: params.strip()}
    return {}
