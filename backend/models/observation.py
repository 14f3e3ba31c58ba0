"""Observation data models."""
import json
from dataclasses import dataclass
from typing import Any, Optional

SUCCESS = "success"
VALIDATION_ERROR = "validation_error"
NOT_FOUND = "not_found"
AMBIGUOUS_REFERENCE = "ambiguous_reference"
UNKNOWN_ACTION = "unknown_action"


@dataclass
class Observation:
    """Result of executing one action, fed back to the model."""
    action: str
    status: str
    payload: Any = None
    message: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == SUCCESS

    def to_dict(self) -> dict:
        data = {"action": self.action, "status": self.status}
        if self.message:
            data["message"] = self.message
        if self.payload is not None:
            data["result"] = self.payload
        return data

    def to_message_content(self) -> str:
        """Protocol envelope appended to the conversation."""
        body = json.dumps(self.to_dict(), ensure_ascii=False)
        return json.dumps({"type": "assistant", "message": f"Observation: {body}"}, ensure_ascii=False)
