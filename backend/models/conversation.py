"""Conversation data models."""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List

SYSTEM = "system"
USER = "user"
ASSISTANT = "assistant"
OBSERVATION = "observation"

ROLES = (SYSTEM, USER, ASSISTANT, OBSERVATION)


@dataclass
class Message:
    """A single entry of a user's conversation log."""
    role: str
    content: str

    def __post_init__(self):
        if self.role not in ROLES:
            raise ValueError(f"Unknown message role: {self.role}")

    def to_chat_message(self) -> Dict[str, str]:
        """Chat-completion payload; observations travel as user messages."""
        role = USER if self.role == OBSERVATION else self.role
        return {"role": role, "content": self.content}


@dataclass
class ConversationState:
    """Bounded message log for one user."""
    user_id: str
    messages: List[Message] = field(default_factory=list)
    last_active: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
