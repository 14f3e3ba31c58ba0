"""Conversation memory for multi-turn conversation support."""
import logging
import threading
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Iterator, List, Optional

from models.conversation import ConversationState, Message, SYSTEM
from config import MAX_HISTORY_LENGTH, CONVERSATION_TTL_SECONDS

logger = logging.getLogger(__name__)


class ConversationStore:
    """
    Owns the bounded, per-user message logs.

    System prompts are rebuilt every turn and are never stored, so they do
    not count against max_history. State lives for the process lifetime,
    minus whatever evict_idle() reclaims.
    """

    def __init__(
        self,
        max_history: int = MAX_HISTORY_LENGTH,
        ttl_seconds: int = CONVERSATION_TTL_SECONDS,
        clock: Optional[Callable[[], datetime]] = None
    ):
        """
        Initialize an empty conversation store.

        Args:
            max_history: Maximum number of messages kept per user
            ttl_seconds: Idle time after which a user's state may be evicted
            clock: Source of the current time (injected by tests)
        """
        if max_history <= 0:
            raise ValueError("max_history must be positive")

        self.max_history = max_history
        self.ttl = timedelta(seconds=ttl_seconds)
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._states: Dict[str, ConversationState] = {}
        self._turn_locks: Dict[str, threading.Lock] = {}
        self._turn_refs: Dict[str, int] = {}
        self._lock = threading.Lock()

        logger.info(f"ConversationStore initialized (max_history={max_history}, ttl={ttl_seconds}s)")

    def append(self, user_id: str, message: Message) -> None:
        """
        Add a message to a user's log, evicting the oldest entries past the cap.

        Args:
            user_id: Owner of the conversation
            message: Message to append (system messages are rejected)
        """
        if message.role == SYSTEM:
            raise ValueError("System messages are not stored in conversation history")

        self.evict_idle()

        with self._lock:
            state = self._states.get(user_id)
            if state is None:
                state = ConversationState(user_id=user_id, last_active=self._clock())
                self._states[user_id] = state
                logger.debug(f"Created conversation state for user {user_id}")

            state.messages.append(message)
            while len(state.messages) > self.max_history:
                state.messages.pop(0)
            state.last_active = self._clock()

    def get(self, user_id: str) -> List[Message]:
        """
        Return a copy of a user's log, oldest first.

        Args:
            user_id: Owner of the conversation

        Returns:
            List of messages (empty if the user has no history)
        """
        with self._lock:
            state = self._states.get(user_id)
            return list(state.messages) if state else []

    def evict(self, user_id: str) -> None:
        """Drop a user's conversation state."""
        with self._lock:
            self._states.pop(user_id, None)

    def evict_idle(self, now: Optional[datetime] = None) -> int:
        """
        Drop conversations idle for longer than the TTL.

        Users with a turn in progress or waiting are kept.

        Returns:
            Number of conversations evicted
        """
        now = now or self._clock()
        evicted = 0

        with self._lock:
            for user_id, state in list(self._states.items()):
                if now - state.last_active <= self.ttl:
                    continue
                if user_id in self._turn_refs:
                    continue
                del self._states[user_id]
                evicted += 1

        if evicted:
            logger.info(f"Evicted {evicted} idle conversations")
        return evicted

    @contextmanager
    def turn_lock(self, user_id: str) -> Iterator[None]:
        """
        Serialize turns for one user; different users never contend.

        The lock entry lives only while some thread holds or waits for it.
        """
        with self._lock:
            lock = self._turn_locks.setdefault(user_id, threading.Lock())
            self._turn_refs[user_id] = self._turn_refs.get(user_id, 0) + 1

        try:
            with lock:
                yield
        finally:
            with self._lock:
                self._turn_refs[user_id] -= 1
                if not self._turn_refs[user_id]:
                    del self._turn_refs[user_id]
                    del self._turn_locks[user_id]

    def __len__(self) -> int:
        with self._lock:
            return len(self._states)
