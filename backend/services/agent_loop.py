"""
Loop controller for the TodoBot assistant.

One user turn runs as a bounded state machine:

    AWAITING_MODEL -> (OUTPUT / raw text)          -> DONE
    AWAITING_MODEL -> (PLAN / Observation echo)    -> AWAITING_MODEL
    AWAITING_MODEL -> (action)                     -> DISPATCHING -> AWAITING_MODEL
    any state      -> (bound reached / hard error) -> FAILED

Every message produced during the turn is appended to the user's
conversation memory in the order it is produced. Turns of the same user are
serialized through ConversationStore.turn_lock().
"""

import json
import logging
import re
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional

from models.conversation import Message, SYSTEM, USER, ASSISTANT, OBSERVATION
from models.protocol import (
    ActionRequest,
    ObservationEcho,
    OutputReply,
    PlanReply,
    RawText,
    parse_model_reply,
)
from services.action_dispatcher import ActionDispatcher
from services.context_builder import ContextBuilder
from services.conversation_manager import ConversationStore
from services.event_logger import EventLogger
from services.llm_client import LLMClient, GatewayCallFailure, GatewayUnavailable
from services.response_sanitizer import ResponseSanitizer
from services.retry import call_with_retry
from services.task_store import TaskStoreClient, TaskStoreError
from config import MAX_ITERATIONS, MAX_RETRIES, RETRY_INITIAL_DELAY, QUICK_LIST_ENABLED

logger = logging.getLogger(__name__)

UNAVAILABLE_REPLY = "Sorry, the AI service is not available right now."
ERROR_REPLY = "Sorry, I encountered an error processing your request. Please try again later."
EXHAUSTED_REPLY = "Sorry, I couldn't finish that request. Could you try rephrasing it?"
STORE_ERROR_REPLY = "Sorry, I couldn't reach your task list right now. Please try again in a moment."
NO_TASKS_REPLY = "You don't have any tasks yet, {marker}! Would you like to create one? 📝"

# Only a bare listing request qualifies, e.g. "list my tasks" or "show all my todos please"
QUICK_LIST_PATTERN = re.compile(
    r"^\s*(?:please\s+)?(?:list|show|display)(?:\s+me)?(?:\s+(?:all|my|the))*\s+(?:todos?|tasks?)"
    r"(?:\s+please)?\s*[.!?]*\s*$",
    re.IGNORECASE
)
MUTATING_VERBS = re.compile(
    r"\b(?:add|create|new|update|change|edit|rename|delete|remove|mark|complete|finish|set)\b",
    re.IGNORECASE
)


class LoopState(str, Enum):
    AWAITING_MODEL = "AWAITING_MODEL"
    DISPATCHING = "DISPATCHING"
    DONE = "DONE"
    FAILED = "FAILED"


@dataclass
class TurnResult:
    """Outcome of one user turn."""
    reply: str
    state: LoopState
    iterations: int = 0
    actions: List[str] = field(default_factory=list)
    reason: Optional[str] = None


class LoopController:
    """Drives the plan -> action -> observation -> output cycle for one turn."""

    def __init__(
        self,
        llm_client: LLMClient,
        dispatcher: ActionDispatcher,
        conversations: ConversationStore,
        context_builder: ContextBuilder,
        sanitizer: ResponseSanitizer,
        task_store: TaskStoreClient,
        event_logger: Optional[EventLogger] = None,
        max_iterations: int = MAX_ITERATIONS,
        max_retries: int = MAX_RETRIES,
        retry_delay: float = RETRY_INITIAL_DELAY,
        quick_list: bool = QUICK_LIST_ENABLED,
        sleep: Callable[[float], None] = time.sleep
    ):
        """
        Args:
            llm_client: Model gateway
            dispatcher: Executes actions requested by the model
            conversations: Owner of per-user conversation memory
            context_builder: Produces the system prompt
            sanitizer: Finalizes every reply
            task_store: Source of the task titles embedded in the prompt
            event_logger: Structured event sink
            max_iterations: Upper bound on model calls per turn
            max_retries: Retries of a transient model failure
            retry_delay: Initial backoff delay in seconds
            quick_list: Answer plain "list my tasks" requests without the model
            sleep: Sleep function used between retries
        """
        if max_iterations <= 0:
            raise ValueError("max_iterations must be positive")

        self.llm_client = llm_client
        self.dispatcher = dispatcher
        self.conversations = conversations
        self.context_builder = context_builder
        self.sanitizer = sanitizer
        self.task_store = task_store
        self.events = event_logger or EventLogger(log_file_path=None)
        self.max_iterations = max_iterations
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.quick_list = quick_list
        self._sleep = sleep

    def handle_turn(self, user_id: str, text: str) -> TurnResult:
        """
        Process one natural-language request.

        Args:
            user_id: Requesting user
            text: The user's message

        Returns:
            TurnResult with the sanitized reply and the terminal state
        """
        if self.answers_without_model(text):
            with self.conversations.turn_lock(user_id):
                self.events.emit("turn_started", user_id=user_id, quick_list=True)
                return self._quick_list(user_id, text)

        if not self.llm_client.is_configured:
            logger.error("Cannot process request: LLM client not configured")
            return self._fail(user_id, UNAVAILABLE_REPLY, "gateway_unavailable", 0, [])

        with self.conversations.turn_lock(user_id):
            self.events.emit("turn_started", user_id=user_id)
            return self._run_loop(user_id, text)

    def answers_without_model(self, text: str) -> bool:
        """True when the request is served by the quick-list shortcut."""
        return self.quick_list and self._is_list_request(text)

    def _run_loop(self, user_id: str, text: str) -> TurnResult:
        titles = self._task_titles(user_id)
        system_prompt = self.context_builder.build(user_id, titles)

        history = self.conversations.get(user_id)
        messages = [Message(SYSTEM, system_prompt)] + history

        self._record(user_id, messages, Message(USER, json.dumps({"type": "user", "user": text}, ensure_ascii=False)))

        actions: List[str] = []
        state = LoopState.AWAITING_MODEL

        for iteration in range(1, self.max_iterations + 1):
            try:
                response = self._call_model(messages)
            except GatewayUnavailable:
                return self._fail(user_id, UNAVAILABLE_REPLY, "gateway_unavailable", iteration, actions)
            except GatewayCallFailure as e:
                logger.error(f"Model call failed for user {user_id}: {e.error.code} - {e.error.message}")
                return self._fail(user_id, ERROR_REPLY, e.error.code.lower(), iteration, actions)

            self._record(user_id, messages, Message(ASSISTANT, response.text))
            reply = parse_model_reply(response.text)
            self.events.emit(
                "model_reply",
                user_id=user_id,
                iteration=iteration,
                shape=type(reply).__name__,
                latency_ms=response.latency_ms
            )

            if isinstance(reply, (OutputReply, RawText)):
                state = LoopState.DONE
                return self._finish(user_id, reply.text, state, iteration, actions)

            if isinstance(reply, (PlanReply, ObservationEcho)):
                logger.debug(f"Model narrated ({type(reply).__name__}): {reply.text[:100]}")
                continue

            if isinstance(reply, ActionRequest):
                state = LoopState.DISPATCHING
                actions.append(reply.name)
                try:
                    observation = self.dispatcher.execute(reply, user_id)
                except TaskStoreError as e:
                    logger.error(f"Task store failed during {reply.name} for user {user_id}: {e}", exc_info=True)
                    return self._fail(user_id, STORE_ERROR_REPLY, "task_store_error", iteration, actions)

                self._record(user_id, messages, Message(OBSERVATION, observation.to_message_content()))
                state = LoopState.AWAITING_MODEL
                continue

            # parse_model_reply only yields the variants handled above
            raise TypeError(f"Unhandled model reply variant: {type(reply).__name__}")

        logger.warning(
            f"Loop exhausted for user {user_id} after {self.max_iterations} iterations "
            f"(last state {state.value})"
        )
        self.events.emit(
            "loop_exhausted",
            user_id=user_id,
            iterations=self.max_iterations,
            actions=actions
        )
        return self._fail(user_id, EXHAUSTED_REPLY, "loop_exhausted", self.max_iterations, actions)

    def _quick_list(self, user_id: str, text: str) -> TurnResult:
        logger.info(f"Direct list command detected from: {text[:100]}")
        try:
            tasks = call_with_retry(
                lambda: self.task_store.list_tasks(user_id),
                f"quick list for {user_id}",
                retry_on=(TaskStoreError,),
                should_retry=lambda e: e.retryable,
                max_retries=self.max_retries,
                initial_delay=self.retry_delay,
                sleep=self._sleep
            )
        except TaskStoreError as e:
            logger.error(f"Error in direct list command: {e}", exc_info=True)
            return self._fail(user_id, STORE_ERROR_REPLY, "task_store_error", 0, [])

        marker = self.sanitizer.persona_marker
        if tasks:
            raw_reply = f"Here are your tasks, {marker}! 📋\n\n{self.sanitizer.format_task_list(tasks)}"
        else:
            raw_reply = NO_TASKS_REPLY.format(marker=marker)

        reply = self.sanitizer.sanitize(raw_reply)
        self.conversations.append(user_id, Message(USER, json.dumps({"type": "user", "user": text}, ensure_ascii=False)))
        self.conversations.append(
            user_id,
            Message(ASSISTANT, json.dumps({"type": "assistant", "message": f"OUTPUT: {reply}"}, ensure_ascii=False))
        )
        self.events.emit("turn_finished", user_id=user_id, state=LoopState.DONE.value, iterations=0, actions=[])
        return TurnResult(reply=reply, state=LoopState.DONE, iterations=0, actions=[], reason="quick_list")

    def _call_model(self, messages: List[Message]):
        return call_with_retry(
            lambda: self.llm_client.complete(messages),
            "model call",
            retry_on=(GatewayCallFailure,),
            should_retry=lambda e: e.error.retryable,
            max_retries=self.max_retries,
            initial_delay=self.retry_delay,
            sleep=self._sleep
        )

    def _task_titles(self, user_id: str) -> List[str]:
        try:
            return [task.title for task in self.task_store.list_tasks(user_id)]
        except TaskStoreError as e:
            logger.warning(f"Could not load task titles for user {user_id}: {e}")
            return []

    def _record(self, user_id: str, messages: List[Message], message: Message) -> None:
        messages.append(message)
        self.conversations.append(user_id, message)

    def _finish(self, user_id: str, text: str, state: LoopState, iterations: int, actions: List[str]) -> TurnResult:
        reply = self.sanitizer.sanitize(text)
        self.events.emit(
            "turn_finished",
            user_id=user_id,
            state=state.value,
            iterations=iterations,
            actions=actions
        )
        return TurnResult(reply=reply, state=state, iterations=iterations, actions=list(actions))

    def _fail(self, user_id: str, text: str, reason: str, iterations: int, actions: List[str]) -> TurnResult:
        self.events.emit(
            "turn_failed",
            user_id=user_id,
            reason=reason,
            iterations=iterations,
            actions=actions
        )
        return TurnResult(
            reply=self.sanitizer.sanitize(text),
            state=LoopState.FAILED,
            iterations=iterations,
            actions=list(actions),
            reason=reason
        )

    @staticmethod
    def _is_list_request(text: str) -> bool:
        text = text or ""
        return bool(QUICK_LIST_PATTERN.match(text)) and not MUTATING_VERBS.search(text)
