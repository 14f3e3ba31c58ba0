"""Services for the TodoBot assistant."""
from .task_store import TaskStoreClient, TaskStoreError, TaskNotFoundError, TaskValidationError
from .conversation_manager import ConversationStore
from .context_builder import ContextBuilder
from .llm_client import LLMClient, LLMResponse, LLMError, LLMClientError, GatewayUnavailable, GatewayCallFailure
from .action_dispatcher import ActionDispatcher
from .response_sanitizer import ResponseSanitizer
from .event_logger import EventLogger
from .agent_loop import LoopController, LoopState, TurnResult

__all__ = ['TaskStoreClient', 'TaskStoreError', 'TaskNotFoundError', 'TaskValidationError', 'ConversationStore', 'ContextBuilder', 'LLMClient', 'LLMResponse', 'LLMError', 'LLMClientError', 'GatewayUnavailable', 'GatewayCallFailure', 'ActionDispatcher', 'ResponseSanitizer', 'EventLogger', 'LoopController', 'LoopState', 'TurnResult']
