"""LLM Client for Groq API integration."""
import time
from dataclasses import dataclass, field
from typing import List, Optional, Dict, Any
from groq import Groq
from groq import RateLimitError, AuthenticationError, APIError, APITimeoutError, APIConnectionError
import logging

from models.conversation import Message
from config import GROQ_API_KEY, MODEL_NAME, MODEL_TEMPERATURE, MODEL_TIMEOUT_SECONDS

logger = logging.getLogger(__name__)


@dataclass
class LLMResponse:
    """Response from LLM generation."""
    text: str
    tokens_input: int
    tokens_output: int
    latency_ms: int
    model_used: str


@dataclass
class LLMError:
    """Structured error response from LLM operations."""
    code: str
    message: str
    details: Dict[str, Any] = field(default_factory=dict)
    retryable: bool = False


class LLMClientError(Exception):
    """Custom exception for LLM client errors with structured error information."""

    def __init__(self, error: LLMError):
        self.error = error
        super().__init__(error.message)


class GatewayUnavailable(LLMClientError):
    """The model service was never configured (no API key)."""


class GatewayCallFailure(LLMClientError):
    """A configured model call failed (network, timeout, API error)."""


class LLMClient:
    """Client for sending a conversation to the Groq chat completions API."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = MODEL_NAME,
        temperature: float = MODEL_TEMPERATURE,
        timeout: float = MODEL_TIMEOUT_SECONDS
    ):
        """
        Initialize LLM client with Groq API key.

        A missing key leaves the client unconfigured: is_configured is False
        and complete() raises GatewayUnavailable.

        Args:
            api_key: Groq API key (defaults to GROQ_API_KEY from environment)
            model: Chat model name
            temperature: Sampling temperature
            timeout: Per-request timeout in seconds
        """
        self.api_key = api_key or GROQ_API_KEY
        self.model = model
        self.temperature = temperature
        self.timeout = timeout
        self.client = None

        if not self.api_key:
            logger.warning("LLMClient not configured - missing GROQ_API_KEY")
            return

        # Retries are a policy of the caller, not of the SDK
        self.client = Groq(api_key=self.api_key, timeout=timeout, max_retries=0)
        logger.info(f"LLMClient initialized successfully (model={model})")

    @property
    def is_configured(self) -> bool:
        return self.client is not None

    def complete(
        self,
        messages: List[Message],
        response_format: str = "json_object",
        temperature: Optional[float] = None
    ) -> LLMResponse:
        """
        Send the conversation to Groq and return the model's reply.

        Args:
            messages: Ordered conversation, system prompt first
            response_format: Groq response format type
            temperature: Overrides the client's default temperature

        Returns:
            LLMResponse with text, token counts, and latency

        Raises:
            GatewayUnavailable: If the client has no API key
            GatewayCallFailure: Structured error with code, message, and details
        """
        if not self.is_configured:
            raise GatewayUnavailable(LLMError(
                code="NOT_CONFIGURED",
                message="The AI service is not configured. Set GROQ_API_KEY.",
                details={"model": self.model}
            ))

        model = self.model
        temperature = self.temperature if temperature is None else temperature
        start_time = time.time()

        try:
            logger.debug(f"Calling model {model} with {len(messages)} messages")

            # Call Groq API
            response = self.client.chat.completions.create(
                model=model,
                messages=[m.to_chat_message() for m in messages],
                response_format={"type": response_format},
                temperature=temperature
            )

            # Calculate latency
            latency_ms = int((time.time() - start_time) * 1000)

            # Extract response text
            text = response.choices[0].message.content

            # Extract token usage
            tokens_input = response.usage.prompt_tokens
            tokens_output = response.usage.completion_tokens

            logger.info(
                f"Model replied: model={model}, "
                f"input_tokens={tokens_input}, output_tokens={tokens_output}, "
                f"latency={latency_ms}ms"
            )

        except RateLimitError as e:
            raise self._failure(
                "RATE_LIMIT_ERROR",
                "Rate limit exceeded. Please try again in a few moments.",
                e, start_time, retryable=True, retry_after=60
            )

        except AuthenticationError as e:
            raise self._failure(
                "AUTHENTICATION_ERROR",
                "Authentication failed. Please check your API key.",
                e, start_time, retryable=False
            )

        except APITimeoutError as e:
            raise self._failure(
                "TIMEOUT_ERROR",
                "Request timed out. Please try again.",
                e, start_time, retryable=True
            )

        except APIConnectionError as e:
            raise self._failure(
                "CONNECTION_ERROR",
                "Could not reach the AI service.",
                e, start_time, retryable=True
            )

        except APIError as e:
            raise self._failure(
                "API_ERROR",
                f"Groq API error: {str(e)}",
                e, start_time, retryable=True
            )

        except Exception as e:
            raise self._failure(
                "UNKNOWN_ERROR",
                f"Unexpected error during generation: {str(e)}",
                e, start_time, retryable=False, error_type=type(e).__name__
            )

        if not text:
            raise GatewayCallFailure(LLMError(
                code="EMPTY_RESPONSE",
                message="The AI service returned an empty reply.",
                details={"model": model, "latency_ms": latency_ms},
                retryable=True
            ))

        return LLMResponse(
            text=text,
            tokens_input=tokens_input,
            tokens_output=tokens_output,
            latency_ms=latency_ms,
            model_used=model
        )

    def _failure(
        self,
        code: str,
        message: str,
        exc: Exception,
        start_time: float,
        retryable: bool,
        **details: Any
    ) -> GatewayCallFailure:
        latency_ms = int((time.time() - start_time) * 1000)
        error = LLMError(
            code=code,
            message=message,
            details={
                "model": self.model,
                "latency_ms": latency_ms,
                "original_error": str(exc),
                **details
            },
            retryable=retryable
        )
        logger.error(
            f"{code}: model={self.model}, latency={latency_ms}ms, error={exc}",
            exc_info=True,
            extra={"extra": {"error_code": error.code, "error_details": error.details}}
        )
        return GatewayCallFailure(error)
