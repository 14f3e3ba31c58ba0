"""Unit tests for LLMClient."""
import sys
sys.path.insert(0, 'backend')

import pytest
from unittest.mock import Mock, patch
from services.llm_client import (
    LLMClient,
    LLMResponse,
    LLMClientError,
    GatewayUnavailable,
    GatewayCallFailure,
)
from models.conversation import Message
from groq import RateLimitError, AuthenticationError, APIError, APITimeoutError, APIConnectionError


MESSAGES = [
    Message("system", "You are TodoBot"),
    Message("user", '{"type":"user","user":"hello"}'),
    Message("observation", '{"type":"assistant","message":"Observation: {}"}'),
]


def _mock_groq(mock_groq_class, content='{"type":"assistant","message":"OUTPUT: Hi"}'):
    mock_response = Mock()
    mock_response.choices = [Mock(message=Mock(content=content))]
    mock_response.usage = Mock(prompt_tokens=150, completion_tokens=12)

    mock_client = Mock()
    mock_client.chat.completions.create.return_value = mock_response
    mock_groq_class.return_value = mock_client
    return mock_client


class TestLLMClient:
    """Test suite for LLMClient class."""

    @patch('services.llm_client.Groq')
    def test_initialization_with_api_key(self, mock_groq_class):
        """Test LLMClient initializes with provided API key."""
        client = LLMClient(api_key="test_key", timeout=30)
        assert client.api_key == "test_key"
        assert client.is_configured
        mock_groq_class.assert_called_once_with(api_key="test_key", timeout=30, max_retries=0)

    def test_initialization_without_api_key_is_unconfigured(self):
        """Test LLMClient without a key stays unconfigured instead of failing."""
        with patch('services.llm_client.GROQ_API_KEY', None):
            client = LLMClient()
        assert not client.is_configured

    def test_complete_without_api_key_raises_unavailable(self):
        """Test complete() raises GatewayUnavailable when never configured."""
        with patch('services.llm_client.GROQ_API_KEY', None):
            client = LLMClient()

        with pytest.raises(GatewayUnavailable) as exc_info:
            client.complete(MESSAGES)

        assert exc_info.value.error.code == "NOT_CONFIGURED"
        assert isinstance(exc_info.value, LLMClientError)

    @patch('services.llm_client.Groq')
    def test_complete_success(self, mock_groq_class):
        """Test successful completion."""
        _mock_groq(mock_groq_class)

        client = LLMClient(api_key="test_key", model="llama-3.3-70b-versatile")
        response = client.complete(MESSAGES)

        assert isinstance(response, LLMResponse)
        assert response.text == '{"type":"assistant","message":"OUTPUT: Hi"}'
        assert response.tokens_input == 150
        assert response.tokens_output == 12
        assert response.model_used == "llama-3.3-70b-versatile"
        assert response.latency_ms >= 0

    @patch('services.llm_client.Groq')
    def test_complete_sends_json_mode_and_chat_roles(self, mock_groq_class):
        """Test request shape: JSON mode, temperature, observation sent as user."""
        mock_client = _mock_groq(mock_groq_class)

        client = LLMClient(api_key="test_key", temperature=0.7)
        client.complete(MESSAGES)

        kwargs = mock_client.chat.completions.create.call_args.kwargs
        assert kwargs["response_format"] == {"type": "json_object"}
        assert kwargs["temperature"] == 0.7
        assert [m["role"] for m in kwargs["messages"]] == ["system", "user", "user"]

    @patch('services.llm_client.Groq')
    def test_complete_temperature_override(self, mock_groq_class):
        """Test per-call temperature override."""
        mock_client = _mock_groq(mock_groq_class)

        client = LLMClient(api_key="test_key")
        client.complete(MESSAGES, temperature=0.0)

        assert mock_client.chat.completions.create.call_args.kwargs["temperature"] == 0.0

    @patch('services.llm_client.Groq')
    def test_complete_empty_reply_is_retryable_failure(self, mock_groq_class):
        """Test that an empty reply raises a retryable failure."""
        _mock_groq(mock_groq_class, content="")

        client = LLMClient(api_key="test_key")

        with pytest.raises(GatewayCallFailure) as exc_info:
            client.complete(MESSAGES)

        assert exc_info.value.error.code == "EMPTY_RESPONSE"
        assert exc_info.value.error.retryable

    @patch('services.llm_client.Groq')
    def test_complete_handles_unknown_error(self, mock_groq_class):
        """Test that unexpected errors are raised with structured error."""
        mock_client = Mock()
        mock_client.chat.completions.create.side_effect = Exception("API Error")
        mock_groq_class.return_value = mock_client

        client = LLMClient(api_key="test_key", model="llama-3.3-70b-versatile")

        with pytest.raises(GatewayCallFailure) as exc_info:
            client.complete(MESSAGES)

        error = exc_info.value.error
        assert error.code == "UNKNOWN_ERROR"
        assert "Unexpected error" in error.message
        assert error.details["model"] == "llama-3.3-70b-versatile"
        assert not error.retryable

    @patch('services.llm_client.Groq')
    def test_complete_handles_rate_limit_error(self, mock_groq_class):
        """Test that rate limit errors are retryable with a retry hint."""
        mock_client = Mock()
        mock_client.chat.completions.create.side_effect = RateLimitError(
            message="Rate limit exceeded",
            response=Mock(status_code=429),
            body=None
        )
        mock_groq_class.return_value = mock_client

        client = LLMClient(api_key="test_key")

        with pytest.raises(GatewayCallFailure) as exc_info:
            client.complete(MESSAGES)

        error = exc_info.value.error
        assert error.code == "RATE_LIMIT_ERROR"
        assert "Rate limit exceeded" in error.message
        assert error.details["retry_after"] == 60
        assert error.retryable

    @patch('services.llm_client.Groq')
    def test_complete_handles_authentication_error(self, mock_groq_class):
        """Test that authentication errors are not retryable."""
        mock_client = Mock()
        mock_client.chat.completions.create.side_effect = AuthenticationError(
            message="Invalid API key",
            response=Mock(status_code=401),
            body=None
        )
        mock_groq_class.return_value = mock_client

        client = LLMClient(api_key="test_key")

        with pytest.raises(GatewayCallFailure) as exc_info:
            client.complete(MESSAGES)

        error = exc_info.value.error
        assert error.code == "AUTHENTICATION_ERROR"
        assert "Authentication failed" in error.message
        assert not error.retryable

    @patch('services.llm_client.Groq')
    def test_complete_handles_timeout_error(self, mock_groq_class):
        """Test that timeout errors are retryable."""
        mock_client = Mock()
        mock_client.chat.completions.create.side_effect = APITimeoutError(request=Mock())
        mock_groq_class.return_value = mock_client

        client = LLMClient(api_key="test_key")

        with pytest.raises(GatewayCallFailure) as exc_info:
            client.complete(MESSAGES)

        error = exc_info.value.error
        assert error.code == "TIMEOUT_ERROR"
        assert "timed out" in error.message
        assert error.retryable

    @patch('services.llm_client.Groq')
    def test_complete_handles_connection_error(self, mock_groq_class):
        """Test that connection errors are retryable."""
        mock_client = Mock()
        mock_client.chat.completions.create.side_effect = APIConnectionError(request=Mock())
        mock_groq_class.return_value = mock_client

        client = LLMClient(api_key="test_key")

        with pytest.raises(GatewayCallFailure) as exc_info:
            client.complete(MESSAGES)

        assert exc_info.value.error.code == "CONNECTION_ERROR"
        assert exc_info.value.error.retryable

    @patch('services.llm_client.Groq')
    def test_complete_handles_generic_api_error(self, mock_groq_class):
        """Test that generic API errors are handled properly."""
        mock_client = Mock()
        mock_client.chat.completions.create.side_effect = APIError(
            message="Service unavailable",
            request=Mock(),
            body=None
        )
        mock_groq_class.return_value = mock_client

        client = LLMClient(api_key="test_key")

        with pytest.raises(GatewayCallFailure) as exc_info:
            client.complete(MESSAGES)

        error = exc_info.value.error
        assert error.code == "API_ERROR"
        assert "Groq API error" in error.message

    @patch('services.llm_client.Groq')
    def test_error_includes_latency(self, mock_groq_class):
        """Test that errors include latency measurement."""
        mock_client = Mock()
        mock_client.chat.completions.create.side_effect = RateLimitError(
            message="Rate limit exceeded",
            response=Mock(status_code=429),
            body=None
        )
        mock_groq_class.return_value = mock_client

        client = LLMClient(api_key="test_key")

        with pytest.raises(GatewayCallFailure) as exc_info:
            client.complete(MESSAGES)

        error = exc_info.value.error
        assert isinstance(error.details["latency_ms"], int)
        assert error.details["latency_ms"] >= 0
