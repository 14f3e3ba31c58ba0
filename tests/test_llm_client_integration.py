"""Integration tests for LLMClient with Groq API.

These tests require a valid GROQ_API_KEY in the environment.
They will be skipped if the API key is not available.
"""
import sys
sys.path.insert(0, 'backend')

import json
import os

import pytest
from services.llm_client import LLMClient, LLMResponse
from services.context_builder import ContextBuilder
from models.conversation import Message
from models.protocol import parse_model_reply, OutputReply, PlanReply, RawText


@pytest.mark.skipif(
    not os.getenv("GROQ_API_KEY"),
    reason="GROQ_API_KEY not set in environment"
)
class TestLLMClientIntegration:
    """Integration tests for LLMClient with real Groq API."""

    @pytest.fixture
    def client(self):
        """Create LLMClient instance."""
        return LLMClient()

    def test_greeting_returns_protocol_json(self, client):
        """A greeting yields a JSON reply in one of the protocol shapes."""
        prompt = ContextBuilder().build("integration-user", ["Buy milk"])
        messages = [
            Message("system", prompt),
            Message("user", json.dumps({"type": "user", "user": "hello"})),
        ]

        response = client.complete(messages)

        assert isinstance(response, LLMResponse)
        assert response.tokens_input > 0
        json.loads(response.text)
        assert isinstance(parse_model_reply(response.text), (OutputReply, PlanReply, RawText))
