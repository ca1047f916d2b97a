"""Shared fixtures for bridge tests."""

import pytest
from unittest.mock import AsyncMock

from uta.lib.config import (
    BridgeConfig,
    ClaudeProviderConfig,
    OllamaProviderConfig,
    OpenAIProviderConfig,
)
from uta.services.session_store import SessionStore


@pytest.fixture
def session_store():
    """Fresh in-memory session store."""
    return SessionStore(subscriber_queue_size=16)


@pytest.fixture
def dispatcher():
    """Tool dispatcher double returning a canned result."""
    mock = AsyncMock()
    mock.execute_tool.return_value = {"content": [{"type": "text", "text": "12 open deals"}]}
    return mock


@pytest.fixture
def recorded_events():
    """List collecting emitted events; pass ``.append`` as the emit callback."""
    return []


@pytest.fixture
def claude_config():
    return ClaudeProviderConfig(api_key="test-key", max_history=30)


@pytest.fixture
def openai_config():
    return OpenAIProviderConfig(api_key="test-key", max_history=30)


@pytest.fixture
def ollama_config():
    return OllamaProviderConfig(base_url="http://ollama.test", model="llama-test", max_history=40)


@pytest.fixture
def bridge_config():
    """Configuration with every provider configured."""
    return BridgeConfig(
        providers={
            "claude": {"api_key": "test-key"},
            "openai": {"api_key": "test-key"},
            "ollama": {"base_url": "http://ollama.test", "model": "llama-test"},
        }
    )
