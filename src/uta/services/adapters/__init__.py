"""Runtime-mode adapters behind the shared BaseAdapter contract."""

from .base_adapter import BaseAdapter, TurnContext
from .local_adapter import LocalAdapter
from .claude_api_adapter import ClaudeApiAdapter
from .openai_adapter import OpenAIAdapter
from .ollama_adapter import OllamaAdapter

__all__ = [
    "BaseAdapter",
    "ClaudeApiAdapter",
    "LocalAdapter",
    "OllamaAdapter",
    "OpenAIAdapter",
    "TurnContext",
]
