"""Tool dispatcher interface and an in-process registry implementation.

The dispatcher is the bridge's only route to business capabilities. Results
are opaque; adapters wrap every call so failures become tool results.
"""

import inspect
import logging
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, List, Union

from uta.lib.errors import ToolNotFoundError


logger = logging.getLogger(__name__)

ToolHandler = Callable[[str, Dict[str, Any], str], Union[Any, Awaitable[Any]]]


class ToolDispatcher(ABC):
    """Interface for executing a named capability."""

    @abstractmethod
    async def execute_tool(
        self,
        tool: str,
        action: str,
        parameters: Dict[str, Any],
        user_id: str
    ) -> Any:
        """Run ``tool``/``action`` for a user and return its result."""
        pass


class ToolRegistry(ToolDispatcher):
    """Dispatcher backed by registered handlers keyed by tool name.

    Handlers receive ``(action, parameters, user_id)`` and may be sync or
    async.
    """

    def __init__(self):
        self._handlers: Dict[str, ToolHandler] = {}

    def register(self, tool: str, handler: ToolHandler) -> None:
        """Register (or replace) the handler for a tool."""
        if tool in self._handlers:
            logger.warning(f"Replacing handler for tool {tool}")
        self._handlers[tool] = handler

    def unregister(self, tool: str) -> bool:
        """Remove a tool handler."""
        return self._handlers.pop(tool, None) is not None

    def list_tools(self) -> List[str]:
        """Names of registered tools."""
        return sorted(self._handlers)

    async def execute_tool(
        self,
        tool: str,
        action: str,
        parameters: Dict[str, Any],
        user_id: str
    ) -> Any:
        handler = self._handlers.get(tool)
        if handler is None:
            raise ToolNotFoundError(tool)

        result = handler(action, parameters, user_id)
        if inspect.isawaitable(result):
            result = await result
        return result
