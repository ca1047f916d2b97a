"""Exception hierarchy for the UTA bridge."""

from typing import Optional


class BridgeError(Exception):
    """Base class for all bridge errors."""
    pass


class ConfigurationError(BridgeError):
    """Exception raised for configuration-related errors."""
    pass


class AdapterUnavailableError(BridgeError):
    """Raised when an adapter is invoked without the configuration it needs."""

    def __init__(self, adapter_id: str, detail: str):
        self.adapter_id = adapter_id
        self.detail = detail
        super().__init__(f"Adapter {adapter_id} unavailable: {detail}")


class NoAdapterAvailableError(BridgeError):
    """Raised when no registered adapter can service a session."""
    pass


class ProtocolError(BridgeError):
    """Raised when a provider response cannot be interpreted."""

    def __init__(self, message: str, adapter_id: Optional[str] = None, attempts: int = 1):
        self.adapter_id = adapter_id
        self.attempts = attempts
        super().__init__(message)


class ToolExecutionError(BridgeError):
    """Raised by tool dispatchers when a capability fails.

    ``user_message`` is safe to feed back into the conversation.
    """

    def __init__(self, message: str, user_message: Optional[str] = None):
        self.user_message = user_message or message
        super().__init__(message)


class ToolNotFoundError(ToolExecutionError):
    """Raised when the dispatcher has no handler for a tool."""

    def __init__(self, tool: str):
        self.tool = tool
        super().__init__(f"Unknown tool: {tool}", user_message=f"Tool '{tool}' is not available")


class SessionNotFoundError(BridgeError):
    """Raised by transport-facing helpers for unknown sessions or bad tokens."""

    def __init__(self, session_id: Optional[str]):
        self.session_id = session_id
        super().__init__("Invalid session or token")
