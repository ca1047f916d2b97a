"""UTA bridge: one session-scoped event stream over interchangeable LLM backends."""

__version__ = "1.0.0"
