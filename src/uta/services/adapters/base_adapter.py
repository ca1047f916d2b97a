"""Base adapter contract with shared turn helpers."""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from opentelemetry.trace import Status, StatusCode

from uta.lib.errors import ToolExecutionError
from uta.lib.metrics import MetricsCollector, get_metrics_collector
from uta.lib.observability import create_tool_span
from uta.models.adapter_models import AdapterMessage, AdapterResult, AdapterStatus
from uta.models.bridge_event import BridgeEvent
from uta.models.bridge_session import BridgeSession
from uta.services.history import HistoryRecord, is_plain_user_message, trim_history
from uta.services.tool_dispatcher import ToolDispatcher


logger = logging.getLogger(__name__)

EmitCallback = Callable[[BridgeEvent], Any]

TOOL_FAILURE_MESSAGE = "Tool execution failed"


@dataclass
class TurnContext:
    """Everything one turn may touch. Adapters keep no per-session fields."""

    session: BridgeSession
    user_id: str
    emit: Callable[[BridgeEvent], None]


class BaseAdapter(ABC):
    """Base class for all runtime-mode adapters.

    Subclasses implement ``_run_turn``; ``process_message`` builds the turn
    context and guards the caller's emit callback.
    """

    id: str = ""
    history_key: Optional[str] = None
    max_history: int = 30

    def __init__(
        self,
        dispatcher: ToolDispatcher,
        metrics_collector: Optional[MetricsCollector] = None
    ):
        self.dispatcher = dispatcher
        self.logger = logging.getLogger(f"{__name__}.{self.id}")
        self._metrics = metrics_collector or get_metrics_collector()

    @abstractmethod
    def get_status(self) -> AdapterStatus:
        """Report availability. Must not change between turns."""
        pass

    @abstractmethod
    async def _run_turn(self, ctx: TurnContext, message: AdapterMessage) -> AdapterResult:
        """Run the provider-specific turn loop."""
        pass

    async def aclose(self) -> None:
        """Release provider resources. Adapters owning a client override this."""
        pass

    async def process_message(
        self,
        session: BridgeSession,
        message: AdapterMessage,
        emit: Optional[EmitCallback] = None
    ) -> AdapterResult:
        """Process one user message.

        Args:
            session: Session being serviced
            message: Inbound user message
            emit: Optional callback for partial and status events

        Returns:
            AdapterResult holding the terminal events
        """
        ctx = TurnContext(session=session, user_id=session.user_id, emit=self._safe_emit(emit))
        return await self._run_turn(ctx, message)

    def _safe_emit(self, emit: Optional[EmitCallback]) -> Callable[[BridgeEvent], None]:
        if emit is None:
            return lambda event: None

        def guarded(event: BridgeEvent) -> None:
            try:
                emit(event)
            except Exception:
                self.logger.exception("Emit callback failed", extra={"event_id": event.id})

        return guarded

    async def _execute_tool(
        self,
        ctx: TurnContext,
        tool: str,
        action: str,
        parameters: Dict[str, Any]
    ) -> Any:
        """Call the dispatcher; failures come back as error results, never raise."""
        span = create_tool_span(self.id, tool, action, ctx.session.id)
        success = False

        try:
            result = await self.dispatcher.execute_tool(tool, action, parameters, ctx.user_id)
            success = True
            return result
        except ToolExecutionError as e:
            self.logger.error(
                f"Tool {tool}.{action} failed: {e}",
                extra={"session_id": ctx.session.id, "tool": tool, "action": action}
            )
            span.record_exception(e)
            span.set_status(Status(StatusCode.ERROR, str(e)))
            return {"status": "error", "message": e.user_message}
        except Exception as e:
            self.logger.exception(
                f"Tool {tool}.{action} raised unexpectedly",
                extra={"session_id": ctx.session.id, "tool": tool, "action": action}
            )
            span.record_exception(e)
            span.set_status(Status(StatusCode.ERROR, type(e).__name__))
            return {"status": "error", "message": TOOL_FAILURE_MESSAGE}
        finally:
            span.end()
            self._metrics.record_tool_call(self.id, tool, action, success)

    def _history(self, session: BridgeSession) -> List[HistoryRecord]:
        """Working copy of this adapter's history for the session."""
        stored = session.metadata.get(self.history_key)
        return list(stored) if isinstance(stored, list) else []

    def _store_history(self, session: BridgeSession, history: List[HistoryRecord]) -> None:
        """Trim and persist this adapter's history into session metadata."""
        session.metadata[self.history_key] = trim_history(history, self.max_history, self._is_turn_start)

    def _is_turn_start(self, record: HistoryRecord) -> bool:
        return is_plain_user_message(record)
