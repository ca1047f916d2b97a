"""
Bridge router: the single entry point for the transport layer.

Owns the adapter registry, session creation with availability-based
selection, per-session turn serialization, telemetry of every adapter call
and optional failover to the next available adapter.
"""

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from opentelemetry.trace import Status, StatusCode

from uta.lib.config import BridgeConfig, RuntimeConfig
from uta.lib.errors import NoAdapterAvailableError, SessionNotFoundError
from uta.lib.logging_config import get_audit_logger
from uta.lib.metrics import MetricsCollector, get_metrics_collector
from uta.lib.observability import create_turn_span
from uta.models.adapter_models import AdapterInvocation, AdapterMessage, AdapterResult, AdapterStatus
from uta.models.bridge_event import BridgeEvent
from uta.models.bridge_session import BridgeSession
from uta.services.adapters import (
    BaseAdapter,
    ClaudeApiAdapter,
    LocalAdapter,
    OllamaAdapter,
    OpenAIAdapter,
)
from uta.services.adapters.base_adapter import EmitCallback
from uta.services.event_factory import create_error_event, create_tool_result_event, create_user_event
from uta.services.intent_parser import IntentParser
from uta.services.session_store import SessionStore
from uta.services.telemetry import AdapterTelemetry
from uta.services.tool_dispatcher import ToolDispatcher


logger = logging.getLogger(__name__)

FALLBACK_MODE = "local"
TURN_FAILURE_MESSAGE = "Unable to process the message right now. Please try again."


@dataclass
class RouterResult:
    """Terminal result of a routed turn and the adapter that produced it."""

    adapter_id: str
    result: AdapterResult

    @property
    def events(self) -> List[BridgeEvent]:
        return self.result.events


class BridgeRouter:
    """Dispatches turns to the adapter registered for each session."""

    def __init__(
        self,
        runtime: Optional[RuntimeConfig] = None,
        store: Optional[SessionStore] = None,
        telemetry: Optional[AdapterTelemetry] = None,
        idle_timeout_seconds: int = 3600
    ):
        self.runtime = runtime or RuntimeConfig()
        self.store = store or SessionStore()
        self.telemetry = telemetry or AdapterTelemetry()
        self.idle_timeout_seconds = idle_timeout_seconds
        self.logger = logging.getLogger(__name__)
        self._audit = get_audit_logger()
        self._adapters: Dict[str, BaseAdapter] = {}

    def register(self, adapter: BaseAdapter) -> None:
        """Register an adapter under its id, replacing any previous one."""
        self._adapters[adapter.id] = adapter
        self.logger.info(f"Registered adapter {adapter.id}")

    def get_adapter(self, adapter_id: str) -> Optional[BaseAdapter]:
        return self._adapters.get(adapter_id)

    def get_statuses(self) -> List[AdapterStatus]:
        """Current status of every registered adapter."""
        return [adapter.get_status() for adapter in self._adapters.values()]

    def _priority_order(self, preferred: Optional[str] = None) -> List[str]:
        order: List[str] = []
        for adapter_id in [preferred, *self.runtime.adapter_priority, FALLBACK_MODE]:
            if adapter_id and adapter_id not in order:
                order.append(adapter_id)
        return order

    def select_adapter(self, preferred: Optional[str] = None) -> AdapterStatus:
        """First available adapter in priority order, starting from ``preferred``.

        Raises:
            NoAdapterAvailableError: If no registered adapter is available
        """
        for adapter_id in self._priority_order(preferred):
            adapter = self._adapters.get(adapter_id)
            if adapter is None:
                continue
            status = adapter.get_status()
            if status.available:
                return status

        raise NoAdapterAvailableError("No runtime adapter is available")

    def create_session(
        self,
        user_id: str,
        adapter: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> BridgeSession:
        """Create a session on the preferred (or default) adapter, falling back when unavailable."""
        preferred = adapter or self.runtime.default_mode
        selected = self.select_adapter(preferred)

        if selected.id != preferred:
            self.logger.warning(
                f"Adapter {preferred} unavailable, using {selected.id}",
                extra={"user_id": user_id, "preferred": preferred, "selected": selected.id}
            )

        return self.store.create_session(user_id, selected.id, metadata)

    async def process_message(
        self,
        session: BridgeSession,
        message: Union[AdapterMessage, str],
        emit: Optional[EmitCallback] = None
    ) -> RouterResult:
        """Run one turn on the session's adapter.

        Turns on the same session are serialized. The session's own adapter
        is always attempted; with failover enabled a failure moves the turn,
        and the session, to the next available adapter.
        """
        if isinstance(message, str):
            message = AdapterMessage(content=message)

        async with self.store.session_lock(session.id):
            primary = session.adapter
            try:
                result = await self._invoke(primary, session, message, emit)
                return RouterResult(adapter_id=primary, result=result)
            except Exception as primary_error:
                if not self.runtime.failover_enabled:
                    raise
                return await self._failover(session, message, emit, primary, primary_error)

    async def _failover(
        self,
        session: BridgeSession,
        message: AdapterMessage,
        emit: Optional[EmitCallback],
        failed: str,
        error: Exception
    ) -> RouterResult:
        for adapter_id in self._priority_order():
            if adapter_id == failed:
                continue
            adapter = self._adapters.get(adapter_id)
            if adapter is None or not adapter.get_status().available:
                continue

            self.logger.warning(
                f"Failing over session {session.id} from {failed} to {adapter_id}",
                extra={"session_id": session.id, "from": failed, "to": adapter_id}
            )
            try:
                result = await self._invoke(adapter_id, session, message, emit)
            except Exception:
                continue

            self.store.update_adapter(session.id, adapter_id)
            self._audit.log_adapter_event(
                event_type="failover",
                adapter_id=adapter_id,
                session_id=session.id,
                result="success",
                metadata={"from": failed, "error": type(error).__name__}
            )
            return RouterResult(adapter_id=adapter_id, result=result)

        raise error

    async def _invoke(
        self,
        adapter_id: str,
        session: BridgeSession,
        message: AdapterMessage,
        emit: Optional[EmitCallback]
    ) -> AdapterResult:
        adapter = self._adapters.get(adapter_id)
        if adapter is None:
            raise NoAdapterAvailableError(f"No adapter registered for runtime mode {adapter_id}")

        span = create_turn_span(session.id, adapter_id)
        start = time.perf_counter()

        try:
            result = await adapter.process_message(session, message, emit)
        except Exception as e:
            duration_ms = int((time.perf_counter() - start) * 1000)
            self.telemetry.record_invocation(AdapterInvocation(
                adapter_id=adapter_id,
                duration_ms=duration_ms,
                success=False,
                error=type(e).__name__
            ))
            self.logger.error(
                f"Adapter {adapter_id} failed for session {session.id}: {e}",
                extra={"session_id": session.id, "adapter_id": adapter_id, "duration_ms": duration_ms}
            )
            span.record_exception(e)
            span.set_status(Status(StatusCode.ERROR, type(e).__name__))
            raise
        finally:
            span.end()

        self.telemetry.record_invocation(AdapterInvocation(
            adapter_id=adapter_id,
            duration_ms=int((time.perf_counter() - start) * 1000),
            success=True
        ))
        return result

    def _require_session(self, session_id: str, token: str) -> BridgeSession:
        session = self.store.validate(session_id, token)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    async def handle_message(
        self,
        session_id: str,
        token: str,
        message: Union[AdapterMessage, str]
    ) -> RouterResult:
        """Transport entry point: validate, echo, route, then publish terminal events.

        Raises:
            SessionNotFoundError: If the id is unknown or the token is wrong
        """
        session = self._require_session(session_id, token)
        if isinstance(message, str):
            message = AdapterMessage(content=message)

        self.store.emit(session.id, create_user_event(message.content, message.voice_hint))

        try:
            routed = await self.process_message(
                session, message, emit=lambda event: self.store.emit(session.id, event)
            )
        except Exception:
            self.store.emit(session.id, create_error_event(TURN_FAILURE_MESSAGE))
            raise

        for event in routed.events:
            self.store.emit(session.id, event)
        return routed

    def publish_tool_result(self, session_id: str, token: str, tool_name: str, payload: Any) -> BridgeEvent:
        """Push an externally produced tool result into a session."""
        session = self._require_session(session_id, token)
        action = payload.get("action", "external") if isinstance(payload, dict) else "external"

        event = create_tool_result_event(tool_name, action, payload)
        self.store.emit(session.id, event)
        return event

    def delete_session(self, session_id: str, token: str) -> bool:
        """Tear down a session after validating its token."""
        self._require_session(session_id, token)
        return self.store.delete(session_id)

    def cleanup_idle_sessions(self) -> int:
        """Evict sessions idle past the configured timeout."""
        return self.store.cleanup_idle_sessions(self.idle_timeout_seconds)

    async def aclose(self) -> None:
        """Close every registered adapter."""
        for adapter in self._adapters.values():
            try:
                await adapter.aclose()
            except Exception:
                self.logger.exception(f"Failed to close adapter {adapter.id}")

    def heartbeat(self) -> Dict[str, Any]:
        """Operational snapshot for health endpoints."""
        statuses = self.get_statuses()
        return {
            "status": "ok" if any(status.available for status in statuses) else "degraded",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "active_sessions": len(self.store),
            "runtime": self.runtime.default_mode,
            "adapters": [status.model_dump() for status in statuses],
            "telemetry": self.telemetry.snapshot().model_dump(mode="json")
        }


def build_router(
    config: BridgeConfig,
    dispatcher: ToolDispatcher,
    intent_parser: Optional[IntentParser] = None,
    claude_client: Any = None,
    openai_client: Any = None,
    ollama_client: Any = None,
    metrics_collector: Optional[MetricsCollector] = None
) -> BridgeRouter:
    """Construct a router with all four adapters from configuration.

    Provider clients may be injected; otherwise each adapter builds its own
    from the provider configuration.
    """
    metrics_collector = metrics_collector or get_metrics_collector()
    providers = config.providers

    router = BridgeRouter(
        runtime=config.runtime,
        store=SessionStore(config.session.subscriber_queue_size, metrics_collector),
        telemetry=AdapterTelemetry(config.telemetry.recent_limit, metrics_collector),
        idle_timeout_seconds=config.session.idle_timeout_seconds
    )

    router.register(LocalAdapter(dispatcher, intent_parser, metrics_collector))
    router.register(ClaudeApiAdapter(
        dispatcher,
        config=providers.claude,
        client=claude_client,
        max_tool_rounds=providers.max_tool_rounds,
        metrics_collector=metrics_collector
    ))
    router.register(OpenAIAdapter(
        dispatcher,
        config=providers.openai,
        client=openai_client,
        max_tool_rounds=providers.max_tool_rounds,
        metrics_collector=metrics_collector
    ))
    router.register(OllamaAdapter(
        dispatcher,
        config=providers.ollama,
        client=ollama_client,
        metrics_collector=metrics_collector
    ))

    return router
