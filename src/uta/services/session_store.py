"""Session store: identity, per-adapter history and event delivery."""

import asyncio
import hmac
import logging
from typing import Dict, Any, List, Optional

from uta.lib.logging_config import get_audit_logger
from uta.lib.metrics import MetricsCollector, get_metrics_collector
from uta.models.bridge_event import BridgeEvent
from uta.models.bridge_session import BridgeSession


logger = logging.getLogger(__name__)


class SessionStore:
    """Owns process-local bridge sessions.

    Lookups never raise: unknown ids and token mismatches return ``None`` and
    emits to unknown sessions are silently dropped, since late events after
    teardown are expected.
    """

    def __init__(
        self,
        subscriber_queue_size: int = 256,
        metrics_collector: Optional[MetricsCollector] = None
    ):
        self.logger = logging.getLogger(__name__)
        self.subscriber_queue_size = subscriber_queue_size
        self._metrics = metrics_collector or get_metrics_collector()
        self._audit = get_audit_logger()

        self._sessions: Dict[str, BridgeSession] = {}
        self._session_locks: Dict[str, asyncio.Lock] = {}

    def create_session(
        self,
        user_id: str,
        adapter_id: str,
        metadata: Optional[Dict[str, Any]] = None
    ) -> BridgeSession:
        """Create a new session with a fresh id, token and conversation id.

        Args:
            user_id: Owning user
            adapter_id: Initial runtime mode
            metadata: Optional initial metadata (copied)

        Returns:
            Created BridgeSession
        """
        session = BridgeSession(
            user_id=user_id,
            adapter=adapter_id,
            metadata=dict(metadata or {})
        )
        session.events.default_queue_size = self.subscriber_queue_size

        self._sessions[session.id] = session
        self._session_locks[session.id] = asyncio.Lock()

        self._metrics.record_session_opened(adapter_id)
        self._audit.log_session_event(
            event_type="session_created",
            session_id=session.id,
            user_id=user_id,
            adapter_id=adapter_id,
            result="success"
        )
        self.logger.info(f"Created session {session.id} on adapter {adapter_id}")
        return session

    def get(self, session_id: str) -> Optional[BridgeSession]:
        """Get session by id without touching it."""
        if not isinstance(session_id, str):
            return None
        return self._sessions.get(session_id)

    def validate(self, session_id: str, token: str) -> Optional[BridgeSession]:
        """Return the session iff the id is known and the token matches exactly.

        Args:
            session_id: Session identifier
            token: Capability secret presented by the caller

        Returns:
            BridgeSession if valid, None otherwise
        """
        session = self.get(session_id)
        if session is None or not isinstance(token, str):
            return None

        if not hmac.compare_digest(session.token.encode("utf-8"), token.encode("utf-8")):
            return None

        session.touch()
        return session

    def update_adapter(self, session_id: str, adapter_id: str) -> bool:
        """Switch the active adapter. Other adapters' histories are untouched.

        Returns:
            True if the session exists
        """
        session = self.get(session_id)
        if session is None:
            return False

        previous = session.adapter
        if previous == adapter_id:
            return True

        session.adapter = adapter_id
        self._metrics.record_session_closed(previous)
        self._metrics.record_session_opened(adapter_id)
        self._audit.log_session_event(
            event_type="adapter_switched",
            session_id=session_id,
            user_id=session.user_id,
            adapter_id=adapter_id,
            result="success",
            metadata={"from": previous, "to": adapter_id}
        )
        return True

    def emit(self, session_id: str, event: BridgeEvent) -> int:
        """Deliver an event to the session's listeners.

        Returns:
            Number of listeners reached; 0 for unknown sessions
        """
        session = self.get(session_id)
        if session is None:
            self.logger.debug(f"Dropping event {event.id} for unknown session {session_id}")
            return 0

        session.touch()
        return session.events.publish(event)

    def delete(self, session_id: str) -> bool:
        """Close the session's channel and remove it. Idempotent.

        Returns:
            True if a session was removed
        """
        session = self._sessions.pop(session_id, None)
        self._session_locks.pop(session_id, None)
        if session is None:
            return False

        session.events.close()
        self._metrics.record_session_closed(session.adapter)
        self._audit.log_session_event(
            event_type="session_deleted",
            session_id=session_id,
            user_id=session.user_id,
            adapter_id=session.adapter,
            result="success"
        )
        self.logger.info(f"Deleted session {session_id}")
        return True

    def list_active_sessions(self) -> List[Dict[str, Any]]:
        """Snapshot of live sessions, most recently active first."""
        summaries = [session.get_summary() for session in self._sessions.values()]
        summaries.sort(key=lambda summary: summary["last_active"], reverse=True)
        return summaries

    def session_lock(self, session_id: str) -> asyncio.Lock:
        """Lock that serializes turns on one session."""
        lock = self._session_locks.get(session_id)
        if lock is None:
            lock = asyncio.Lock()
            if session_id in self._sessions:
                self._session_locks[session_id] = lock
        return lock

    def cleanup_idle_sessions(self, idle_timeout_seconds: float) -> int:
        """Delete sessions idle for longer than the timeout.

        Returns:
            Number of sessions removed
        """
        expired = [
            session_id for session_id, session in self._sessions.items()
            if session.idle_seconds() > idle_timeout_seconds
        ]

        for session_id in expired:
            self.delete(session_id)

        if expired:
            self.logger.info(f"Cleaned up {len(expired)} idle sessions")

        return len(expired)

    def get_statistics(self) -> Dict[str, Any]:
        """Get session store statistics."""
        adapter_counts: Dict[str, int] = {}
        for session in self._sessions.values():
            adapter_counts[session.adapter] = adapter_counts.get(session.adapter, 0) + 1

        return {
            "total_sessions": len(self._sessions),
            "adapter_breakdown": adapter_counts,
            "subscriber_queue_size": self.subscriber_queue_size
        }

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions
