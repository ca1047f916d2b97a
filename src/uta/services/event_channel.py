"""Per-session event delivery channel with bounded subscriber queues."""

import asyncio
import logging
from typing import TYPE_CHECKING, Callable, Dict, List, Optional

if TYPE_CHECKING:
    from uta.models.bridge_event import BridgeEvent


logger = logging.getLogger(__name__)

EventListener = Callable[["BridgeEvent"], None]

DEFAULT_QUEUE_SIZE = 256

_CLOSED = object()


class EventSubscription:
    """A bounded queue of events for one consumer.

    When the queue is full the oldest pending event is dropped so the
    publisher never blocks; ``dropped`` counts the losses.
    """

    def __init__(self, channel: "SessionEventChannel", maxsize: int = DEFAULT_QUEUE_SIZE):
        self._channel = channel
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._closed = False
        self.dropped = 0

    @property
    def closed(self) -> bool:
        """True once unsubscribed or the channel closed."""
        return self._closed

    def pending(self) -> int:
        """Number of queued events."""
        return self._queue.qsize()

    def _offer(self, item) -> None:
        if self._queue.full():
            self._queue.get_nowait()
            self.dropped += 1
        self._queue.put_nowait(item)

    def _deliver(self, event: "BridgeEvent") -> None:
        if not self._closed:
            self._offer(event)

    def _close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._offer(_CLOSED)

    def unsubscribe(self) -> None:
        """Detach from the channel and end iteration."""
        self._channel._remove_subscription(self)
        self._close()

    async def get(self, timeout: Optional[float] = None) -> Optional["BridgeEvent"]:
        """Wait for the next event; ``None`` once the subscription is closed."""
        if timeout is None:
            item = await self._queue.get()
        else:
            item = await asyncio.wait_for(self._queue.get(), timeout=timeout)

        if item is _CLOSED:
            # Keep the marker so later callers also see the end
            self._queue.put_nowait(_CLOSED)
            return None
        return item

    def get_nowait(self) -> Optional["BridgeEvent"]:
        """Return the next queued event without waiting, if any."""
        if self._queue.empty():
            return None
        item = self._queue.get_nowait()
        if item is _CLOSED:
            self._queue.put_nowait(_CLOSED)
            return None
        return item

    def __aiter__(self) -> "EventSubscription":
        return self

    async def __anext__(self) -> "BridgeEvent":
        event = await self.get()
        if event is None:
            raise StopAsyncIteration
        return event


class SessionEventChannel:
    """Fan-out of bridge events to queue subscribers and callback listeners."""

    def __init__(self, default_queue_size: int = DEFAULT_QUEUE_SIZE):
        self.default_queue_size = default_queue_size
        self._subscriptions: List[EventSubscription] = []
        self._listeners: Dict[int, EventListener] = {}
        self._next_listener_id = 0
        self._closed = False

    @property
    def closed(self) -> bool:
        """True once the channel has been closed."""
        return self._closed

    @property
    def listener_count(self) -> int:
        """Number of attached subscriptions and callbacks."""
        return len(self._subscriptions) + len(self._listeners)

    def subscribe(self, maxsize: Optional[int] = None) -> EventSubscription:
        """Attach a queue subscriber. A closed channel yields a closed subscription."""
        subscription = EventSubscription(self, maxsize or self.default_queue_size)
        if self._closed:
            subscription._close()
        else:
            self._subscriptions.append(subscription)
        return subscription

    def add_listener(self, listener: EventListener) -> Callable[[], None]:
        """Attach a synchronous callback; returns a function that detaches it."""
        if self._closed:
            return lambda: None

        listener_id = self._next_listener_id
        self._next_listener_id += 1
        self._listeners[listener_id] = listener

        def unsubscribe() -> None:
            self._listeners.pop(listener_id, None)

        return unsubscribe

    def publish(self, event: "BridgeEvent") -> int:
        """Deliver an event to every current listener; returns the delivery count."""
        if self._closed:
            return 0

        delivered = 0
        for subscription in list(self._subscriptions):
            subscription._deliver(event)
            delivered += 1

        for listener in list(self._listeners.values()):
            try:
                listener(event)
                delivered += 1
            except Exception:
                logger.exception("Event listener failed", extra={"event_id": event.id})

        return delivered

    def close(self) -> None:
        """Detach every listener and end all subscriptions. Idempotent."""
        if self._closed:
            return
        self._closed = True

        subscriptions, self._subscriptions = self._subscriptions, []
        for subscription in subscriptions:
            subscription._close()
        self._listeners.clear()

    def _remove_subscription(self, subscription: EventSubscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)
