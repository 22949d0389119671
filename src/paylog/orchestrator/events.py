"""Pipeline lifecycle events and their broadcast channel."""
import queue
import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from ..utils.logger import get_logger

logger = get_logger()


class EventKind(Enum):
    FINANCIAL_MESSAGE_DETECTED = "financial_message_detected"
    NOT_FINANCIAL = "not_financial"
    PARSED = "parsed"
    PARSING_FAILED = "parsing_failed"
    VALIDATION_FAILED = "validation_failed"
    DUPLICATE_DETECTED = "duplicate_detected"
    PERSISTED = "persisted"
    QUEUED = "queued"
    SYNC_COMPLETED = "sync_completed"
    ERROR = "error"


@dataclass(frozen=True)
class PipelineEvent:
    kind: EventKind
    sender: Optional[str] = None
    transaction_id: Optional[str] = None
    dedup_hash: Optional[str] = None
    detail: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.now)


class Subscription:
    """One consumer's bounded view of the event stream."""

    def __init__(self, bus: "EventBus", maxsize: int):
        self._bus = bus
        self._queue: "queue.Queue[PipelineEvent]" = queue.Queue(maxsize=maxsize)
        self.dropped = 0

    def get(self, timeout: Optional[float] = None) -> Optional[PipelineEvent]:
        """Next event, or None if none arrives within timeout."""
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def drain(self) -> List[PipelineEvent]:
        """All events currently buffered, without waiting."""
        events = []
        while True:
            try:
                events.append(self._queue.get_nowait())
            except queue.Empty:
                return events

    def close(self) -> None:
        self._bus.unsubscribe(self)

    def _offer(self, event: PipelineEvent) -> None:
        try:
            self._queue.put_nowait(event)
        except queue.Full:
            self.dropped += 1


class EventBus:
    """Broadcast channel: every subscriber receives every event.

    Publishing never blocks; a subscriber whose buffer is full loses the event
    and its ``dropped`` counter goes up.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._subscribers: List[Subscription] = []

    def subscribe(self, maxsize: int = 1000) -> Subscription:
        subscription = Subscription(self, maxsize)
        with self._lock:
            self._subscribers.append(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            if subscription in self._subscribers:
                self._subscribers.remove(subscription)

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def publish(self, event: PipelineEvent) -> None:
        with self._lock:
            subscribers = list(self._subscribers)

        for subscription in subscribers:
            subscription._offer(event)

        logger.debug(f"Event {event.kind.value} published to {len(subscribers)} subscriber(s)")

    def emit(self, kind: EventKind, **kwargs) -> PipelineEvent:
        event = PipelineEvent(kind=kind, **kwargs)
        self.publish(event)
        return event
