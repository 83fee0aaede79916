import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List

from loguru import logger
from pydantic import BaseModel, Field


class AgentEvent(BaseModel):
    event_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    event_type: str
    source: str
    payload: Dict[str, Any]


class EventBus:
    """A lightweight, synchronous event bus for decoupling QUILL observability."""

    def __init__(self):
        self._subscribers: List[Callable[[AgentEvent], None]] = []

    def subscribe(self, callback: Callable[[AgentEvent], None]) -> None:
        """Register a callback to be executed when an event is emitted."""
        self._subscribers.append(callback)

    def unsubscribe(self, callback: Callable[[AgentEvent], None]) -> None:
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    def emit(self, event_type: str, source: str, payload: Dict[str, Any]) -> AgentEvent:
        """Construct and broadcast an AgentEvent to all subscribers."""
        event = AgentEvent(
            event_type=event_type,
            source=source,
            payload=payload,
        )

        for subscriber in list(self._subscribers):
            try:
                subscriber(event)
            except Exception as e:
                # A failing subscriber (like a bad file write) must not stop the agent loop
                logger.warning(f"[BUS] Subscriber failed on {event_type}: {e}")

        return event


# Global default instance; sessions may inject their own
bus = EventBus()
