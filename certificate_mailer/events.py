"""
Structured pipeline events and their subscribers.

Components publish PipelineEvent values on an EventBus. Subscribers are plain
callables; a failing subscriber is logged and never interrupts the publisher.
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Deque, Dict, List

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PipelineEvent:
    kind: str
    message: str
    level: int = logging.INFO
    data: Dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    @property
    def level_name(self) -> str:
        return logging.getLevelName(self.level)


Listener = Callable[[PipelineEvent], None]


class EventBus:
    def __init__(self):
        self._listeners: List[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns a function that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def publish(self, event: PipelineEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                logger.warning(f"Event listener {listener!r} failed on '{event.kind}': {e}")


class LogBuffer:
    """Keeps the most recent events as display lines, e.g. for a dashboard."""

    def __init__(self, max_entries: int = 500):
        self.entries: Deque[Dict[str, str]] = deque(maxlen=max_entries)

    def __call__(self, event: PipelineEvent) -> None:
        self.entries.append({
            "type": event.level_name.lower(),
            "message": event.message,
            "timestamp": event.timestamp,
        })

    def lines(self) -> List[str]:
        return [f"[{entry['timestamp']}] [{entry['type'].upper()}] {entry['message']}" for entry in self.entries]
