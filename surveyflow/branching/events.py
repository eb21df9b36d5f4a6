"""
Session-progress events.

The flow engine announces state changes; an external broadcaster (socket
room, webhook, log shipper) subscribes and relays them. Transport is not our
concern, and a failing subscriber never affects the session that published.
"""

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional


logger = logging.getLogger(__name__)


class FlowEventType(str, Enum):
    QUESTION_CHANGED = "current_question_changed"
    SURVEY_COMPLETED = "survey_completed"
    SURVEY_TERMINATED = "survey_terminated"
    QUESTIONS_INSERTED = "questions_inserted"


@dataclass(frozen=True)
class FlowEvent:
    type: FlowEventType
    survey_id: str
    session_id: str
    question_id: Optional[str] = None
    reason: str = ""
    payload: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "type": self.type.value,
            "survey_id": self.survey_id,
            "session_id": self.session_id,
            "question_id": self.question_id,
            "reason": self.reason,
            "payload": dict(self.payload),
        }


Listener = Callable[[FlowEvent], None]


class EventBus:
    """Synchronous fan-out of FlowEvents to subscribers."""

    def __init__(self):
        self._listeners: List[Listener] = []
        self._lock = threading.Lock()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener. Returns a function that unsubscribes it."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe():
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def publish(self, event: FlowEvent):
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(event)
            except Exception:
                logger.exception("Event listener failed for %s", event.type.value)
