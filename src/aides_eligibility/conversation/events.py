from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List

import logging

logger = logging.getLogger(__name__)

# Event kinds published by the interview engine
QUESTION_ASKED = "question_asked"
CONCLUDED = "concluded"
UNRESOLVED_SUCCESSOR = "unresolved_successor"
CYCLE_DETECTED = "cycle_detected"

WARNING_KINDS = frozenset({UNRESOLVED_SUCCESSOR, CYCLE_DETECTED})


@dataclass(frozen=True)
class InterviewEvent:
    kind: str
    session_id: str
    payload: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_warning(self) -> bool:
        return self.kind in WARNING_KINDS


Subscriber = Callable[[InterviewEvent], None]


class Subscription:
    """Handle returned by InterviewEvents.subscribe; call unsubscribe() to stop receiving events."""

    def __init__(self, bus: "InterviewEvents", callback: Subscriber) -> None:
        self._bus = bus
        self._callback = callback
        self.active = True

    def unsubscribe(self) -> None:
        if not self.active:
            return
        self._bus._remove(self._callback)
        self.active = False


class InterviewEvents:
    """
    Publish/subscribe channel for interview signals.

    Each instance owns its own subscriber list; create one per consumer
    (UI, audit trail, ...) and pass it to the sessions that should report to it.
    """

    def __init__(self) -> None:
        self._subscribers: List[Subscriber] = []

    def __len__(self) -> int:
        return len(self._subscribers)

    def subscribe(self, callback: Subscriber) -> Subscription:
        self._subscribers.append(callback)
        return Subscription(self, callback)

    def _remove(self, callback: Subscriber) -> None:
        try:
            self._subscribers.remove(callback)
        except ValueError:
            pass

    def publish(self, event: InterviewEvent) -> None:
        # Copy so a subscriber may unsubscribe while being notified.
        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception:
                logger.exception("Subscriber %r failed while handling %s event.", callback, event.kind)
