from __future__ import annotations

import logging
import threading
from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

logger = logging.getLogger(__name__)

REMOTE_OPTIMIZER_FAILED = "remote_optimizer_failed"
GENERATION_COMPLETED = "generation_completed"
GENERATION_FAILED = "generation_failed"

ALL_EVENTS = "*"


@dataclass(frozen=True)
class GenerationEvent:
    name: str
    payload: dict[str, Any] = field(default_factory=dict)
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


Listener = Callable[[GenerationEvent], None]


class GenerationEventHub:
    """Synchronous observer registry; a run never depends on whether anyone listens."""

    def __init__(self) -> None:
        self._listeners: dict[str, list[Listener]] = defaultdict(list)
        self._lock = threading.Lock()

    def subscribe(self, name: str, listener: Listener) -> Callable[[], None]:
        with self._lock:
            self._listeners[name].append(listener)

        def unsubscribe() -> None:
            with self._lock:
                listeners = self._listeners.get(name)
                if not listeners or listener not in listeners:
                    return
                listeners.remove(listener)
                if not listeners:
                    self._listeners.pop(name, None)

        return unsubscribe

    def publish(self, name: str, **payload: Any) -> GenerationEvent:
        event = GenerationEvent(name=name, payload=payload)
        with self._lock:
            listeners = list(self._listeners.get(name, ())) + list(self._listeners.get(ALL_EVENTS, ()))

        for listener in listeners:
            try:
                listener(event)
            except Exception:
                logger.exception("Event listener %r failed while handling %s", listener, name)
        return event


event_hub = GenerationEventHub()
