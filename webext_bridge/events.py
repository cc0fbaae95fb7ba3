"""Bounded tab/window lifecycle event log.

The extension background records every tab and window lifecycle callback
into a fixed-size FIFO per category. Waiters and test assertions read the
log instead of racing the live listeners.
"""

from __future__ import annotations

import threading
import time
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Protocol

DEFAULT_CAPACITY = 100


class EventCategory(Enum):
    TAB = "tab"
    WINDOW = "window"


class EventType(Enum):
    CREATED = "created"
    UPDATED = "updated"
    REMOVED = "removed"


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class Event:
    """A single recorded lifecycle callback."""

    category: EventCategory
    type: EventType
    timestamp: int
    payload: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Wire shape sent back to the driver: {type, ..., timestamp}."""
        return {"type": self.type.value, **self.payload, "timestamp": self.timestamp}


class EventRingBuffer:
    """Fixed-capacity FIFO of events; the oldest entry is evicted on overflow.

    ``record`` and ``drain`` share one lock so ``drain(clear=True)`` is atomic
    with respect to producers running on other threads: every event is
    returned by exactly one clearing drain.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self._events: deque[Event] = deque(maxlen=capacity)
        self._lock = threading.Lock()

    def record(self, event: Event) -> None:
        with self._lock:
            self._events.append(event)

    def drain(self, clear: bool = False) -> list[Event]:
        """Return a snapshot in insertion order, emptying the buffer if asked."""
        with self._lock:
            snapshot = list(self._events)
            if clear:
                self._events.clear()
        return snapshot

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)


class EventSource(Protocol):
    def add_listener(self, event_name: str, callback: Callable[..., Any]) -> None: ...


class EventRecorder:
    """Turns browser lifecycle callbacks into buffered events.

    Owns one buffer per category. Constructed once and handed to whatever
    registers with the browser's event source (see ``attach``).
    """

    def __init__(
        self,
        tabs: EventRingBuffer | None = None,
        windows: EventRingBuffer | None = None,
        clock: Callable[[], int] = now_ms,
    ):
        self.tabs = tabs if tabs is not None else EventRingBuffer()
        self.windows = windows if windows is not None else EventRingBuffer()
        self._clock = clock

    def buffer(self, category: EventCategory) -> EventRingBuffer:
        return self.tabs if category is EventCategory.TAB else self.windows

    def attach(self, source: EventSource) -> None:
        source.add_listener("tabs.onCreated", self.on_tab_created)
        source.add_listener("tabs.onUpdated", self.on_tab_updated)
        source.add_listener("tabs.onRemoved", self.on_tab_removed)
        source.add_listener("windows.onCreated", self.on_window_created)
        source.add_listener("windows.onRemoved", self.on_window_removed)

    def _push(self, category: EventCategory, type_: EventType, payload: dict[str, Any]) -> None:
        self.buffer(category).record(Event(category, type_, self._clock(), payload))

    # ── Tab listeners ──

    def on_tab_created(self, tab: dict) -> None:
        self._push(EventCategory.TAB, EventType.CREATED, {"tab": tab})

    def on_tab_updated(self, tab_id: int, change_info: dict, tab: dict) -> None:
        self._push(
            EventCategory.TAB,
            EventType.UPDATED,
            {"tabId": tab_id, "changeInfo": change_info, "tab": tab},
        )

    def on_tab_removed(self, tab_id: int, remove_info: dict) -> None:
        self._push(
            EventCategory.TAB,
            EventType.REMOVED,
            {"tabId": tab_id, "removeInfo": remove_info},
        )

    # ── Window listeners ──

    def on_window_created(self, window: dict) -> None:
        self._push(EventCategory.WINDOW, EventType.CREATED, {"window": window})

    def on_window_removed(self, window_id: int) -> None:
        self._push(EventCategory.WINDOW, EventType.REMOVED, {"windowId": window_id})
