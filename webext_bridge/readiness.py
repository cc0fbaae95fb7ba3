"""Tracks whether the control channel currently sits on a relay-capable page."""

from __future__ import annotations

import logging
from enum import Enum

from webext_bridge.errors import NotReadyError
from webext_bridge.helpers import is_content_url

logger = logging.getLogger("webext_bridge.readiness")


class ReadinessState(Enum):
    UNINITIALIZED = "uninitialized"
    READY = "ready"
    INVALIDATED = "invalidated"


class ReadinessEvent(Enum):
    INITIALIZED = "initialized"
    # A location check found a non-http(s) page.
    LEFT_CONTENT = "left_content"
    # An operation deliberately visited a privileged page.
    NAVIGATED_AWAY = "navigated_away"


_TRANSITIONS: dict[tuple[ReadinessState, ReadinessEvent], ReadinessState] = {
    (ReadinessState.UNINITIALIZED, ReadinessEvent.INITIALIZED): ReadinessState.READY,
    (ReadinessState.READY, ReadinessEvent.INITIALIZED): ReadinessState.READY,
    (ReadinessState.INVALIDATED, ReadinessEvent.INITIALIZED): ReadinessState.READY,
    (ReadinessState.READY, ReadinessEvent.LEFT_CONTENT): ReadinessState.INVALIDATED,
    (ReadinessState.READY, ReadinessEvent.NAVIGATED_AWAY): ReadinessState.INVALIDATED,
    (ReadinessState.INVALIDATED, ReadinessEvent.LEFT_CONTENT): ReadinessState.INVALIDATED,
    (ReadinessState.INVALIDATED, ReadinessEvent.NAVIGATED_AWAY): ReadinessState.INVALIDATED,
}


class Readiness:
    """Uninitialized -> Ready -> Invalidated, with init() as the only way back.

    Pure state: no I/O happens here, so callers decide when to look up the
    current location and tests can drive every transition directly.
    """

    def __init__(self):
        self.state = ReadinessState.UNINITIALIZED
        self.invalid_url: str | None = None

    @property
    def ready(self) -> bool:
        return self.state is ReadinessState.READY

    def transition(self, event: ReadinessEvent, url: str | None = None) -> ReadinessState:
        """Apply ``event``; pairs missing from the table leave the state alone."""
        previous = self.state
        self.state = _TRANSITIONS.get((previous, event), previous)
        if self.state is ReadinessState.INVALIDATED:
            if url is not None:
                self.invalid_url = url
        else:
            self.invalid_url = None
        if self.state is not previous:
            logger.info("readiness %s -> %s (%s)", previous.value, self.state.value, event.value)
        return self.state

    def check_location(self, url: str) -> None:
        """Raise NotReadyError, invalidating first, if ``url`` is not http(s)."""
        if not is_content_url(url):
            self.transition(ReadinessEvent.LEFT_CONTENT, url)
            raise NotReadyError(url)

    def require_valid(self) -> None:
        """Fail fast when a previous check or operation invalidated the channel."""
        if self.state is ReadinessState.INVALIDATED:
            raise NotReadyError(self.invalid_url)
