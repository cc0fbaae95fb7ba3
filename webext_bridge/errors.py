"""Exception types raised by the bridge."""

from __future__ import annotations


class BridgeError(Exception):
    """Base class for every error raised by webext_bridge."""


class NotReadyError(BridgeError):
    """The control channel is parked on a page that cannot host the relay."""

    def __init__(self, url: str | None):
        self.url = url
        super().__init__(
            f"[TestBridge] The current page ({url}) is not an HTTP/HTTPS "
            "webpage. Call bridge.init() or bridge.reset() to re-establish "
            "the connection."
        )


class RemoteOperationError(BridgeError):
    """A remote command came back with success=false or an error member."""

    def __init__(self, message: str, action: str | None = None):
        self.action = action
        super().__init__(message)


class BridgeInitError(BridgeError):
    """The page relay never showed up while initializing."""


class TransientPollError(BridgeError):
    """Raised by a predicate to say "not yet"; wait_for swallows it."""
