"""Python driver and relay for the WebExtension test bridge."""

from webext_bridge.bridge import BridgeClient
from webext_bridge.channel import RemoteChannel, unwrap
from webext_bridge.config import BridgeConfig, configure_logging
from webext_bridge.errors import (
    BridgeError,
    BridgeInitError,
    NotReadyError,
    RemoteOperationError,
    TransientPollError,
)
from webext_bridge.events import Event, EventCategory, EventRecorder, EventRingBuffer, EventType
from webext_bridge.helpers import extension_url_for_uuid, generate_test_url, is_content_url
from webext_bridge.readiness import Readiness, ReadinessEvent, ReadinessState
from webext_bridge.relay import RelayHost
from webext_bridge.waiting import wait_for, wait_for_count

__version__ = "0.1.0"

__all__ = [
    "BridgeClient",
    "BridgeConfig",
    "BridgeError",
    "BridgeInitError",
    "Event",
    "EventCategory",
    "EventRecorder",
    "EventRingBuffer",
    "EventType",
    "NotReadyError",
    "Readiness",
    "ReadinessEvent",
    "ReadinessState",
    "RelayHost",
    "RemoteChannel",
    "RemoteOperationError",
    "TransientPollError",
    "configure_logging",
    "extension_url_for_uuid",
    "generate_test_url",
    "is_content_url",
    "unwrap",
    "wait_for",
    "wait_for_count",
]
