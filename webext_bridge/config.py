"""Environment-driven configuration for the bridge client."""

from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def _env_number(name: str, default: float, cast=float):
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return cast(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None


@dataclass
class BridgeConfig:
    """Connection and timing settings shared by the client, CLI and MCP server."""

    ws_url: str = "ws://localhost:9876"
    test_host: str = "127.0.0.1"
    test_port: int = 8080
    command_timeout: float = 120.0
    init_timeout: float = 20.0
    log_level: str = "WARNING"

    @classmethod
    def from_env(cls) -> "BridgeConfig":
        return cls(
            ws_url=os.environ.get("WEBEXT_BRIDGE_WS_URL", cls.ws_url),
            test_host=os.environ.get("WEBEXT_BRIDGE_TEST_HOST", cls.test_host),
            test_port=_env_number("WEBEXT_BRIDGE_TEST_PORT", cls.test_port, int),
            command_timeout=_env_number(
                "WEBEXT_BRIDGE_COMMAND_TIMEOUT", cls.command_timeout
            ),
            init_timeout=_env_number("WEBEXT_BRIDGE_INIT_TIMEOUT", cls.init_timeout),
            log_level=os.environ.get("WEBEXT_BRIDGE_LOG_LEVEL", cls.log_level).upper(),
        )


def configure_logging(level: str | int = "WARNING") -> None:
    """Send webext_bridge log records to stderr."""
    logger = logging.getLogger("webext_bridge")
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
    logger.setLevel(level)
