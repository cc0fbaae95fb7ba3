"""Tests for URL helpers and configuration."""

import logging
import re

import pytest

from webext_bridge.config import BridgeConfig, configure_logging
from webext_bridge.helpers import extension_url_for_uuid, generate_test_url


class TestGenerateTestUrl:
    def test_default_format(self):
        assert re.fullmatch(r"http://127\.0\.0\.1:8080/test-\d+", generate_test_url())

    def test_custom_name_host_port(self):
        url = generate_test_url("bridge-reset", port=9000, host="localhost")
        assert re.fullmatch(r"http://localhost:9000/bridge-reset-\d+", url)


def test_extension_url_for_uuid():
    assert extension_url_for_uuid("1234-abcd") == "moz-extension://1234-abcd"


class TestBridgeConfig:
    def test_defaults(self, monkeypatch):
        for name in (
            "WEBEXT_BRIDGE_WS_URL", "WEBEXT_BRIDGE_TEST_HOST", "WEBEXT_BRIDGE_TEST_PORT",
            "WEBEXT_BRIDGE_COMMAND_TIMEOUT", "WEBEXT_BRIDGE_INIT_TIMEOUT", "WEBEXT_BRIDGE_LOG_LEVEL",
        ):
            monkeypatch.delenv(name, raising=False)
        config = BridgeConfig.from_env()
        assert config == BridgeConfig()
        assert config.ws_url == "ws://localhost:9876"
        assert config.test_port == 8080

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("WEBEXT_BRIDGE_WS_URL", "ws://browser:1234")
        monkeypatch.setenv("WEBEXT_BRIDGE_TEST_PORT", "9090")
        monkeypatch.setenv("WEBEXT_BRIDGE_INIT_TIMEOUT", "2.5")
        monkeypatch.setenv("WEBEXT_BRIDGE_LOG_LEVEL", "debug")
        config = BridgeConfig.from_env()
        assert config.ws_url == "ws://browser:1234"
        assert config.test_port == 9090
        assert config.init_timeout == 2.5
        assert config.log_level == "DEBUG"

    def test_invalid_number_names_variable(self, monkeypatch):
        monkeypatch.setenv("WEBEXT_BRIDGE_TEST_PORT", "eighty")
        with pytest.raises(ValueError, match="WEBEXT_BRIDGE_TEST_PORT"):
            BridgeConfig.from_env()


def test_configure_logging_installs_one_handler():
    logger = logging.getLogger("webext_bridge")
    saved = list(logger.handlers)
    logger.handlers.clear()
    try:
        configure_logging("DEBUG")
        configure_logging("INFO")
        assert len(logger.handlers) == 1
        assert logger.level == logging.INFO
    finally:
        logger.handlers[:] = saved
        logger.setLevel(logging.NOTSET)
