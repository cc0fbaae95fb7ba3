"""Driver-side client for the WebExtension test bridge.

Every tab/window call is forwarded to the bridge extension through the page
relay (``window.TestBridge``), which only exists on http(s) pages. The
client keeps a ``Readiness`` machine so calls fail fast, with the offending
URL, instead of hanging once the browser has been sent somewhere else.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from typing import Any, Awaitable, Callable, TypeVar

from webext_bridge.channel import RemoteChannel, unwrap
from webext_bridge.config import BridgeConfig
from webext_bridge.errors import BridgeInitError
from webext_bridge.events import EventType
from webext_bridge.helpers import extension_url_for_uuid, generate_test_url
from webext_bridge.readiness import Readiness, ReadinessEvent, ReadinessState
from webext_bridge.waiting import first_match, wait_for, wait_for_count

logger = logging.getLogger("webext_bridge.bridge")

T = TypeVar("T")

RELAY_PRESENT_JS = "return typeof window.TestBridge !== 'undefined';"
ACCEPT_CONFIG_WARNING_JS = (
    "const btn = document.getElementById('warningButton'); if (btn) btn.click();"
)
READ_UUIDS_JS = (
    "return Services.prefs.getStringPref('extensions.webextensions.uuids', '{}');"
)
BODY_TEXT_JS = "return document.body.textContent;"
CLICK_ELEMENT_JS = (
    "const el = document.getElementById(arguments[0]);"
    " if (!el) throw new Error(`Extension button \"${arguments[0]}\" not found in panel`);"
    " el.click();"
)
UNIFIED_EXTENSIONS_BUTTON = "unified-extensions-button"

RESET_SETTLE = 0.5
CONFIG_PAGE_SETTLE = 0.5
WARNING_SETTLE = 0.3
MANIFEST_SETTLE = 0.3
PANEL_SETTLE = 0.5


class BridgeClient:
    """Test-facing API over a ``RemoteChannel``.

    Waiters return ``None`` (or ``False`` for count waits) on timeout and
    never raise for it, so "not found" stays distinguishable from "broken".
    """

    def __init__(self, channel: RemoteChannel, config: BridgeConfig | None = None):
        self.channel = channel
        self.config = config or BridgeConfig()
        self.readiness = Readiness()

    @classmethod
    def from_config(cls, config: BridgeConfig) -> "BridgeClient":
        return cls(RemoteChannel(config.ws_url, config.command_timeout), config)

    @property
    def ready(self) -> bool:
        return self.readiness.ready

    def _test_url(self, name: str) -> str:
        return generate_test_url(name, port=self.config.test_port, host=self.config.test_host)

    # ── Core ──────────────────────────────────────────────────────

    async def _relay_present(self) -> bool:
        try:
            return bool(await self.channel.execute_script(RELAY_PRESENT_JS))
        except Exception as exc:
            logger.debug("relay probe failed: %s", exc)
            return False

    async def init(self) -> None:
        """Find or open a page hosting the relay and mark the bridge ready."""
        for handle in await self.channel.window_handles():
            try:
                await self.channel.switch_to_window(handle)
            except Exception as exc:
                logger.debug("skipping window %s: %s", handle, exc)
                continue
            if await self._relay_present():
                logger.info("found existing window with TestBridge")
                self.readiness.transition(ReadinessEvent.INITIALIZED)
                return

        url = self._test_url("testbridge-init")
        logger.info("navigating to %s", url)
        await self.channel.navigate(url)
        found = await wait_for(
            self._relay_present,
            timeout=self.config.init_timeout,
            interval=0.1,
            label="init",
        )
        if not found:
            raise BridgeInitError(
                f"[TestBridge] Timed out waiting for the bridge content script to "
                f"inject on {url}. Make sure the test page server is running on "
                f"port {self.config.test_port}."
            )
        self.readiness.transition(ReadinessEvent.INITIALIZED)

    async def ensure_ready(self) -> None:
        """Guard run before every relay call.

        Initializes on first use. Raises NotReadyError, without retrying,
        when the channel was invalidated or the current page is not http(s).
        """
        if self.readiness.state is ReadinessState.UNINITIALIZED:
            await self.init()
            return
        self.readiness.require_valid()
        self.readiness.check_location(await self.channel.get_current_url())

    async def reset(self) -> None:
        """Navigate to a fresh test page and re-initialize. Safe to repeat."""
        await self.channel.navigate(self._test_url("bridge-reset"))
        await asyncio.sleep(RESET_SETTLE)
        await self.init()

    async def _call(self, action: str, **args: Any) -> Any:
        await self.ensure_ready()
        return unwrap(await self.channel.invoke(action, args), action)

    async def ping(self) -> str:
        return await self._call("ping")

    async def capture_screenshot(self, format: str | None = None) -> str:
        """Data URL of the visible tab (PNG unless ``format`` says otherwise)."""
        return await self._call("captureScreenshot", format=format)

    # ── Extension identity ────────────────────────────────────────

    async def _get_extension_uuids(self) -> dict[str, str]:
        """Read the id -> internal UUID map from about:config.

        Leaves the browser on about:config, so the bridge is invalidated.
        """
        await self.channel.navigate("about:config")
        await asyncio.sleep(CONFIG_PAGE_SETTLE)
        try:
            await self.channel.execute_script(ACCEPT_CONFIG_WARNING_JS)
            await asyncio.sleep(WARNING_SETTLE)
        except Exception as exc:
            logger.debug("no about:config warning to accept: %s", exc)
        raw = await self.channel.execute_script(READ_UUIDS_JS)
        self.readiness.transition(ReadinessEvent.NAVIGATED_AWAY, "about:config")
        return json.loads(raw or "{}")

    async def get_extension_url(self, extension_id: str) -> str | None:
        """``moz-extension://<uuid>`` base URL for an installed extension id."""
        uuid = (await self._get_extension_uuids()).get(extension_id)
        return extension_url_for_uuid(uuid) if uuid else None

    async def get_extension_url_by_name(self, name: str) -> str | None:
        """Like get_extension_url, but matches the manifest ``name`` field.

        Visits each installed extension's manifest.json in turn.
        """
        for uuid in (await self._get_extension_uuids()).values():
            base_url = extension_url_for_uuid(uuid)
            manifest_url = f"{base_url}/manifest.json"
            try:
                await self.channel.navigate(manifest_url)
                self.readiness.transition(ReadinessEvent.NAVIGATED_AWAY, manifest_url)
                await asyncio.sleep(MANIFEST_SETTLE)
                manifest = json.loads(await self.channel.execute_script(BODY_TEXT_JS))
            except Exception as exc:
                logger.debug("skipping %s: %s", manifest_url, exc)
                continue
            if isinstance(manifest, dict) and manifest.get("name") == name:
                return base_url
        return None

    async def click_browser_action(self, extension_id: str) -> None:
        """Click an extension's toolbar button via the unified extensions panel.

        Needs a browser started with ``-remote-allow-system-access``.
        """
        normalized = re.sub(r"[@.]", "_", extension_id)
        await self.channel.set_context("chrome")
        try:
            await self.channel.execute_script(CLICK_ELEMENT_JS, UNIFIED_EXTENSIONS_BUTTON)
            await asyncio.sleep(PANEL_SETTLE)
            await self.channel.execute_script(CLICK_ELEMENT_JS, f"{normalized}-BAP")
        finally:
            await self.channel.set_context("content")

    # ── Extension forwarding ──────────────────────────────────────

    async def send_to_extension(self, target_extension_id: str, payload: Any) -> Any:
        return await self._call(
            "forwardToExtension", targetExtensionId=target_extension_id, payload=payload
        )

    # ── Tab queries ───────────────────────────────────────────────

    async def get_tabs(self) -> list[dict]:
        return await self._call("getTabs")

    async def get_tab_by_id(self, tab_id: int) -> dict:
        return await self._call("getTabById", tabId=tab_id)

    async def get_active_tab(self) -> dict | None:
        return await self._call("getActiveTab")

    async def get_tab_groups(self) -> list[dict]:
        return await self._call("getTabGroups")

    # ── Tab lifecycle ─────────────────────────────────────────────

    async def create_tab(self, url: str | None = None, active: bool | None = None) -> dict:
        return await self._call("createTab", url=url, active=active)

    async def close_tab(self, tab_id: int) -> None:
        return await self._call("closeTab", tabId=tab_id)

    async def update_tab(self, tab_id: int, **props: Any) -> dict:
        """Update ``url``, ``active``, ``muted`` or ``pinned``."""
        return await self._call("updateTab", tabId=tab_id, **props)

    async def reload_tab(self, tab_id: int) -> None:
        return await self._call("reloadTab", tabId=tab_id)

    # ── Tab state ─────────────────────────────────────────────────

    async def move_tab(self, tab_id: int, index: int) -> dict:
        return await self._call("moveTab", tabId=tab_id, index=index)

    async def pin_tab(self, tab_id: int) -> dict:
        return await self._call("pinTab", tabId=tab_id)

    async def unpin_tab(self, tab_id: int) -> dict:
        return await self._call("unpinTab", tabId=tab_id)

    async def mute_tab(self, tab_id: int) -> dict:
        return await self._call("muteTab", tabId=tab_id)

    async def unmute_tab(self, tab_id: int) -> dict:
        return await self._call("unmuteTab", tabId=tab_id)

    async def group_tabs(
        self,
        tab_ids: list[int],
        title: str,
        color: str = "blue",
        group_id: int | None = None,
    ) -> dict:
        return await self._call(
            "groupTabs", tabIds=tab_ids, title=title, color=color, groupId=group_id
        )

    async def ungroup_tabs(self, tab_ids: list[int]) -> None:
        return await self._call("ungroupTabs", tabIds=tab_ids)

    # ── Tab execution and events ──────────────────────────────────

    async def execute_in_tab(self, tab_id: int, code: str) -> Any:
        return await self._call("executeInTab", tabId=tab_id, code=code)

    async def get_tab_events(self, clear: bool = False) -> list[dict]:
        return await self._call("getTabEvents", clear=clear)

    # ── Waiters ───────────────────────────────────────────────────

    async def wait_for(
        self,
        predicate: Callable[[], Awaitable[T] | T],
        timeout: float = 5.0,
        interval: float = 0.1,
    ) -> T | None:
        """Generic escape hatch: first truthy value of ``predicate`` or None."""
        return await wait_for(predicate, timeout=timeout, interval=interval)

    async def wait_for_tab_url(
        self, pattern: str, timeout: float = 10.0, interval: float = 0.25
    ) -> dict | None:
        """First tab whose URL contains ``pattern``."""

        async def matching_tab():
            tabs = await self.get_tabs()
            return first_match(tabs, lambda t: bool(t.get("url")) and pattern in t["url"])

        await self.ensure_ready()
        return await wait_for(
            matching_tab, timeout=timeout, interval=interval, label="wait_for_tab_url"
        )

    async def wait_for_tab_load(
        self, tab_id: int, timeout: float = 10.0, interval: float = 0.25
    ) -> dict | None:
        """The tab once its status is "complete". A missing tab just means not yet."""

        async def loaded_tab():
            tab = await self.get_tab_by_id(tab_id)
            return tab if tab and tab.get("status") == "complete" else None

        await self.ensure_ready()
        return await wait_for(
            loaded_tab, timeout=timeout, interval=interval, label="wait_for_tab_load"
        )

    async def wait_for_tab_event(
        self, event_type: EventType | str, timeout: float = 10.0, interval: float = 0.5
    ) -> dict | None:
        """First buffered tab event of ``event_type``. Does not clear the buffer."""
        return await self._wait_for_event(
            self.get_tab_events, event_type, timeout, interval, "wait_for_tab_event"
        )

    async def wait_for_window_event(
        self, event_type: EventType | str, timeout: float = 10.0, interval: float = 0.5
    ) -> dict | None:
        return await self._wait_for_event(
            self.get_window_events, event_type, timeout, interval, "wait_for_window_event"
        )

    async def _wait_for_event(self, fetch, event_type, timeout, interval, label) -> dict | None:
        wanted = event_type.value if isinstance(event_type, EventType) else event_type

        async def matching_event():
            return first_match(await fetch(), lambda e: e.get("type") == wanted)

        await self.ensure_ready()
        return await wait_for(matching_event, timeout=timeout, interval=interval, label=label)

    async def wait_for_tab_count(self, expected_count: int, timeout: float = 10.0) -> bool:
        await self.ensure_ready()
        return await wait_for_count(
            self.get_tabs, expected_count, timeout=timeout, label="wait_for_tab_count"
        )

    # ── Window management ─────────────────────────────────────────

    async def get_windows(self) -> list[dict]:
        return await self._call("getWindows")

    async def create_window(self, url: str | None = None, **options: Any) -> dict:
        """Open a window; ``options`` may set type, state, width, height, left, top."""
        return await self._call("createWindow", url=url, **options)

    async def close_window(self, window_id: int) -> None:
        return await self._call("closeWindow", windowId=window_id)

    async def get_window_by_id(self, window_id: int) -> dict:
        return await self._call("getWindowById", windowId=window_id)

    async def update_window(self, window_id: int, **props: Any) -> dict:
        return await self._call("updateWindow", windowId=window_id, **props)

    async def get_window_events(self, clear: bool = False) -> list[dict]:
        return await self._call("getWindowEvents", clear=clear)

    async def wait_for_window_count(self, expected_count: int, timeout: float = 10.0) -> bool:
        await self.ensure_ready()
        return await wait_for_count(
            self.get_windows, expected_count, timeout=timeout, label="wait_for_window_count"
        )

    async def close(self) -> None:
        await self.channel.close()
