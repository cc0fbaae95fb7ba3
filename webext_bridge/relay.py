"""Background-side command dispatcher.

``RelayHost`` answers relay actions (``{"action": "getTabs", ...}``) against a
``BrowserAPI`` implementation and always replies with a
``{"success": bool, "data" | "error": ...}`` envelope. It owns the tab and
window event buffers through its ``EventRecorder``.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Protocol

from webext_bridge.events import EventRecorder
from webext_bridge.waiting import first_match, wait_for

logger = logging.getLogger("webext_bridge.relay")

WAIT_FOR_TAB_URL_TIMEOUT_MS = 10000
WAIT_FOR_TAB_URL_INTERVAL = 0.25

TAB_UPDATE_KEYS = ("url", "active", "muted", "pinned")
WINDOW_CREATE_KEYS = ("type", "state", "width", "height", "left", "top")
WINDOW_UPDATE_KEYS = ("state", "width", "height", "left", "top", "focused")


class BrowserAPI(Protocol):
    """The subset of the tabs/windows/tabGroups extension APIs the relay uses."""

    supports_tab_groups: bool

    async def query_tabs(self, **query: Any) -> list[dict]: ...
    async def get_tab(self, tab_id: int) -> dict: ...
    async def create_tab(self, props: dict) -> dict: ...
    async def remove_tab(self, tab_id: int) -> None: ...
    async def update_tab(self, tab_id: int, props: dict) -> dict: ...
    async def reload_tab(self, tab_id: int) -> None: ...
    async def move_tab(self, tab_id: int, index: int) -> dict: ...
    async def group_tabs(self, tab_ids: list[int], group_id: int | None = None) -> int: ...
    async def ungroup_tab(self, tab_id: int) -> None: ...
    async def query_tab_groups(self) -> list[dict]: ...
    async def update_tab_group(self, group_id: int, props: dict) -> dict: ...
    async def execute_script(self, tab_id: int, code: str) -> list[Any] | None: ...
    async def capture_visible_tab(self, format: str) -> str: ...
    async def create_window(self, props: dict) -> dict: ...
    async def remove_window(self, window_id: int) -> None: ...
    async def get_all_windows(self, populate: bool = True) -> list[dict]: ...
    async def get_window(self, window_id: int, populate: bool = True) -> dict: ...
    async def update_window(self, window_id: int, props: dict) -> dict: ...


class ExtensionMessenger(Protocol):
    async def deliver(self, target_extension_id: str, payload: Any) -> Any: ...


def ok(data: Any = None) -> dict:
    return {"success": True, "data": data}


def fail(error: str) -> dict:
    return {"success": False, "error": error}


def _pick(message: dict, keys: tuple[str, ...]) -> dict:
    return {key: message[key] for key in keys if message.get(key) is not None}


class RelayHost:
    def __init__(
        self,
        browser: BrowserAPI,
        recorder: EventRecorder | None = None,
        messenger: ExtensionMessenger | None = None,
    ):
        self.browser = browser
        self.recorder = recorder if recorder is not None else EventRecorder()
        self.messenger = messenger
        self._actions: dict[str, Callable[[dict], Awaitable[dict]]] = {
            "ping": self._ping,
            "getTabs": self._get_tabs,
            "getTabById": self._get_tab_by_id,
            "getActiveTab": self._get_active_tab,
            "getTabGroups": self._get_tab_groups,
            "createTab": self._create_tab,
            "closeTab": self._close_tab,
            "updateTab": self._update_tab,
            "reloadTab": self._reload_tab,
            "moveTab": self._move_tab,
            "pinTab": lambda m: self._set_tab_flag(m, "pinned", True),
            "unpinTab": lambda m: self._set_tab_flag(m, "pinned", False),
            "muteTab": lambda m: self._set_tab_flag(m, "muted", True),
            "unmuteTab": lambda m: self._set_tab_flag(m, "muted", False),
            "groupTabs": self._group_tabs,
            "ungroupTabs": self._ungroup_tabs,
            "executeInTab": self._execute_in_tab,
            "captureScreenshot": self._capture_screenshot,
            "waitForTabUrl": self._wait_for_tab_url,
            "createWindow": self._create_window,
            "closeWindow": self._close_window,
            "getWindows": self._get_windows,
            "getWindowById": self._get_window_by_id,
            "updateWindow": self._update_window,
            "getTabEvents": self._get_tab_events,
            "getWindowEvents": self._get_window_events,
            "forwardToExtension": self._forward_to_extension,
        }

    @property
    def actions(self) -> list[str]:
        return list(self._actions)

    async def handle(self, message: dict) -> dict:
        """Dispatch one relay message. Never raises."""
        action = message.get("action")
        handler = self._actions.get(action)
        if handler is None:
            return fail(f"Unknown action: {action}")
        try:
            return await handler(message)
        except Exception as exc:
            logger.warning("error handling %s: %s", action, exc)
            return fail(str(exc))

    # ── Basics / queries ──

    async def _ping(self, message: dict) -> dict:
        return ok("pong")

    async def _get_tabs(self, message: dict) -> dict:
        return ok(await self.browser.query_tabs())

    async def _get_tab_by_id(self, message: dict) -> dict:
        return ok(await self.browser.get_tab(message["tabId"]))

    async def _get_active_tab(self, message: dict) -> dict:
        tabs = await self.browser.query_tabs(active=True, currentWindow=True)
        return ok(tabs[0] if tabs else None)

    async def _get_tab_groups(self, message: dict) -> dict:
        if not self.browser.supports_tab_groups:
            return ok([])
        return ok(await self.browser.query_tab_groups())

    # ── Tab lifecycle / state ──

    async def _create_tab(self, message: dict) -> dict:
        props = {"url": message.get("url") or "about:blank"}
        props.update(_pick(message, ("active", "windowId")))
        return ok(await self.browser.create_tab(props))

    async def _close_tab(self, message: dict) -> dict:
        await self.browser.remove_tab(message["tabId"])
        return ok()

    async def _update_tab(self, message: dict) -> dict:
        props = _pick(message, TAB_UPDATE_KEYS)
        return ok(await self.browser.update_tab(message["tabId"], props))

    async def _reload_tab(self, message: dict) -> dict:
        await self.browser.reload_tab(message["tabId"])
        return ok()

    async def _move_tab(self, message: dict) -> dict:
        return ok(await self.browser.move_tab(message["tabId"], message["index"]))

    async def _set_tab_flag(self, message: dict, flag: str, value: bool) -> dict:
        return ok(await self.browser.update_tab(message["tabId"], {flag: value}))

    async def _group_tabs(self, message: dict) -> dict:
        if not self.browser.supports_tab_groups:
            return fail("Tab Groups API not available")
        try:
            group_id = message.get("groupId")
            if not group_id or group_id == -1:
                group_id = await self.browser.group_tabs(message["tabIds"])
            else:
                await self.browser.group_tabs(message["tabIds"], group_id)
            group = await self.browser.update_tab_group(
                group_id,
                {"title": message.get("title"), "color": message.get("color") or "blue"},
            )
        except Exception as exc:
            return fail(f"Tab group operation failed: {exc}")
        return ok(group)

    async def _ungroup_tabs(self, message: dict) -> dict:
        if not self.browser.supports_tab_groups:
            return fail("Tab Groups API not available")
        for tab_id in message["tabIds"]:
            await self.browser.ungroup_tab(tab_id)
        return ok()

    # ── Execution / capture ──

    async def _execute_in_tab(self, message: dict) -> dict:
        results = await self.browser.execute_script(message["tabId"], message["code"])
        return ok(results[0] if results else None)

    async def _capture_screenshot(self, message: dict) -> dict:
        return ok(await self.browser.capture_visible_tab(message.get("format") or "png"))

    async def _wait_for_tab_url(self, message: dict) -> dict:
        pattern = message["pattern"]
        timeout_ms = message.get("timeout") or WAIT_FOR_TAB_URL_TIMEOUT_MS

        async def matching_tab():
            tabs = await self.browser.query_tabs()
            return first_match(tabs, lambda t: bool(t.get("url")) and pattern in t["url"])

        tab = await wait_for(
            matching_tab,
            timeout=timeout_ms / 1000,
            interval=WAIT_FOR_TAB_URL_INTERVAL,
            label="waitForTabUrl",
        )
        return ok(tab)

    # ── Windows ──

    async def _create_window(self, message: dict) -> dict:
        props = {"type": "normal"}
        props.update(_pick(message, ("url",) + WINDOW_CREATE_KEYS))
        return ok(await self.browser.create_window(props))

    async def _close_window(self, message: dict) -> dict:
        await self.browser.remove_window(message["windowId"])
        return ok()

    async def _get_windows(self, message: dict) -> dict:
        return ok(await self.browser.get_all_windows(populate=True))

    async def _get_window_by_id(self, message: dict) -> dict:
        return ok(await self.browser.get_window(message["windowId"], populate=True))

    async def _update_window(self, message: dict) -> dict:
        props = _pick(message, WINDOW_UPDATE_KEYS)
        return ok(await self.browser.update_window(message["windowId"], props))

    # ── Events ──

    async def _get_tab_events(self, message: dict) -> dict:
        events = self.recorder.tabs.drain(clear=bool(message.get("clear")))
        return ok([event.to_dict() for event in events])

    async def _get_window_events(self, message: dict) -> dict:
        events = self.recorder.windows.drain(clear=bool(message.get("clear")))
        return ok([event.to_dict() for event in events])

    # ── Extension forwarding ──

    async def _forward_to_extension(self, message: dict) -> dict:
        if self.messenger is None:
            return fail("Extension not responding: no messaging channel configured")
        try:
            reply = await self.messenger.deliver(message["targetExtensionId"], message.get("payload"))
        except Exception as exc:
            return fail(f"Extension not responding: {exc}")
        return ok(reply)
