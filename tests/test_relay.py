"""Tests for the background-side relay dispatcher."""

import pytest

from webext_bridge.events import EventRecorder, EventRingBuffer
from webext_bridge.relay import RelayHost
from tests.fakes import FakeBrowser, FakeMessenger


@pytest.fixture
def browser():
    return FakeBrowser()


@pytest.fixture
def host(browser):
    recorder = EventRecorder()
    recorder.attach(browser)
    return RelayHost(browser, recorder, FakeMessenger(replies={"other@example.com": {"pong": True}}))


async def call(host, action, **args):
    return await host.handle({"action": action, **args})


class TestDispatch:
    @pytest.mark.asyncio
    async def test_ping(self, host):
        assert await call(host, "ping") == {"success": True, "data": "pong"}

    @pytest.mark.asyncio
    async def test_unknown_action(self, host):
        assert await call(host, "launchRockets") == {
            "success": False,
            "error": "Unknown action: launchRockets",
        }

    @pytest.mark.asyncio
    async def test_browser_errors_become_failures(self, host):
        resp = await call(host, "getTabById", tabId=404)
        assert resp == {"success": False, "error": "Invalid tab ID: 404"}

    @pytest.mark.asyncio
    async def test_missing_argument_becomes_failure(self, host):
        resp = await call(host, "closeTab")
        assert resp["success"] is False

    def test_lists_actions(self, host):
        assert {"getTabs", "waitForTabUrl", "forwardToExtension"} <= set(host.actions)


class TestTabs:
    @pytest.mark.asyncio
    async def test_create_tab_defaults_to_blank(self, host):
        resp = await call(host, "createTab")
        assert resp["data"]["url"] == "about:blank"

    @pytest.mark.asyncio
    async def test_create_tab_forwards_inactive(self, host, browser):
        resp = await call(host, "createTab", url="http://a/", active=False)
        assert browser.tabs[resp["data"]["id"]]["active"] is False

    @pytest.mark.asyncio
    async def test_get_tabs_and_active_tab(self, host):
        await call(host, "createTab", url="http://a/", active=False)
        second = (await call(host, "createTab", url="http://b/"))["data"]
        assert len((await call(host, "getTabs"))["data"]) == 2
        assert (await call(host, "getActiveTab"))["data"]["id"] == second["id"]

    @pytest.mark.asyncio
    async def test_active_tab_none_when_no_tabs(self, host):
        assert await call(host, "getActiveTab") == {"success": True, "data": None}

    @pytest.mark.asyncio
    async def test_update_tab_forwards_only_known_props(self, host, browser):
        tab = (await call(host, "createTab", url="http://a/"))["data"]
        await call(host, "updateTab", tabId=tab["id"], url="http://b/", title="ignored")
        assert browser.tabs[tab["id"]]["url"] == "http://b/"
        assert "title" not in browser.tabs[tab["id"]]

    @pytest.mark.asyncio
    async def test_pin_mute_flags(self, host):
        tab = (await call(host, "createTab", url="http://a/"))["data"]
        assert (await call(host, "pinTab", tabId=tab["id"]))["data"]["pinned"] is True
        assert (await call(host, "unpinTab", tabId=tab["id"]))["data"]["pinned"] is False
        assert (await call(host, "muteTab", tabId=tab["id"]))["data"]["muted"] is True
        assert (await call(host, "unmuteTab", tabId=tab["id"]))["data"]["muted"] is False

    @pytest.mark.asyncio
    async def test_close_reload_move(self, host, browser):
        tab = (await call(host, "createTab", url="http://a/"))["data"]
        assert (await call(host, "moveTab", tabId=tab["id"], index=4))["data"]["index"] == 4
        assert await call(host, "reloadTab", tabId=tab["id"]) == {"success": True, "data": None}
        assert browser.tabs[tab["id"]]["status"] == "loading"
        assert await call(host, "closeTab", tabId=tab["id"]) == {"success": True, "data": None}
        assert browser.tabs == {}

    @pytest.mark.asyncio
    async def test_execute_in_tab_returns_first_frame(self, host, browser):
        tab = (await call(host, "createTab", url="http://a/"))["data"]
        browser.script_results["document.title"] = ["Top", "Frame"]
        assert (await call(host, "executeInTab", tabId=tab["id"], code="document.title"))["data"] == "Top"
        assert (await call(host, "executeInTab", tabId=tab["id"], code="void 0"))["data"] is None

    @pytest.mark.asyncio
    async def test_capture_screenshot_defaults_to_png(self, host):
        assert (await call(host, "captureScreenshot"))["data"].startswith("data:image/png")
        assert (await call(host, "captureScreenshot", format="jpeg"))["data"].startswith("data:image/jpeg")


class TestTabGroups:
    @pytest.mark.asyncio
    async def test_group_creates_new_group(self, host, browser):
        tab = (await call(host, "createTab", url="http://a/"))["data"]
        resp = await call(host, "groupTabs", tabIds=[tab["id"]], title="Work", groupId=-1)
        assert resp["data"]["title"] == "Work"
        assert resp["data"]["color"] == "blue"
        assert browser.tabs[tab["id"]]["groupId"] == resp["data"]["id"]

    @pytest.mark.asyncio
    async def test_group_into_existing(self, host):
        a = (await call(host, "createTab", url="http://a/"))["data"]
        b = (await call(host, "createTab", url="http://b/"))["data"]
        group = (await call(host, "groupTabs", tabIds=[a["id"]], title="G"))["data"]
        resp = await call(host, "groupTabs", tabIds=[b["id"]], title="G", color="red", groupId=group["id"])
        assert resp["data"]["color"] == "red"
        assert len((await call(host, "getTabGroups"))["data"]) == 1

    @pytest.mark.asyncio
    async def test_group_failure_is_prefixed(self, host):
        tab = (await call(host, "createTab", url="http://a/"))["data"]
        resp = await call(host, "groupTabs", tabIds=[tab["id"]], title="G", groupId=99)
        assert resp == {"success": False, "error": "Tab group operation failed: No group with id: 99"}

    @pytest.mark.asyncio
    async def test_ungroup(self, host, browser):
        tab = (await call(host, "createTab", url="http://a/"))["data"]
        await call(host, "groupTabs", tabIds=[tab["id"]], title="G")
        assert (await call(host, "ungroupTabs", tabIds=[tab["id"]]))["success"]
        assert browser.tabs[tab["id"]]["groupId"] == -1

    @pytest.mark.asyncio
    async def test_unsupported_browser(self, host, browser):
        browser.supports_tab_groups = False
        assert await call(host, "getTabGroups") == {"success": True, "data": []}
        assert await call(host, "groupTabs", tabIds=[1], title="x") == {
            "success": False, "error": "Tab Groups API not available",
        }
        assert (await call(host, "ungroupTabs", tabIds=[1]))["error"] == "Tab Groups API not available"


class TestWaitForTabUrl:
    @pytest.mark.asyncio
    async def test_finds_existing_tab(self, host):
        await call(host, "createTab", url="http://127.0.0.1:8080/marker-123")
        resp = await call(host, "waitForTabUrl", pattern="marker-123", timeout=1000)
        assert resp["data"]["url"].endswith("marker-123")

    @pytest.mark.asyncio
    async def test_timeout_is_success_with_null(self, host):
        resp = await call(host, "waitForTabUrl", pattern="missing", timeout=50)
        assert resp == {"success": True, "data": None}


class TestWindows:
    @pytest.mark.asyncio
    async def test_create_window_defaults_and_options(self, host):
        resp = await call(host, "createWindow", url="http://a/", width=800, bogus=1)
        assert resp["data"]["type"] == "normal"
        assert resp["data"]["width"] == 800
        assert "bogus" not in resp["data"]

    @pytest.mark.asyncio
    async def test_get_windows_populated(self, host):
        await call(host, "createTab", url="http://a/")
        windows = (await call(host, "getWindows"))["data"]
        assert len(windows) == 1
        assert len(windows[0]["tabs"]) == 1
        assert (await call(host, "getWindowById", windowId=1))["data"]["id"] == 1

    @pytest.mark.asyncio
    async def test_update_and_close_window(self, host, browser):
        window = (await call(host, "createWindow"))["data"]
        resp = await call(host, "updateWindow", windowId=window["id"], state="maximized", focused=True, url="x")
        assert resp["data"]["state"] == "maximized"
        assert "url" not in browser.windows[window["id"]]
        await call(host, "closeWindow", windowId=window["id"])
        assert window["id"] not in browser.windows


class TestEvents:
    @pytest.mark.asyncio
    async def test_tab_events_recorded_in_order(self, host):
        tab = (await call(host, "createTab", url="http://a/"))["data"]
        await call(host, "pinTab", tabId=tab["id"])
        await call(host, "closeTab", tabId=tab["id"])
        events = (await call(host, "getTabEvents"))["data"]
        assert [e["type"] for e in events] == ["created", "updated", "removed"]
        assert events[1]["changeInfo"] == {"pinned": True}
        assert events[2]["tabId"] == tab["id"]

    @pytest.mark.asyncio
    async def test_clear_empties_buffer(self, host):
        await call(host, "createTab", url="http://a/")
        assert len((await call(host, "getTabEvents", clear=True))["data"]) == 1
        assert (await call(host, "getTabEvents"))["data"] == []

    @pytest.mark.asyncio
    async def test_window_events(self, host):
        window = (await call(host, "createWindow"))["data"]
        await call(host, "closeWindow", windowId=window["id"])
        events = (await call(host, "getWindowEvents", clear=True))["data"]
        assert [e["type"] for e in events] == ["created", "removed"]
        assert events[1]["windowId"] == window["id"]
        assert (await call(host, "getWindowEvents"))["data"] == []

    @pytest.mark.asyncio
    async def test_buffer_capacity_applies(self, browser):
        recorder = EventRecorder(tabs=EventRingBuffer(2))
        recorder.attach(browser)
        host = RelayHost(browser, recorder)
        for url in ("http://a/", "http://b/", "http://c/"):
            await call(host, "createTab", url=url)
        events = (await call(host, "getTabEvents"))["data"]
        assert [e["tab"]["url"] for e in events] == ["http://b/", "http://c/"]


class TestForwarding:
    @pytest.mark.asyncio
    async def test_forward_returns_reply(self, host):
        resp = await call(host, "forwardToExtension", targetExtensionId="other@example.com", payload={"ping": 1})
        assert resp == {"success": True, "data": {"pong": True}}
        assert host.messenger.delivered == [("other@example.com", {"ping": 1})]

    @pytest.mark.asyncio
    async def test_forward_failure_is_prefixed(self, browser):
        host = RelayHost(browser, messenger=FakeMessenger(error=RuntimeError("Could not establish connection")))
        resp = await call(host, "forwardToExtension", targetExtensionId="x@y", payload={})
        assert resp == {
            "success": False,
            "error": "Extension not responding: Could not establish connection",
        }

    @pytest.mark.asyncio
    async def test_forward_without_messenger(self, browser):
        resp = await call(RelayHost(browser), "forwardToExtension", targetExtensionId="x@y", payload={})
        assert resp["error"].startswith("Extension not responding")
