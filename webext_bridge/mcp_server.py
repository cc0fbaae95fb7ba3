"""
WebExtension Test Bridge MCP Server
Exposes the test bridge's tab, window, event and wait operations as MCP tools.
Connects to the browser automation endpoint configured by WEBEXT_BRIDGE_WS_URL.
"""

import asyncio
import json

from mcp.server.fastmcp import FastMCP

from webext_bridge.bridge import BridgeClient
from webext_bridge.config import BridgeConfig

mcp = FastMCP(
    "webext-bridge",
    instructions=(
        "Tools for inspecting and driving browser tabs and windows through the "
        "WebExtension test bridge. Calls fail with a 'not an HTTP/HTTPS webpage' "
        "error after the browser leaves a content page; call bridge_reset then."
    ),
)

_bridge: BridgeClient | None = None
_bridge_lock = asyncio.Lock()


async def get_bridge() -> BridgeClient:
    """Get or create the shared bridge client."""
    global _bridge
    async with _bridge_lock:
        if _bridge is None:
            _bridge = BridgeClient.from_config(BridgeConfig.from_env())
        return _bridge


def text_result(data) -> str:
    """Format result as string for MCP tool return."""
    if isinstance(data, (dict, list)):
        return json.dumps(data, indent=2)
    if data is None:
        return "null"
    return str(data)


# ── Core ────────────────────────────────────────────────────────


@mcp.tool()
async def bridge_ping() -> str:
    """Check the bridge extension responds. Returns 'pong'."""
    return text_result(await (await get_bridge()).ping())


@mcp.tool()
async def bridge_reset() -> str:
    """Navigate to a fresh test page and re-initialize the bridge.
    Use after the browser visited about:, moz-extension: or other non-HTTP pages."""
    bridge = await get_bridge()
    await bridge.reset()
    return text_result({"ready": bridge.ready})


@mcp.tool()
async def bridge_screenshot(format: str = "png") -> str:
    """Capture the visible tab. Returns a data URL."""
    return text_result(await (await get_bridge()).capture_screenshot(format))


@mcp.tool()
async def bridge_extension_url(extension_id: str) -> str:
    """Look up the moz-extension:// base URL of an installed extension by ID.
    Leaves the browser on about:config; call bridge_reset before other tools."""
    return text_result(await (await get_bridge()).get_extension_url(extension_id))


# ── Tabs ────────────────────────────────────────────────────────


@mcp.tool()
async def bridge_list_tabs() -> str:
    """List all tabs across all windows."""
    return text_result(await (await get_bridge()).get_tabs())


@mcp.tool()
async def bridge_get_tab(tab_id: int) -> str:
    """Get a single tab by ID."""
    return text_result(await (await get_bridge()).get_tab_by_id(tab_id))


@mcp.tool()
async def bridge_create_tab(url: str = "about:blank", active: bool = True) -> str:
    """Open a new tab at url."""
    return text_result(await (await get_bridge()).create_tab(url, active))


@mcp.tool()
async def bridge_close_tab(tab_id: int) -> str:
    """Close a tab."""
    await (await get_bridge()).close_tab(tab_id)
    return text_result({"closed": tab_id})


@mcp.tool()
async def bridge_update_tab(
    tab_id: int, url: str = "", active: bool | None = None,
    muted: bool | None = None, pinned: bool | None = None,
) -> str:
    """Update a tab's url, active, muted or pinned state. Empty/omitted fields are left alone."""
    props = {"url": url or None, "active": active, "muted": muted, "pinned": pinned}
    props = {k: v for k, v in props.items() if v is not None}
    return text_result(await (await get_bridge()).update_tab(tab_id, **props))


@mcp.tool()
async def bridge_execute_in_tab(tab_id: int, code: str) -> str:
    """Run JavaScript in a tab and return the first frame's result."""
    return text_result(await (await get_bridge()).execute_in_tab(tab_id, code))


# ── Windows ─────────────────────────────────────────────────────


@mcp.tool()
async def bridge_list_windows() -> str:
    """List all windows with their tabs."""
    return text_result(await (await get_bridge()).get_windows())


@mcp.tool()
async def bridge_create_window(
    url: str = "", state: str = "", width: int = 0, height: int = 0
) -> str:
    """Open a new window. state: normal, minimized, maximized or fullscreen."""
    options = {}
    if state:
        options["state"] = state
    if width:
        options["width"] = width
    if height:
        options["height"] = height
    return text_result(await (await get_bridge()).create_window(url or None, **options))


@mcp.tool()
async def bridge_close_window(window_id: int) -> str:
    """Close a window."""
    await (await get_bridge()).close_window(window_id)
    return text_result({"closed": window_id})


# ── Events ──────────────────────────────────────────────────────


@mcp.tool()
async def bridge_get_tab_events(clear: bool = False) -> str:
    """Get buffered tab created/updated/removed events (last 100).
    clear: empty the buffer after reading."""
    return text_result(await (await get_bridge()).get_tab_events(clear))


@mcp.tool()
async def bridge_get_window_events(clear: bool = False) -> str:
    """Get buffered window created/removed events (last 100).
    clear: empty the buffer after reading."""
    return text_result(await (await get_bridge()).get_window_events(clear))


# ── Waiters ─────────────────────────────────────────────────────


@mcp.tool()
async def bridge_wait_for_tab_url(pattern: str, timeout: float = 10.0) -> str:
    """Wait for a tab whose URL contains pattern. Returns the tab, or null on timeout."""
    return text_result(await (await get_bridge()).wait_for_tab_url(pattern, timeout))


@mcp.tool()
async def bridge_wait_for_tab_load(tab_id: int, timeout: float = 10.0) -> str:
    """Wait until a tab reports status 'complete'. Returns the tab, or null on timeout."""
    return text_result(await (await get_bridge()).wait_for_tab_load(tab_id, timeout))


@mcp.tool()
async def bridge_wait_for_tab_count(expected_count: int, timeout: float = 10.0) -> str:
    """Wait until exactly expected_count tabs are open (re-checked after 2s)."""
    reached = await (await get_bridge()).wait_for_tab_count(expected_count, timeout)
    return text_result({"reached": reached})


@mcp.tool()
async def bridge_wait_for_window_count(expected_count: int, timeout: float = 10.0) -> str:
    """Wait until exactly expected_count windows are open (re-checked after 2s)."""
    reached = await (await get_bridge()).wait_for_window_count(expected_count, timeout)
    return text_result({"reached": reached})


# ── Extension Forwarding ────────────────────────────────────────


@mcp.tool()
async def bridge_send_to_extension(target_extension_id: str, payload: str) -> str:
    """Send a JSON payload to another installed extension and return its reply.
    payload: JSON text, e.g. '{"action": "status"}'."""
    message = json.loads(payload)
    return text_result(
        await (await get_bridge()).send_to_extension(target_extension_id, message)
    )


def main() -> None:
    mcp.run(transport="stdio")


# ── Entry Point ─────────────────────────────────────────────────

if __name__ == "__main__":
    main()
