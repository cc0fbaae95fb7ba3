"""WebSocket client for the browser automation endpoint.

Speaks the JSON request/response framing of the automation agent running in
the browser and exposes the handful of driver commands the bridge needs,
plus ``invoke``, which runs relay actions through the page relay.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any
from uuid import uuid4

import websockets
import websockets.exceptions

from webext_bridge.errors import RemoteOperationError

logger = logging.getLogger("webext_bridge.channel")

MAX_FRAME_SIZE = 10 * 1024 * 1024  # screenshots can exceed 1MB
MAX_RECV_ATTEMPTS = 10

# Posts one bridge-request to the content-script relay behind window.TestBridge
# and resolves with the reply rebuilt as a {success, data|error} envelope.
RELAY_INVOKE_JS = """
const [action, data] = arguments;
const id = `driver-${Date.now()}-${Math.random().toString(36).slice(2)}`;
return new Promise((resolve) => {
  function onMessage(event) {
    if (event.source !== window || !event.data) return;
    if (event.data.type !== 'bridge-response' || event.data.id !== id) return;
    window.removeEventListener('message', onMessage);
    resolve(event.data.error
      ? {success: false, error: event.data.error}
      : {success: true, data: event.data.response});
  }
  window.addEventListener('message', onMessage);
  window.postMessage({type: 'bridge-request', id, action, data}, '*');
});
"""


def unwrap(envelope: Any, action: str | None = None) -> Any:
    """Return ``data`` from a relay envelope or raise its ``error``.

    Anything that does not look like an envelope is returned as-is; the
    page-side relay may already have unwrapped it.
    """
    if not isinstance(envelope, dict) or "success" not in envelope:
        return envelope
    if envelope["success"]:
        return envelope.get("data")
    raise RemoteOperationError(envelope.get("error") or "Unknown relay error", action)


class RemoteChannel:
    """One lazily opened connection to the automation endpoint."""

    def __init__(self, ws_url: str, command_timeout: float = 120.0):
        self.ws_url = ws_url
        self.command_timeout = command_timeout
        self._ws = None
        self._connect_lock = asyncio.Lock()
        self._command_lock = asyncio.Lock()

    async def _get_ws(self):
        async with self._connect_lock:
            if self._ws is None:
                logger.info("connecting to %s", self.ws_url)
                self._ws = await websockets.connect(
                    self.ws_url,
                    max_size=MAX_FRAME_SIZE,
                    ping_interval=30,
                    ping_timeout=120,
                )
            return self._ws

    async def _drop(self) -> None:
        old_ws, self._ws = self._ws, None
        if old_ws is not None:
            try:
                await old_ws.close()
            except Exception as exc:
                logger.debug("error closing stale connection: %s", exc)

    async def command(self, method: str, params: dict | None = None) -> Any:
        """Send one command and return its ``result``.

        Retries once, on a fresh connection, when the socket itself fails.
        Errors reported by the endpoint are never retried.
        """
        async with self._command_lock:
            for attempt in range(2):
                try:
                    ws = await self._get_ws()
                    msg_id = str(uuid4())
                    msg = {"id": msg_id, "method": method, "params": params or {}}
                    await ws.send(json.dumps(msg))
                    resp = await self._recv_matching(ws, msg_id, method)
                except (OSError, asyncio.TimeoutError, websockets.exceptions.ConnectionClosed) as exc:
                    if attempt == 0:
                        logger.info("%s: connection error (%s), reconnecting", method, exc)
                        await self._drop()
                        continue
                    raise
                if "error" in resp:
                    error = resp["error"]
                    message = error.get("message", "Unknown browser error") if isinstance(error, dict) else str(error)
                    raise RemoteOperationError(message, method)
                return resp.get("result", {})
        raise RuntimeError("command: unreachable")

    async def _recv_matching(self, ws, msg_id: str, method: str) -> dict:
        for _ in range(MAX_RECV_ATTEMPTS):
            raw = await asyncio.wait_for(ws.recv(), timeout=self.command_timeout)
            resp = json.loads(raw)
            if resp.get("id") == msg_id:
                return resp
        raise RemoteOperationError(
            f"{method}: no matching response after {MAX_RECV_ATTEMPTS} messages", method
        )

    async def close(self) -> None:
        await self._drop()

    # ── Driver commands ──

    async def get_current_url(self) -> str:
        result = await self.command("get_current_url")
        return result.get("url", "") if isinstance(result, dict) else str(result)

    async def navigate(self, url: str) -> None:
        await self.command("navigate", {"url": url})

    async def window_handles(self) -> list[str]:
        result = await self.command("get_window_handles")
        return list(result.get("handles", [])) if isinstance(result, dict) else list(result)

    async def switch_to_window(self, handle: str) -> None:
        await self.command("switch_to_window", {"handle": handle})

    async def execute_script(self, script: str, *args: Any) -> Any:
        result = await self.command("execute_script", {"script": script, "args": list(args)})
        return result.get("value") if isinstance(result, dict) else result

    async def set_context(self, context: str) -> None:
        await self.command("set_context", {"context": context})

    async def invoke(self, action: str, args: dict | None = None) -> Any:
        """Run a relay action in the current page; returns its raw relay envelope."""
        return await self.execute_script(RELAY_INVOKE_JS, action, args or {})
