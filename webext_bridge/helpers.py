"""URL helpers for pages the bridge can inject into."""

from __future__ import annotations

import time

CONTENT_SCHEMES = ("http://", "https://")


def generate_test_url(test_name: str = "test", port: int = 8080, host: str = "127.0.0.1") -> str:
    """Return a unique URL on the local test page server.

    The timestamp suffix keeps repeated navigations from being treated as
    same-document reloads.
    """
    timestamp = int(time.time() * 1000)
    return f"http://{host}:{port}/{test_name}-{timestamp}"


def extension_url_for_uuid(uuid: str) -> str:
    return f"moz-extension://{uuid}"


def is_content_url(url: str | None) -> bool:
    """True for http(s) pages, the only ones the relay content script runs on."""
    return bool(url) and url.startswith(CONTENT_SCHEMES)
