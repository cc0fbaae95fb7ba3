"""Polling waits: retry an async check until it yields something truthy."""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Sequence, TypeVar

logger = logging.getLogger("webext_bridge.waiting")

T = TypeVar("T")

DEFAULT_TIMEOUT = 5.0
DEFAULT_INTERVAL = 0.25
COUNT_TIMEOUT = 10.0
COUNT_INTERVAL = 1.0
COUNT_SETTLE = 2.0


async def wait_for(
    predicate: Callable[[], Awaitable[T] | T],
    timeout: float = DEFAULT_TIMEOUT,
    interval: float = DEFAULT_INTERVAL,
    label: str = "wait_for",
) -> T | None:
    """Poll ``predicate`` until it returns a truthy value or ``timeout`` expires.

    Returns the truthy value itself, not ``True``. An exception raised by a
    single poll counts as "not yet" and polling carries on. The predicate is
    always called at least once, so a zero or negative timeout means one
    immediate poll. The timeout is measured from the first poll and checked
    after each one, so a slow predicate may overrun it slightly.
    """
    loop = asyncio.get_running_loop()
    start = loop.time()
    while True:
        try:
            result = predicate()
            if inspect.isawaitable(result):
                result = await result
        except Exception as exc:
            logger.debug("[%s] temporary error: %s", label, exc)
            result = None
        if result:
            return result
        if loop.time() - start >= timeout:
            return None
        await asyncio.sleep(interval)


async def wait_for_count(
    fetch: Callable[[], Awaitable[Sequence[Any]]],
    expected: int,
    timeout: float = COUNT_TIMEOUT,
    interval: float = COUNT_INTERVAL,
    settle: float = COUNT_SETTLE,
    label: str = "wait_for_count",
) -> bool:
    """Wait until ``fetch()`` returns exactly ``expected`` items.

    Unlike other waiters a match is confirmed by a second fetch after
    ``settle`` seconds; if the count moved in between, polling continues.
    Tabs and windows briefly pass through intermediate counts while the
    browser opens or closes them.
    """
    last_count = -1

    async def matched() -> bool:
        nonlocal last_count
        items = await fetch()
        if len(items) != last_count:
            logger.info("[%s] current: %d, expected: %d", label, len(items), expected)
            last_count = len(items)
        if len(items) != expected:
            return False
        await asyncio.sleep(settle)
        return len(await fetch()) == expected

    return bool(await wait_for(matched, timeout=timeout, interval=interval, label=label))


def first_match(items: Sequence[T] | None, check: Callable[[T], bool]) -> T | None:
    """First element of ``items`` satisfying ``check``, in list order."""
    for item in items or ():
        if check(item):
            return item
    return None
