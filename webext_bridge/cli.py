"""CLI entry point for the WebExtension test bridge."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys

from webext_bridge.bridge import BridgeClient
from webext_bridge.config import BridgeConfig, configure_logging


def _print_json(value) -> None:
    print(json.dumps(value, indent=2))


async def cmd_ping(bridge: BridgeClient, args: argparse.Namespace) -> int:
    print(await bridge.ping())
    return 0


async def cmd_tabs(bridge: BridgeClient, args: argparse.Namespace) -> int:
    _print_json(await bridge.get_tabs())
    return 0


async def cmd_windows(bridge: BridgeClient, args: argparse.Namespace) -> int:
    _print_json(await bridge.get_windows())
    return 0


async def cmd_events(bridge: BridgeClient, args: argparse.Namespace) -> int:
    if args.category == "tabs":
        events = await bridge.get_tab_events(clear=args.clear)
    else:
        events = await bridge.get_window_events(clear=args.clear)
    _print_json(events)
    return 0


async def cmd_wait_url(bridge: BridgeClient, args: argparse.Namespace) -> int:
    tab = await bridge.wait_for_tab_url(args.pattern, timeout=args.timeout)
    if tab is None:
        print(f"No tab matching {args.pattern!r} after {args.timeout}s", file=sys.stderr)
        return 1
    _print_json(tab)
    return 0


async def cmd_extension_url(bridge: BridgeClient, args: argparse.Namespace) -> int:
    url = await bridge.get_extension_url(args.extension_id)
    if url is None:
        print(f"Extension {args.extension_id!r} is not installed", file=sys.stderr)
        return 1
    print(url)
    return 0


COMMANDS = {
    "ping": cmd_ping,
    "tabs": cmd_tabs,
    "windows": cmd_windows,
    "events": cmd_events,
    "wait-url": cmd_wait_url,
    "extension-url": cmd_extension_url,
}


async def run_command(args: argparse.Namespace, config: BridgeConfig) -> int:
    bridge = BridgeClient.from_config(config)
    try:
        return await COMMANDS[args.command](bridge, args)
    finally:
        await bridge.close()


def build_parser(config: BridgeConfig) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="webext-bridge",
        description="Inspect browser tabs and windows through the WebExtension test bridge.",
    )
    parser.add_argument(
        "--ws-url",
        default=config.ws_url,
        help=f"Automation endpoint websocket URL (default: {config.ws_url})",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Log progress to stderr")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("ping", help="Check the bridge responds")
    sub.add_parser("tabs", help="List all tabs")
    sub.add_parser("windows", help="List all windows")

    events = sub.add_parser("events", help="Show buffered lifecycle events")
    events.add_argument("category", choices=("tabs", "windows"))
    events.add_argument("--clear", action="store_true", help="Empty the buffer after reading")

    wait_url = sub.add_parser("wait-url", help="Wait for a tab whose URL contains PATTERN")
    wait_url.add_argument("pattern")
    wait_url.add_argument("--timeout", type=float, default=10.0, help="Seconds to wait (default: 10)")

    ext_url = sub.add_parser("extension-url", help="Print an installed extension's moz-extension:// URL")
    ext_url.add_argument("extension_id")

    sub.add_parser("mcp", help="Run the MCP server on stdio")
    return parser


def main(argv: list[str] | None = None) -> int:
    try:
        config = BridgeConfig.from_env()
    except ValueError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    args = build_parser(config).parse_args(argv)
    config.ws_url = args.ws_url
    configure_logging("INFO" if args.verbose else config.log_level)

    if args.command == "mcp":
        from webext_bridge import mcp_server

        mcp_server.main()
        return 0

    try:
        return asyncio.run(run_command(args, config))
    except Exception as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
