"""
Main entry point for the Chat Relay application.

Can be called with: python -m chat_relay [serve|chat]

``serve`` (the default) runs the relay and automatically opens the chat page
in your browser once the server is reachable. Disable with --no-open or
CHAT_RELAY_NO_BROWSER=1. ``chat`` talks to a running relay from the terminal.
"""

import argparse
import asyncio
import json
import logging
import os
import sys
import threading
import time
import webbrowser

import httpx
import uvicorn

from .client import ChatClient
from .config import load_settings
from .logging_setup import setup_logging

logger = logging.getLogger(__name__)


def _open_when_ready(url: str, timeout: float = 15.0, interval: float = 0.2):
    """Open the browser once ``url`` answers (best-effort)."""
    deadline = time.time() + timeout
    while time.time() < deadline:
        try:
            httpx.get(url, timeout=1.0)
        except httpx.HTTPError:
            time.sleep(interval)
            continue
        try:
            webbrowser.open(url, new=1)
        except webbrowser.Error as e:
            logger.warning(f"Could not open browser: {e}")
        return


def serve(args, settings):
    url = f"http://localhost:{args.port}"
    logger.info("Starting chat relay...")
    logger.info(f"Open {url} in your browser to start chatting")

    should_open = not args.no_open and os.environ.get("CHAT_RELAY_NO_BROWSER") != "1"
    if should_open:
        threading.Thread(target=_open_when_ready, args=(url,), daemon=True).start()

    from .app import app

    uvicorn.run(app, host=args.host, port=args.port, log_level=settings.log_level.lower())


async def repl(url: str, path: str, protocol: str):
    """Interactive terminal chat against a running relay."""
    printed = 0

    def on_update(message):
        nonlocal printed
        sys.stdout.write(message.text[printed:])
        sys.stdout.flush()
        printed = len(message.text)

    def on_tool(invocation):
        output = json.dumps(invocation.get("output"), ensure_ascii=False)
        sys.stdout.write(f"\n  [tool] {invocation['toolName']} -> {output}\n")
        sys.stdout.flush()

    async with ChatClient(
        base_url=url, path=path, protocol=protocol, on_update=on_update, on_tool=on_tool
    ) as client:
        print(f"Connected to {url}{path}")
        while True:
            try:
                text = await asyncio.to_thread(input, "you> ")
            except (EOFError, KeyboardInterrupt):
                print("\nbye!")
                return
            if not text.strip():
                continue
            printed = 0
            sys.stdout.write("assistant> ")
            reply = await client.submit(text)
            if reply is not None and printed == 0:
                # Error replies are not streamed
                sys.stdout.write(reply.text)
            print()


def main():
    """Main entry point for the Chat Relay application."""
    settings = load_settings()

    parser = argparse.ArgumentParser(
        description="Chat Relay - stream chat completions with tools"
    )
    subparsers = parser.add_subparsers(dest="command")

    serve_parser = subparsers.add_parser("serve", help="Run the relay server (default)")
    serve_parser.add_argument(
        "--host",
        default=settings.host,
        help=f"Interface to bind (default: {settings.host})",
    )
    serve_parser.add_argument(
        "--port",
        type=int,
        default=settings.port,
        help=f"Port to run the server on (default: {settings.port})",
    )
    serve_parser.add_argument(
        "--no-open",
        action="store_true",
        help="Do not automatically open the browser",
    )

    chat_parser = subparsers.add_parser("chat", help="Chat with a running relay")
    chat_parser.add_argument(
        "--url",
        default=f"http://localhost:{settings.port}",
        help="Relay base URL",
    )
    chat_parser.add_argument(
        "--simple",
        action="store_true",
        help="Use the plain text endpoint without tools",
    )
    chat_parser.add_argument("--path", help="Override the endpoint path")

    args = parser.parse_args()
    setup_logging(settings.log_level)

    if args.command == "chat":
        if args.simple:
            path, protocol = "/api/chat-simple", "text"
        else:
            path, protocol = "/api/chat-with-tools", "data"
        asyncio.run(repl(args.url, args.path or path, protocol))
        return

    if args.command is None:
        args = serve_parser.parse_args([])
    serve(args, settings)


if __name__ == "__main__":
    main()
