"""Entry point for the console relay.

Usage:
    python -m agentrelay                      # interactive relay
    python -m agentrelay --cwd ~/project -vv  # other working dir, more logging
    python -m agentrelay -p "summarize README.md"

Configuration is read from ~/.config/agentrelay/config.yaml,
<working_dir>/.agentrelay/config.yaml and the environment.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from collections.abc import Sequence
from pathlib import Path

from rich.console import Console

from agentrelay import __version__
from agentrelay.config import load_config
from agentrelay.console.renderer import ConsoleRenderer
from agentrelay.console.repl import ConsoleRelay
from agentrelay.errors import BackendTurnFailed, SessionNotFound, SessionWrongScope, UnsafeAction
from agentrelay.logging import get_logger, setup_logging
from agentrelay.safety import SafetyPolicy
from agentrelay.session.session_manager import SessionManager

log = get_logger()


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="agentrelay",
        description="Relay chat messages to Claude or Codex agents",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=None,
        help="Increase verbosity (can be repeated)",
    )
    parser.add_argument("--cwd", type=Path, help="Working directory for the agents")
    parser.add_argument("--model", help="Initial model selection (e.g. 'codex 5.3 high')")
    parser.add_argument("--chat-id", default="console", help="Chat id for ask-user requests")
    parser.add_argument("--resume", metavar="ID", help="Resume a saved session ('last' for the latest)")
    parser.add_argument("-p", "--print", dest="message", help="Run a single turn and exit")
    return parser


async def _run_once(relay: ConsoleRelay, message: str) -> int:
    try:
        result = await relay.chat.send_message(message, ConsoleRenderer(relay.console))
    except (UnsafeAction, BackendTurnFailed) as e:
        relay.console.print(f"[red]{e}[/red]")
        return 1
    return 0 if result is not None else 130


def main(argv: Sequence[str] | None = None) -> int:
    """Console entry point."""
    args = create_parser().parse_args(argv)

    working_dir = str(args.cwd.expanduser().resolve()) if args.cwd else None
    config = load_config(working_dir=working_dir)
    setup_logging(config.logging, verbose=args.verbose)

    manager = SessionManager(config)
    chat = manager.get_or_create(args.chat_id)
    console = Console()

    if args.model:
        ok, message = chat.set_model(args.model)
        if not ok:
            console.print(f"[red]{message}[/red]")
            return 2

    if args.resume:
        try:
            if args.resume == "last":
                chat.resume_last()
            else:
                chat.resume(args.resume)
        except (SessionNotFound, SessionWrongScope) as e:
            console.print(f"[red]{e}[/red]")
            return 2

    history_file = None
    runtime_dir = Path(config.paths.runtime_dir)
    try:
        runtime_dir.mkdir(parents=True, exist_ok=True)
        history_file = runtime_dir / "console_history"
    except OSError as e:
        log.warning("Cannot create runtime dir %s: %s", runtime_dir, e)

    relay = ConsoleRelay(chat, SafetyPolicy.from_config(config), console, history_file)
    try:
        if args.message:
            return asyncio.run(_run_once(relay, args.message))
        asyncio.run(relay.run())
    except KeyboardInterrupt:
        return 130
    return 0


if __name__ == "__main__":
    sys.exit(main())
