"""Console relay: a terminal stand-in for the chat transport."""

from agentrelay.console.commands import CommandHandler
from agentrelay.console.renderer import ConsoleRenderer
from agentrelay.console.repl import ConsoleRelay

__all__ = ["CommandHandler", "ConsoleRelay", "ConsoleRenderer"]
