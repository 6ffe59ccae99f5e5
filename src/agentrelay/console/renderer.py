"""Terminal rendering of the status contract.

Finished segments are printed as Markdown. Tool and thinking lines, plus a
preview of the segment being streamed, live in a transient rich Live area
that disappears when the turn is done.
"""

from __future__ import annotations

from rich.console import Console, Group
from rich.live import Live
from rich.markdown import Markdown
from rich.text import Text

from agentrelay.turns.events import StatusKind

MAX_EPHEMERAL = 6
PREVIEW_CHARS = 160


class ConsoleRenderer:
    """StatusCallback that renders to a rich Console."""

    def __init__(self, console: Console | None = None, markdown: bool = True) -> None:
        self.console = console or Console()
        self._markdown = markdown
        self._live: Live | None = None
        self._ephemeral: list[Text] = []
        self._preview: Text | None = None
        self.segments: dict[int, str] = {}

    @property
    def active(self) -> bool:
        return self._live is not None

    async def __call__(
        self, kind: StatusKind, content: str, segment_id: int | None = None
    ) -> None:
        if kind is StatusKind.DONE:
            self._stop()
            return

        live = self._ensure_live()
        if kind is StatusKind.THINKING:
            snippet = " ".join(content.split())[:PREVIEW_CHARS]
            self._push(Text(f"💭 {snippet}", style="dim italic"))
        elif kind is StatusKind.TOOL:
            style = "bold red" if content.startswith(("BLOCKED", "Access denied")) else "cyan"
            self._push(Text(content, style=style))
        elif kind is StatusKind.TEXT:
            tail = content[-PREVIEW_CHARS:].replace("\n", " ")
            self._preview = Text(f"… {tail}", style="green")
        elif kind is StatusKind.SEGMENT_END:
            self._preview = None
            self.segments[segment_id or 0] = content
            live.console.print(Markdown(content) if self._markdown else content)

        live.update(self._render())

    def _ensure_live(self) -> Live:
        if self._live is None:
            self.segments = {}
            self._live = Live(
                self._render(),
                console=self.console,
                transient=True,
                refresh_per_second=8,
            )
            self._live.start()
        return self._live

    def _push(self, line: Text) -> None:
        self._ephemeral.append(line)
        del self._ephemeral[:-MAX_EPHEMERAL]

    def _render(self) -> Group:
        lines: list[Text] = list(self._ephemeral)
        if self._preview is not None:
            lines.append(self._preview)
        return Group(*lines)

    def _stop(self) -> None:
        if self._live is not None:
            self._live.stop()
            self._live = None
        self._ephemeral.clear()
        self._preview = None
