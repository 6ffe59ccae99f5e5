"""File-based side channel for the ask-user tool.

The ask-user MCP server writes one JSON file per question:

    /tmp/ask-user-<request_id>.json
    {"request_id": "...", "chat_id": "...", "question": "...",
     "options": ["...", "..."], "status": "pending"}

The relay claims pending requests for its chat (status -> "sent") and shows
them to the user. It never creates or deletes these files.
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from agentrelay.config.schema import AskUserConfig
from agentrelay.logging import get_logger

log = get_logger("ask_user")

FILE_GLOB = "ask-user-*.json"


@dataclass
class AskUserRequest:
    """A multiple-choice question waiting for the user."""

    request_id: str
    chat_id: str
    question: str
    options: list[str] = field(default_factory=list)
    path: Path | None = None


class AskUserStore:
    """Reads and claims pending ask-user requests from a directory."""

    def __init__(self, config: AskUserConfig | None = None) -> None:
        self._config = config or AskUserConfig()
        self._directory = Path(self._config.directory)

    def claim_pending(self, chat_id: str) -> list[AskUserRequest]:
        """Return pending requests for chat_id and mark them sent.

        Unreadable files are skipped with a warning.
        """
        claimed: list[AskUserRequest] = []
        for path in sorted(self._directory.glob(FILE_GLOB)):
            try:
                data: dict[str, Any] = json.loads(path.read_text(encoding="utf-8"))
            except (OSError, ValueError) as e:
                log.warning("Failed to read ask-user file %s: %s", path, e)
                continue

            if data.get("status") != "pending":
                continue
            if str(data.get("chat_id")) != str(chat_id):
                continue

            options = [str(o) for o in data.get("options") or []]
            request_id = str(data.get("request_id") or "")
            if not options or not request_id:
                continue

            data["status"] = "sent"
            try:
                path.write_text(json.dumps(data), encoding="utf-8")
            except OSError as e:
                log.warning("Failed to mark ask-user file %s as sent: %s", path, e)
                continue

            claimed.append(
                AskUserRequest(
                    request_id=request_id,
                    chat_id=str(chat_id),
                    question=str(data.get("question") or "Please choose:"),
                    options=options,
                    path=path,
                )
            )
        return claimed

    async def wait_for_pending(self, chat_id: str) -> list[AskUserRequest]:
        """Poll for pending requests with a short, bounded backoff.

        Waits initial_delay_ms for the MCP server to write its file, then
        tries up to `attempts` times, retry_delay_ms apart.
        """
        cfg = self._config
        await asyncio.sleep(cfg.initial_delay_ms / 1000)
        for attempt in range(cfg.attempts):
            claimed = self.claim_pending(chat_id)
            if claimed:
                log.info("Ask-user request %s claimed for chat %s", claimed[0].request_id, chat_id)
                return claimed
            if attempt < cfg.attempts - 1:
                await asyncio.sleep(cfg.retry_delay_ms / 1000)
        return []
