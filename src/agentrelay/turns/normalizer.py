"""Streaming normalizer: turns accumulated text into throttled transport updates.

Per segment it tracks the full text seen so far and how much of it has been
flushed. Rules:

- The first update of a segment is always flushed. If it already looks like a
  full snapshot (>= synthetic_min_chars), only a short prefix is sent so the
  transport still shows progression.
- Later updates are flushed only once throttle_ms has elapsed since the
  previous flush.
- Ending a segment (tool start or end of turn) first reveals large texts in
  synthetic steps, then emits segment_end carrying the exact full text.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable

from agentrelay.config.schema import StreamingConfig
from agentrelay.logging import get_logger
from agentrelay.turns.events import StatusCallback, StatusKind

log = get_logger("stream")


class StreamNormalizer:
    """Segment tracking and flush decisions for one turn."""

    def __init__(
        self,
        emit: StatusCallback,
        config: StreamingConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._emit = emit
        self._config = config or StreamingConfig()
        self._clock = clock
        self._sleep = sleep

        self.segment_id = 0
        self.segment_text = ""
        self.responses: list[str] = []

        self._flushes = 0
        self._emitted_len = 0
        self._last_flush = 0.0

    @property
    def final_text(self) -> str:
        """All text received this turn, across segments."""
        return "".join(self.responses)

    @property
    def has_open_segment(self) -> bool:
        return bool(self.segment_text)

    async def add_text(self, chunk: str) -> None:
        """Append a chunk to the open segment and flush if due."""
        if not chunk:
            return
        self.responses.append(chunk)
        self.segment_text += chunk

        cfg = self._config
        if self._flushes == 0 and len(self.segment_text) >= cfg.synthetic_min_chars:
            prefix_len = max(1, min(cfg.synthetic_step_chars, len(self.segment_text) - 1))
            await self._flush(self.segment_text[:prefix_len])
            if cfg.debug:
                log.debug(
                    "[stream-debug] emitted initial prefix seg=%d len=%d total_snapshot_len=%d",
                    self.segment_id,
                    prefix_len,
                    len(self.segment_text),
                )
            return

        elapsed_ms = (self._clock() - self._last_flush) * 1000
        if self._flushes == 0 or elapsed_ms >= cfg.throttle_ms:
            await self._flush(self.segment_text)
            if cfg.debug:
                log.debug(
                    "[stream-debug] emitted text update seg=%d len=%d chunk_len=%d",
                    self.segment_id,
                    len(self.segment_text),
                    len(chunk),
                )

    async def end_segment(self) -> bool:
        """Close the open segment, if any.

        Emits the synthetic tail and segment_end, then advances the segment
        id. Returns False when there was nothing to close.
        """
        if not self.segment_text:
            return False

        text = self.segment_text
        await self._progressive_tail(text)
        await self._emit(StatusKind.SEGMENT_END, text, self.segment_id)

        self.segment_id += 1
        self.segment_text = ""
        self._flushes = 0
        self._emitted_len = 0
        self._last_flush = 0.0
        return True

    async def _flush(self, text: str) -> None:
        await self._emit(StatusKind.TEXT, text, self.segment_id)
        self._flushes += 1
        self._emitted_len = len(text)
        self._last_flush = self._clock()

    async def _progressive_tail(self, text: str) -> None:
        cfg = self._config
        step = cfg.synthetic_step_chars
        if len(text) < cfg.synthetic_min_chars or step <= 0:
            return

        start = max(self._emitted_len + step, step)
        if cfg.debug and start < len(text):
            log.debug(
                "[stream-debug] synthetic tail start=%d full_len=%d step=%d delay_ms=%d",
                start,
                len(text),
                step,
                cfg.synthetic_step_delay_ms,
            )

        for end in range(start, len(text), step):
            await self._flush(text[:end])
            if cfg.synthetic_step_delay_ms > 0:
                await self._sleep(cfg.synthetic_step_delay_ms / 1000)
