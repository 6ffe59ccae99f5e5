"""Turn execution: backend adapters, streaming normalizer, status contract."""

from agentrelay.turns.events import StatusCallback, StatusEvent, StatusKind, StatusRecorder
from agentrelay.turns.runner import AWAITING_SELECTION, TurnRunner

__all__ = [
    "AWAITING_SELECTION",
    "StatusCallback",
    "StatusEvent",
    "StatusKind",
    "StatusRecorder",
    "TurnRunner",
]
