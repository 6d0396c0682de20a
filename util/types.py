# util/types.py
from typing import Literal


# Flow: Narrow types for SSE events.
EventType = Literal["connection", "status_change", "completed", "failed", "progress"]

TERMINAL_EVENTS: frozenset[str] = frozenset({"completed", "failed"})
