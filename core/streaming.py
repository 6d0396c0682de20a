# core/streaming.py
import asyncio
import json
import logging
import time
from typing import AsyncIterator, Callable, Final, Optional
from model.api import StreamEvent

LINE_SEP: Final[str] = "\n"
logger = logging.getLogger(__name__)

_CLOSE: Final[object] = object()


def sse_frame(event: StreamEvent) -> bytes:
    data = json.dumps(event.payload, separators=(",", ":"), default=str)
    return f"event: {event.type}{LINE_SEP}data: {data}{LINE_SEP}{LINE_SEP}".encode("utf-8")


def sse_comment(text: str) -> bytes:
    return f": {text}{LINE_SEP}{LINE_SEP}".encode("utf-8")


class Subscriber:
    """
    One open delivery channel for a job or batch id.

    Flow:
    - push() never blocks: events go on an in-memory queue, non-terminal
      events are dropped once `max_pending` are waiting.
    - A terminal event closes the channel right after it is queued.
    - events() drains the queue as SSE frames until closed, the lifetime
      ceiling passes, or the client goes away; on_close runs in all cases.
    """

    def __init__(
        self,
        subject_id: str,
        *,
        max_pending: int,
        max_lifetime: float,
        heartbeat: float,
        on_close: Optional[Callable[["Subscriber"], None]] = None,
    ) -> None:
        self.subject_id = subject_id
        self._queue: asyncio.Queue = asyncio.Queue()
        self._max_pending = max(1, max_pending)
        self._deadline = time.monotonic() + max_lifetime
        self._heartbeat = heartbeat
        self._on_close = on_close
        self._closed = False
        self.dropped = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def push(self, event: StreamEvent) -> bool:
        if self._closed:
            return False
        if not event.terminal and self._queue.qsize() >= self._max_pending:
            self.dropped += 1
            logger.warning(
                "stream.drop id=%s type=%s dropped=%d",
                self.subject_id,
                event.type,
                self.dropped,
            )
            return False
        self._queue.put_nowait(event)
        if event.terminal:
            self.close()
        return True

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(_CLOSE)
        self._notify_closed()

    def _notify_closed(self) -> None:
        cb, self._on_close = self._on_close, None
        if cb is not None:
            cb(self)

    async def events(self) -> AsyncIterator[bytes]:
        logger.info("stream.open id=%s", self.subject_id)
        reason = "closed"
        try:
            while True:
                remaining = self._deadline - time.monotonic()
                if remaining <= 0:
                    reason = "lifetime"
                    break
                try:
                    item = await asyncio.wait_for(
                        self._queue.get(), timeout=min(remaining, self._heartbeat)
                    )
                except asyncio.TimeoutError:
                    if time.monotonic() >= self._deadline:
                        reason = "lifetime"
                        break
                    yield sse_comment("keepalive")
                    continue
                if item is _CLOSE:
                    break
                yield sse_frame(item)
                if item.terminal:
                    reason = "terminal"
                    break
        except asyncio.CancelledError:
            reason = "disconnect"
            raise
        except Exception as e:
            reason = f"error:{type(e).__name__}"
            raise
        finally:
            self._closed = True
            self._notify_closed()
            logger.info("stream.close id=%s reason=%s", self.subject_id, reason)
