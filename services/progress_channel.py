"""
Progress channel for long-running jobs.

An ordered, push-based event sink between the sync job (producer) and the
HTTP response (consumer). The producer never blocks and never fails on the
channel: once the consumer has gone away or the channel is closed, further
emits are dropped and reported by a False return value.

Wire format is Server-Sent Events:
    data: {"progress": 40, "message": "..."}\\n\\n
Keep-alive pings are SSE comments (": ping") sent when nothing else was
emitted for heartbeat_initial seconds, then every heartbeat_interval.
"""

from typing import AsyncIterator, Optional
import asyncio
import json
import time
import structlog

from models.stock_sync import ProgressEvent

logger = structlog.get_logger(__name__)

_CLOSE = object()


class ProgressChannel:
    """
    Ordered progress event stream.

    Percentages never go down within a job; the only exception is the
    terminal failure event, which carries progress 0.

    Usage:
        channel = ProgressChannel()
        channel.start_heartbeat()
        channel.emit(10, "Reading file")
        ...
        channel.complete({"updated": 12})

        async for chunk in channel.sse():   # in the response
            ...
    """

    def __init__(
        self,
        heartbeat_initial: float = 10.0,
        heartbeat_interval: float = 30.0
    ):
        self.heartbeat_initial = heartbeat_initial
        self.heartbeat_interval = heartbeat_interval
        self._queue: asyncio.Queue = asyncio.Queue()
        self._last_progress = 0
        self._last_emit = time.monotonic()
        self._closed = False
        self._disconnected = False
        self._dropped = 0
        self._heartbeat_task: Optional[asyncio.Task] = None
        self.events_sent = 0

    # ===================
    # STATE
    # ===================

    @property
    def is_open(self) -> bool:
        """True while events can still reach a consumer."""
        return not self._closed and not self._disconnected

    @property
    def disconnected(self) -> bool:
        return self._disconnected

    @property
    def last_progress(self) -> int:
        return self._last_progress

    @property
    def dropped(self) -> int:
        """Emits swallowed after close/disconnect."""
        return self._dropped

    # ===================
    # PRODUCER SIDE
    # ===================

    def _put(self, event: ProgressEvent) -> bool:
        if not self.is_open:
            self._dropped += 1
            if self._dropped == 1:
                logger.debug(
                    "progress_event_dropped",
                    disconnected=self._disconnected,
                    message=event.message
                )
            return False

        self._queue.put_nowait(event)
        self._last_emit = time.monotonic()
        self.events_sent += 1
        return True

    def emit(self, progress: float, message: str, **payload) -> bool:
        """
        Queue a progress event.

        Args:
            progress: Percentage; clamped to [last progress, 100]
            message: Status text for the admin UI
            **payload: Extra fields merged into the wire record

        Returns:
            False when the event was dropped (channel closed or consumer gone)
        """
        percent = max(self._last_progress, min(100, int(progress)))
        event = ProgressEvent(progress=percent, message=message, payload=payload or None)
        sent = self._put(event)
        if sent:
            self._last_progress = percent
        return sent

    def heartbeat(self) -> bool:
        """Queue a content-free keep-alive ping."""
        return self._put(ProgressEvent(progress=self._last_progress, heartbeat=True))

    def complete(self, data: dict, message: str = "Done") -> bool:
        """Send the terminal success event and close."""
        sent = self.emit(100, message, success=True, data=data)
        self.close()
        return sent

    def fail(self, error: str, code: Optional[str] = None, **payload) -> bool:
        """Send the terminal error event (progress 0) and close."""
        extra = {"success": False, "error": error}
        if code:
            extra["code"] = code
        extra.update(payload)
        sent = self._put(ProgressEvent(progress=0, message=error, payload=extra))
        self.close()
        return sent

    def close(self) -> None:
        """Finish the stream. Idempotent."""
        if self._closed:
            return
        self._closed = True
        self._stop_heartbeat()
        self._queue.put_nowait(_CLOSE)

    def disconnect(self) -> None:
        """Mark the consumer as gone; later emits are dropped."""
        if self._disconnected or self._closed:
            return
        self._disconnected = True
        self._stop_heartbeat()
        logger.info(
            "progress_consumer_disconnected",
            last_progress=self._last_progress,
            events_sent=self.events_sent
        )

    # ===================
    # HEARTBEAT
    # ===================

    def start_heartbeat(self) -> None:
        """Start the idle keep-alive timer on the running loop."""
        if self._heartbeat_task is None and self.is_open:
            self._heartbeat_task = asyncio.get_running_loop().create_task(self._heartbeat_loop())

    def _stop_heartbeat(self) -> None:
        task = self._heartbeat_task
        self._heartbeat_task = None
        if task is not None and not task.done():
            task.cancel()

    async def _heartbeat_loop(self) -> None:
        interval = self.heartbeat_initial
        wait = interval
        while True:
            await asyncio.sleep(wait)
            if not self.is_open:
                return
            idle = time.monotonic() - self._last_emit
            if idle >= interval:
                self.heartbeat()
                interval = self.heartbeat_interval
                wait = interval
            else:
                wait = interval - idle

    # ===================
    # CONSUMER SIDE
    # ===================

    async def events(self) -> AsyncIterator[ProgressEvent]:
        """
        Yield events in order until the channel closes.

        If the consumer stops iterating early (client disconnect, task
        cancellation), the channel is marked disconnected.
        """
        finished = False
        try:
            while True:
                item = await self._queue.get()
                if item is _CLOSE:
                    finished = True
                    return
                yield item
        finally:
            if not finished:
                self.disconnect()

    async def sse(self) -> AsyncIterator[str]:
        """Yield events encoded as Server-Sent Events."""
        async for event in self.events():
            yield encode_sse(event)


def encode_sse(event: ProgressEvent) -> str:
    """Encode one event as an SSE frame."""
    if event.heartbeat:
        return ": ping\n\n"
    body = json.dumps(event.to_payload(), ensure_ascii=False, default=str)
    return f"data: {body}\n\n"
