"""
Unit tests for ProgressChannel.
"""

import asyncio
import json

import pytest

from services.progress_channel import ProgressChannel, encode_sse
from models.stock_sync import ProgressEvent


async def drain(channel: ProgressChannel) -> list[ProgressEvent]:
    return [event async for event in channel.events()]


def decode_frames(frames: list[str]) -> list[dict]:
    return [json.loads(frame[len("data: "):]) for frame in frames if frame.startswith("data: ")]


class TestProgressChannelEvents:
    """Ordering, monotonic progress and terminal events"""

    @pytest.mark.asyncio
    async def test_events_in_order_then_close(self):
        channel = ProgressChannel()
        channel.emit(10, "Reading file")
        channel.emit(40, "Processing rows", processed=50)
        channel.complete({"updated": 2})

        events = await drain(channel)

        assert [e.progress for e in events] == [10, 40, 100]
        assert events[1].to_payload() == {"progress": 40, "message": "Processing rows", "processed": 50}
        assert events[-1].payload == {"success": True, "data": {"updated": 2}}

    @pytest.mark.asyncio
    async def test_progress_never_decreases(self):
        channel = ProgressChannel()
        channel.emit(50, "half")
        channel.emit(30, "late report")
        channel.close()

        events = await drain(channel)

        assert [e.progress for e in events] == [50, 50]

    @pytest.mark.asyncio
    async def test_progress_clamped_to_100(self):
        channel = ProgressChannel()
        channel.emit(250, "overshoot")
        channel.close()

        assert (await drain(channel))[0].progress == 100

    @pytest.mark.asyncio
    async def test_failure_event_has_zero_progress(self):
        channel = ProgressChannel()
        channel.emit(60, "working")
        channel.fail("File contains no data", code="EMPTY_FILE", input_error=True)

        events = await drain(channel)

        assert events[-1].progress == 0
        assert events[-1].payload == {
            "success": False,
            "error": "File contains no data",
            "code": "EMPTY_FILE",
            "input_error": True,
        }

    @pytest.mark.asyncio
    async def test_emit_after_close_dropped(self):
        channel = ProgressChannel()
        channel.complete({})

        assert channel.emit(50, "too late") is False
        assert channel.dropped == 1
        assert len(await drain(channel)) == 1

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self):
        channel = ProgressChannel()
        channel.close()
        channel.close()

        assert await drain(channel) == []


class TestProgressChannelDisconnect:
    """Consumer going away"""

    @pytest.mark.asyncio
    async def test_early_stop_marks_disconnected(self):
        channel = ProgressChannel()
        channel.emit(10, "one")
        channel.emit(20, "two")

        stream = channel.events()
        first = await stream.__anext__()
        await stream.aclose()

        assert first.progress == 10
        assert channel.disconnected
        assert not channel.is_open
        assert channel.emit(30, "nobody listening") is False

    @pytest.mark.asyncio
    async def test_terminal_events_after_disconnect_do_not_raise(self):
        channel = ProgressChannel()
        channel.disconnect()

        assert channel.complete({"updated": 1}) is False
        assert channel.fail("boom") is False


class TestHeartbeat:
    """Idle keep-alive pings"""

    @pytest.mark.asyncio
    async def test_ping_sent_when_idle(self):
        channel = ProgressChannel(heartbeat_initial=0.01, heartbeat_interval=0.01)
        channel.start_heartbeat()

        await asyncio.sleep(0.05)
        channel.close()
        events = await drain(channel)

        assert events
        assert all(e.heartbeat for e in events)

    @pytest.mark.asyncio
    async def test_no_ping_while_busy(self):
        channel = ProgressChannel(heartbeat_initial=0.2, heartbeat_interval=0.2)
        channel.start_heartbeat()

        for i in range(5):
            channel.emit(i * 10, "working")
            await asyncio.sleep(0.02)
        channel.close()
        events = await drain(channel)

        assert not any(e.heartbeat for e in events)

    @pytest.mark.asyncio
    async def test_heartbeat_stops_on_close(self):
        channel = ProgressChannel(heartbeat_initial=0.01, heartbeat_interval=0.01)
        channel.start_heartbeat()
        channel.close()

        await asyncio.sleep(0.03)

        assert await drain(channel) == []


class TestSseEncoding:
    """Wire format"""

    def test_data_frame(self):
        frame = encode_sse(ProgressEvent(progress=40, message="Обработка"))
        assert frame == 'data: {"progress": 40, "message": "Обработка"}\n\n'

    def test_heartbeat_frame(self):
        assert encode_sse(ProgressEvent(progress=40, heartbeat=True)) == ": ping\n\n"

    @pytest.mark.asyncio
    async def test_sse_stream(self):
        channel = ProgressChannel()
        channel.emit(5, "Reading file")
        channel.complete({"updated": 0})

        frames = [frame async for frame in channel.sse()]

        assert decode_frames(frames)[-1]["success"] is True
        assert all(frame.endswith("\n\n") for frame in frames)
