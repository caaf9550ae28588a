"""
Decode Producer Tests
=====================

Stream-index filtering, skip policy, fatal errors and slot closing.
"""

import asyncio
import threading

import numpy as np
import pytest

from camera_relay.errors import DecodeError, EndOfStream, StreamConnectionError
from camera_relay.stream.frame import DecodedUnit
from camera_relay.stream.producer import DecodeProducer, DecodeWorker
from camera_relay.stream.slot import FrameSlot

from conftest import FakeSource, make_unit


async def collect(slot: FrameSlot) -> list:
    """Drain every version written to the slot (slot must already be closed)."""
    values = []
    version = 0
    while True:
        try:
            value, version = await slot.read_latest(version)
        except EndOfStream:
            return values
        values.append(value)


def decode_threads(prefix: str) -> list:
    return [t for t in threading.enumerate() if t.name.startswith(prefix)]


async def wait_until(predicate, timeout: float = 2.0) -> bool:
    for _ in range(int(timeout / 0.01)):
        if predicate():
            return True
        await asyncio.sleep(0.01)
    return predicate()


class TestStreamIndexFiltering:
    """Only the configured stream reaches the slot."""

    @pytest.mark.asyncio
    async def test_indices_0_1_0_2_0_keep_first_third_fifth(self):
        units = [make_unit(idx, value) for value, idx in enumerate([0, 1, 0, 2, 0], start=1)]
        slot = FrameSlot()
        written = []
        original_write = slot.write

        def recording_write(frame):
            written.append(frame)
            return original_write(frame)

        slot.write = recording_write
        producer = DecodeProducer(FakeSource(units), slot, stream_index=0)

        await asyncio.wait_for(producer.run(), timeout=5.0)

        assert [f.data[0] for f in written] == [1, 3, 5]
        assert producer.metrics.units_received == 5
        assert producer.metrics.units_filtered == 2
        assert producer.metrics.frames_written == 3

    @pytest.mark.asyncio
    async def test_non_zero_index(self):
        units = [make_unit(0, 1), make_unit(1, 2), make_unit(1, 3)]
        slot = FrameSlot()
        producer = DecodeProducer(FakeSource(units), slot, stream_index=1)

        await producer.run()

        assert slot.version == 2
        frame, _ = slot.peek()
        assert frame.data[0] == 3
        assert frame.stream_index == 1


class TestProducerLifecycle:
    """Open, end of stream and error handling."""

    @pytest.mark.asyncio
    async def test_end_of_stream_closes_slot_and_source(self):
        source = FakeSource([make_unit(0, 1), make_unit(0, 2)])
        slot = FrameSlot()
        producer = DecodeProducer(source, slot)

        await producer.run()

        assert slot.closed
        assert source.opened and source.closed
        assert producer.connected is False
        assert [f.data[0] for f in await collect(slot)] == [2]

    @pytest.mark.asyncio
    async def test_connection_error_fails_before_loop(self, connection_refused):
        source = FakeSource([make_unit(0, 1)], open_error=connection_refused)
        slot = FrameSlot()
        producer = DecodeProducer(source, slot)

        with pytest.raises(StreamConnectionError):
            await producer.run()

        assert slot.closed
        assert slot.version == 0
        assert source.reads == 0

    @pytest.mark.asyncio
    async def test_recoverable_errors_are_skipped(self):
        source = FakeSource([
            make_unit(0, 1),
            DecodeError("corrupt macroblock", recoverable=True),
            DecodedUnit(0, np.zeros((2, 2), dtype=np.float64)),
            make_unit(0, 4),
        ])
        slot = FrameSlot()
        producer = DecodeProducer(source, slot)

        await producer.run()

        assert producer.metrics.units_skipped == 2
        assert producer.metrics.frames_written == 2
        assert slot.peek()[0].data[0] == 4

    @pytest.mark.asyncio
    async def test_fatal_error_closes_slot_and_propagates(self):
        source = FakeSource([
            make_unit(0, 1),
            DecodeError("decoder session lost", recoverable=False),
            make_unit(0, 2),
        ])
        slot = FrameSlot()
        producer = DecodeProducer(source, slot)

        with pytest.raises(DecodeError) as exc_info:
            await producer.run()

        assert exc_info.value.recoverable is False
        assert slot.closed
        assert slot.version == 1
        assert source.closed

    @pytest.mark.asyncio
    async def test_cancellation_closes_slot(self):
        source = FakeSource(read_delay=0.005, repeat=True)
        slot = FrameSlot()
        producer = DecodeProducer(source, slot)

        task = asyncio.create_task(producer.run())
        await asyncio.sleep(0.1)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert slot.closed
        assert slot.version > 0

        # close() runs on the decode thread once the in-flight read returns
        for _ in range(100):
            if source.closed:
                break
            await asyncio.sleep(0.01)
        assert source.closed

    @pytest.mark.asyncio
    async def test_decoder_timestamp_recorded(self):
        slot = FrameSlot()
        producer = DecodeProducer(FakeSource([make_unit(0, 1, timestamp=42.0)]), slot)

        await producer.run()

        assert producer.metrics.last_timestamp == 42.0

    @pytest.mark.asyncio
    async def test_cancel_releases_read_blocked_on_dead_camera(self):
        source = FakeSource([make_unit(0, 1)], block=True)
        slot = FrameSlot()
        producer = DecodeProducer(source, slot, label="stalled camera")

        task = asyncio.create_task(producer.run())
        assert await wait_until(source.blocked.is_set)
        threads = decode_threads(producer.thread_name)
        assert threads and all(t.daemon for t in threads)

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await asyncio.wait_for(task, timeout=1.0)

        assert slot.closed
        assert await wait_until(lambda: source.closed)
        assert await wait_until(lambda: not decode_threads(producer.thread_name))


class TestDecodeWorker:
    """Single daemon thread executor used for source calls."""

    def test_runs_calls_in_order_on_one_daemon_thread(self):
        worker = DecodeWorker("decode-worker-test")
        seen = []
        futures = [
            worker.submit(lambda i=i: seen.append((i, threading.current_thread().name)))
            for i in range(3)
        ]
        for future in futures:
            future.result(timeout=1.0)

        assert [i for i, _ in seen] == [0, 1, 2]
        assert {name for _, name in seen} == {"decode-worker-test"}
        assert all(t.daemon for t in decode_threads("decode-worker-test"))

        worker.shutdown()
        assert not worker.alive

    def test_exceptions_are_delivered_to_the_caller(self):
        worker = DecodeWorker("decode-worker-errors")
        future = worker.submit(lambda: 1 / 0)

        with pytest.raises(ZeroDivisionError):
            future.result(timeout=1.0)
        worker.shutdown()

    def test_submit_after_shutdown_is_rejected(self):
        worker = DecodeWorker("decode-worker-closed")
        worker.shutdown()

        with pytest.raises(RuntimeError):
            worker.submit(print)
