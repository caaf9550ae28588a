"""
Decode Producer
===============

Drives a VideoSource and feeds the FrameSlot.

This module provides the DecodeProducer class which:
    - Opens the source (fails fast with StreamConnectionError)
    - Pulls decoded units in a dedicated worker thread
    - Discards units from streams other than the configured index
    - Converts units to RGB888 DecodedFrames
    - Writes each frame into the FrameSlot, overwriting unread frames

Design Rules:
    - Never waits for the consumer (write() does not block)
    - Corrupt units are logged and skipped
    - Fatal decoder errors propagate after the slot is closed
    - The slot is ALWAYS closed when run() exits
    - The decode thread is a daemon; on cancellation the source is closed
      from a separate thread so a read blocked on the network is released
"""

import asyncio
import logging
import queue
import threading
from concurrent.futures import Executor, Future
from typing import Optional

from camera_relay.errors import DecodeError
from camera_relay.stream.converter import unit_to_frame
from camera_relay.stream.frame import DecodedFrame
from camera_relay.stream.slot import FrameSlot
from camera_relay.stream.source import VideoSource


logger = logging.getLogger(__name__)


class DecodeWorker(Executor):
    """
    Single daemon thread running blocking source calls in submission order.

    A decoder stuck on a dead camera must never hold up interpreter exit,
    so unlike ThreadPoolExecutor the thread is a daemon and is not joined
    at shutdown.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._calls: "queue.SimpleQueue" = queue.SimpleQueue()
        self._shutdown: bool = False
        self._thread = threading.Thread(target=self._work, name=name, daemon=True)
        self._thread.start()

    @property
    def alive(self) -> bool:
        return self._thread.is_alive()

    def submit(self, fn, /, *args, **kwargs) -> Future:
        if self._shutdown:
            raise RuntimeError(f"{self.name} is shut down")
        future: Future = Future()
        self._calls.put((future, fn, args, kwargs))
        return future

    def shutdown(self, wait: bool = True, *, cancel_futures: bool = False) -> None:
        if not self._shutdown:
            self._shutdown = True
            self._calls.put(None)
        if wait:
            self._thread.join()

    def _work(self) -> None:
        while True:
            call = self._calls.get()
            if call is None:
                return
            future, fn, args, kwargs = call
            if not future.set_running_or_notify_cancel():
                continue
            try:
                result = fn(*args, **kwargs)
            except BaseException as e:
                future.set_exception(e)
            else:
                future.set_result(result)


class ProducerMetrics:
    """Metrics for DecodeProducer observability."""

    __slots__ = (
        "units_received",
        "units_filtered",
        "units_skipped",
        "frames_written",
        "last_timestamp",
    )

    def __init__(self) -> None:
        self.units_received: int = 0
        self.units_filtered: int = 0
        self.units_skipped: int = 0
        self.frames_written: int = 0
        self.last_timestamp: float = 0.0

    def to_dict(self) -> dict:
        """Export metrics as dict."""
        return {
            "units_received": self.units_received,
            "units_filtered": self.units_filtered,
            "units_skipped": self.units_skipped,
            "frames_written": self.frames_written,
            "last_timestamp": self.last_timestamp,
        }


class DecodeProducer:
    """
    Decode loop writing the newest frame into a FrameSlot.

    Open, read and conversion run on one private daemon thread
    (DecodeWorker). On a normal exit the source is closed on that thread.
    On cancellation close() is issued from a separate thread so that it
    can release a read() that is blocked on the network.

    Attributes:
        source: Blocking decoder backend
        slot: FrameSlot to write frames into
        stream_index: Only units from this stream reach the slot
        connected: Whether the source opened successfully
        metrics: Operational metrics

    Example:
        slot = FrameSlot()
        producer = DecodeProducer(PyAVSource(endpoint), slot, stream_index=0)

        task = asyncio.create_task(producer.run())
    """

    def __init__(
        self,
        source: VideoSource,
        slot: FrameSlot[DecodedFrame],
        stream_index: int = 0,
        label: str = "camera",
        log_every_n_frames: int = 300,
    ) -> None:
        """
        Initialize decode producer.

        Args:
            source: Decoder backend (not yet opened)
            slot: Destination slot; closed when run() exits
            stream_index: Stream to keep when several are multiplexed
            label: Prefix for log messages
            log_every_n_frames: Log throughput every N written frames
        """
        self.source = source
        self.slot = slot
        self.stream_index = stream_index
        self.label = label
        self.log_every_n_frames = log_every_n_frames

        self._connected: bool = False
        self._executor: Optional[DecodeWorker] = None

        self.metrics = ProducerMetrics()

    @property
    def connected(self) -> bool:
        """Whether the source has been opened."""
        return self._connected

    @property
    def thread_name(self) -> str:
        """Name of the decode worker thread."""
        return f"decode-{self.label.replace(' ', '-')}"

    async def run(self) -> None:
        """
        Open the source and decode until end of stream.

        Raises:
            StreamConnectionError: If the source cannot be opened
            DecodeError: On a non-recoverable decoder fault
        """
        loop = asyncio.get_running_loop()
        self._executor = DecodeWorker(self.thread_name)
        cancelled = False

        try:
            await loop.run_in_executor(self._executor, self.source.open)
            self._connected = True
            logger.info(
                f"[{self.label}] Stream opened, relaying stream index {self.stream_index}"
            )
            await self._decode_loop(loop)

        except asyncio.CancelledError:
            cancelled = True
            logger.info(f"[{self.label}] Decode producer cancelled")
            raise
        except DecodeError as e:
            logger.error(f"[{self.label}] Fatal decode error: {e}")
            raise
        finally:
            self.slot.close()
            self._connected = False
            try:
                if cancelled:
                    threading.Thread(
                        target=self._close_source,
                        name=f"{self.thread_name}-close",
                        daemon=True,
                    ).start()
                else:
                    await loop.run_in_executor(self._executor, self._close_source)
            finally:
                self._executor.shutdown(wait=False)

    async def _decode_loop(self, loop: asyncio.AbstractEventLoop) -> None:
        while True:
            try:
                unit = await loop.run_in_executor(self._executor, self.source.read)
            except DecodeError as e:
                if not e.recoverable:
                    raise
                self.metrics.units_skipped += 1
                logger.warning(f"[{self.label}] Skipping corrupt unit: {e}")
                continue

            if unit is None:
                logger.info(
                    f"[{self.label}] End of stream after "
                    f"{self.metrics.frames_written} frames"
                )
                return

            self.metrics.units_received += 1

            if unit.stream_index != self.stream_index:
                self.metrics.units_filtered += 1
                continue

            try:
                frame = await loop.run_in_executor(
                    self._executor, unit_to_frame, unit
                )
            except DecodeError as e:
                self.metrics.units_skipped += 1
                logger.warning(f"[{self.label}] Skipping unconvertible unit: {e}")
                continue

            version = self.slot.write(frame)
            self.metrics.frames_written += 1
            self.metrics.last_timestamp = frame.timestamp

            logger.debug(
                f"[{self.label}] Wrote {frame!r} as version {version}"
            )
            if self.metrics.frames_written % self.log_every_n_frames == 0:
                logger.info(
                    f"[{self.label}] frames={self.metrics.frames_written}, "
                    f"overwritten={self.slot.overwritten}, "
                    f"filtered={self.metrics.units_filtered}, "
                    f"skipped={self.metrics.units_skipped}"
                )

    def _close_source(self) -> None:
        try:
            self.source.close()
        except Exception as e:
            logger.warning(f"[{self.label}] Error closing source: {e}")
