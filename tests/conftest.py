"""
Test Configuration
==================

Pytest fixtures and in-memory fakes for camera_relay.

The decoder and the publish transport are external collaborators; the
fakes below stand in for them so the pipeline can be driven
deterministically.
"""

import asyncio
import threading
import time
from typing import List, Optional

import numpy as np
import pytest

from camera_relay.errors import PublishError, StreamConnectionError
from camera_relay.stream.endpoint import StreamEndpoint
from camera_relay.stream.frame import DecodedFrame, DecodedUnit


def make_unit(
    stream_index: int = 0,
    value: int = 0,
    width: int = 4,
    height: int = 2,
    timestamp: Optional[float] = None,
) -> DecodedUnit:
    """Decoded unit whose pixels are all `value` (mod 256)."""
    image = np.full((height, width, 3), value % 256, dtype=np.uint8)
    return DecodedUnit(stream_index=stream_index, image=image, timestamp=timestamp)


def make_frame(value: int = 0, width: int = 4, height: int = 2) -> DecodedFrame:
    """RGB888 frame filled with `value`."""
    return DecodedFrame(
        width=width,
        height=height,
        data=bytes([value % 256]) * (width * height * 3),
        timestamp=float(value),
    )


class FakeSource:
    """
    Scripted VideoSource.

    Items are returned by read() in order: DecodedUnits are returned,
    exceptions are raised. After the script, read() returns None, or
    keeps producing units when `repeat` is set, until close(). With
    `block` set, read() instead hangs after the script, like a camera that
    stopped sending, until close() is called from another thread.
    """

    def __init__(
        self,
        items: Optional[list] = None,
        open_error: Optional[BaseException] = None,
        read_delay: float = 0.0,
        repeat: bool = False,
        block: bool = False,
    ) -> None:
        self.items = list(items or [])
        self.open_error = open_error
        self.read_delay = read_delay
        self.repeat = repeat
        self.block = block

        self.opened = False
        self.closed = False
        self.reads = 0
        self._counter = 0
        self._stop = threading.Event()
        self.blocked = threading.Event()

    def open(self) -> None:
        if self.open_error is not None:
            raise self.open_error
        self.opened = True

    def read(self) -> Optional[DecodedUnit]:
        if self.read_delay:
            time.sleep(self.read_delay)
        self.reads += 1

        if self.items:
            item = self.items.pop(0)
            if isinstance(item, BaseException):
                raise item
            return item

        if self.repeat and not self._stop.is_set():
            self._counter += 1
            return make_unit(0, self._counter)
        if self.block:
            self.blocked.set()
            self._stop.wait()
        return None

    def close(self) -> None:
        self._stop.set()
        self.closed = True


class RecordingPublisher:
    """Publisher that records messages, optionally slow or failing."""

    def __init__(
        self,
        topic: str = "CAMERA_RGB",
        delay: float = 0.0,
        fail_on: Optional[int] = None,
        error: Optional[BaseException] = None,
    ) -> None:
        self.topic = topic
        self.delay = delay
        self.fail_on = fail_on
        self.error = error or PublishError("transport down")
        self.messages: List = []
        self.closed = False

    async def publish(self, message) -> None:
        if self.fail_on is not None and len(self.messages) + 1 >= self.fail_on:
            raise self.error
        if self.delay:
            await asyncio.sleep(self.delay)
        self.messages.append(message)

    async def close(self) -> None:
        self.closed = True

    @property
    def versions(self) -> List[int]:
        return [m.version for m in self.messages]


@pytest.fixture
def endpoint() -> StreamEndpoint:
    """Camera endpoint with credentials and a path suffix."""
    return StreamEndpoint(
        host="10.0.0.5",
        port=554,
        username="admin",
        password="s3cret",
        suffix="stream1",
        stream_index=0,
    )


@pytest.fixture
def connection_refused() -> StreamConnectionError:
    return StreamConnectionError("Connection refused", url="rtsp://10.0.0.5:554/")


@pytest.fixture
def camera_env() -> dict:
    """Minimal environment for a single camera."""
    return {
        "CAMERA_USERNAME": "admin",
        "CAMERA_PASSWORD": "s3cret",
        "CAMERA_IP": "10.0.0.5",
    }
