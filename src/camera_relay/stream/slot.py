"""
Frame Slot
==========

Async single-capacity "latest value wins" hand-off cell.

This module provides the FrameSlot class, which is the only shared state
between the decode producer and the publish consumer.

Design Rules:
    - Holds at most ONE value (a write replaces, never queues)
    - write() never suspends and never fails
    - read_latest() suspends until the version moves past the caller's
    - close() wakes waiting readers with EndOfStream
    - Single producer, single consumer, both on the event loop thread
"""

import asyncio
import logging
from typing import Generic, Optional, Tuple, TypeVar

from camera_relay.errors import EndOfStream


logger = logging.getLogger(__name__)

T = TypeVar("T")


class FrameSlot(Generic[T]):
    """
    Most-recent-value hand-off between one writer and one reader.

    Every write bumps a version counter. Readers pass the last version
    they saw and get back the newest value together with its version, so
    a slow reader skips intermediate values instead of building a backlog.

    {value, version, closed} are only touched from the event loop thread,
    which makes the loop itself the mutual-exclusion region; the Event is
    the wake-up primitive for the suspended reader.

    Attributes:
        version: Version of the current value (0 = nothing written yet)
        closed: Whether the writer has signalled end of stream
        writes: Total values written
        overwritten: Values replaced before any reader saw them

    Example:
        slot = FrameSlot()

        # Producer
        slot.write(frame)
        ...
        slot.close()

        # Consumer
        version = slot.version
        while True:
            try:
                frame, version = await slot.read_latest(version)
            except EndOfStream:
                break
    """

    def __init__(self) -> None:
        self._changed = asyncio.Event()
        self._value: Optional[T] = None
        self._version: int = 0
        self._read_version: int = 0
        self._closed: bool = False
        self._overwritten: int = 0

    @property
    def version(self) -> int:
        """Version of the most recent write."""
        return self._version

    @property
    def closed(self) -> bool:
        """Whether end of stream has been signalled."""
        return self._closed

    @property
    def writes(self) -> int:
        """Total values ever written."""
        return self._version

    @property
    def overwritten(self) -> int:
        """Values dropped because a newer one arrived first."""
        return self._overwritten

    def peek(self) -> Tuple[Optional[T], int]:
        """Current value and version without waiting."""
        return self._value, self._version

    def write(self, value: T) -> int:
        """
        Store a value, replacing any unread one.

        Writes after close() are ignored.

        Args:
            value: New value

        Returns:
            The new version (or the unchanged version if closed).
        """
        if self._closed:
            logger.debug("Write after close ignored")
            return self._version

        if self._version > self._read_version:
            self._overwritten += 1

        self._value = value
        self._version += 1
        self._changed.set()
        return self._version

    async def read_latest(self, last_seen_version: int) -> Tuple[T, int]:
        """
        Wait for a value newer than `last_seen_version`.

        Returns immediately if a newer value is already present, even
        when the slot has been closed since.

        Args:
            last_seen_version: Version the caller already consumed

        Returns:
            Tuple of (value, version) with version > last_seen_version.

        Raises:
            EndOfStream: If the slot is closed and holds nothing newer.
        """
        # No await between the check and wait(), so a write cannot land
        # between them unnoticed.
        while self._version <= last_seen_version:
            if self._closed:
                raise EndOfStream()
            self._changed.clear()
            await self._changed.wait()

        self._read_version = self._version
        return self._value, self._version  # type: ignore[return-value]

    def close(self) -> None:
        """Signal end of stream and wake any waiting reader."""
        if self._closed:
            return
        self._closed = True
        self._changed.set()

    def metrics(self) -> dict:
        """
        Get slot metrics for observability.

        Returns:
            Dict with version, writes, overwritten, closed
        """
        return {
            "version": self._version,
            "writes": self.writes,
            "overwritten": self._overwritten,
            "closed": self._closed,
        }
