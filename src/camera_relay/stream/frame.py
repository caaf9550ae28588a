"""
Frame Data Model
=================

Internal frame representations for the decode pipeline.

This module defines the two frame types that cross stage boundaries:
    - DecodedUnit: Raw output of a VideoSource, before filtering/conversion
    - DecodedFrame: Validated RGB888 frame stored in the FrameSlot

Design Rules:
    - DecodedFrame is the ONLY frame format that reaches the FrameSlot
    - DecodedFrame is immutable once produced
    - Pixel data is tightly packed RGB888, row-major, top-to-bottom
"""

from dataclasses import dataclass
from typing import Any, Optional


@dataclass(frozen=True, slots=True)
class DecodedUnit:
    """
    One decoded picture as handed over by a VideoSource.

    Attributes:
        stream_index: Index of the logical stream the unit came from
        image: Decoded picture (PyAV VideoFrame or numpy array)
        timestamp: Decoder-reported presentation time in seconds, if any
    """

    stream_index: int
    image: Any
    timestamp: Optional[float] = None

    def __repr__(self) -> str:
        return (
            f"DecodedUnit(stream_index={self.stream_index}, "
            f"timestamp={self.timestamp})"
        )


@dataclass(frozen=True, slots=True)
class DecodedFrame:
    """
    Decoded RGB888 frame ready for publishing.

    Attributes:
        width: Frame width in pixels
        height: Frame height in pixels
        data: Packed RGB888 bytes (width * height * 3)
        timestamp: Capture time in seconds (decoder clock or wallclock fallback).
            Advisory only; published messages carry their own wallclock stamp.
        stream_index: Stream the frame was decoded from
    """

    width: int
    height: int
    data: bytes
    timestamp: float
    stream_index: int = 0

    def __post_init__(self) -> None:
        if self.width <= 0 or self.height <= 0:
            raise ValueError(
                f"Frame dimensions must be positive, got {self.width}x{self.height}"
            )
        expected = self.width * self.height * 3
        if len(self.data) != expected:
            raise ValueError(
                f"RGB888 buffer for {self.width}x{self.height} must be "
                f"{expected} bytes, got {len(self.data)}"
            )

    def __repr__(self) -> str:
        """Compact repr that doesn't dump the pixel buffer."""
        return (
            f"DecodedFrame({self.width}x{self.height}, "
            f"timestamp={self.timestamp:.3f}, "
            f"stream_index={self.stream_index})"
        )
