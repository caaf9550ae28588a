"""
Published Message Schema
========================

This module defines the Pydantic model for frames published on the
CAMERA_RGB topic, and its binary framing for WebSocket delivery.

Output Contract:
    header:
        {
            "timestamp": 1770500938.284,
            "entity_path": "/camera/10.0.0.5/stream1",
            "reference_id": 0
        }
    image:
        {
            "width": 1920,
            "height": 1080,
            "data": <RGB888 bytes, row-major, no padding>
        }

Wire Format (one WebSocket binary message):
    [4 bytes big-endian header length][UTF-8 JSON header][RGB888 payload]

    JSON header = {"timestamp", "entity_path", "reference_id",
                   "width", "height", "version"}

Example:
    from camera_relay.models.message import PublishedMessage

    message = PublishedMessage.from_frame(frame, entity_path, version=42)
    await websocket.send_bytes(message.to_wire())
"""

import json
import struct
import time
from typing import TYPE_CHECKING, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

if TYPE_CHECKING:
    from camera_relay.stream.frame import DecodedFrame


_LENGTH_PREFIX = struct.Struct(">I")


class MessageHeader(BaseModel):
    """
    Routing and timing metadata for a published frame.

    Attributes:
        timestamp: Wallclock UNIX time at publish
        entity_path: Session identity path of the camera
        reference_id: Reserved correlation id (always 0)
    """

    model_config = ConfigDict(frozen=True)

    timestamp: float = Field(
        ...,
        gt=0,
        description="UNIX timestamp in seconds when the frame was published",
    )

    entity_path: str = Field(
        ...,
        min_length=1,
        description="Session identity path, e.g. /camera/<host>/<suffix>",
    )

    reference_id: int = Field(
        default=0,
        ge=0,
        description="Reserved correlation id",
    )


class ImageRgb888(BaseModel):
    """
    Uncompressed RGB888 image payload.

    Attributes:
        width: Image width in pixels
        height: Image height in pixels
        data: Packed RGB bytes, width * height * 3 long
    """

    model_config = ConfigDict(frozen=True)

    width: int = Field(..., gt=0, description="Image width in pixels")
    height: int = Field(..., gt=0, description="Image height in pixels")
    data: bytes = Field(..., repr=False, description="RGB888 pixel data")

    @model_validator(mode="after")
    def _check_buffer_size(self) -> "ImageRgb888":
        expected = self.width * self.height * 3
        if len(self.data) != expected:
            raise ValueError(
                f"RGB888 buffer must be {expected} bytes, got {len(self.data)}"
            )
        return self


class PublishedMessage(BaseModel):
    """
    A frame as handed to the publish transport.

    Attributes:
        header: Timestamp and entity path
        image: RGB888 payload
        version: FrameSlot version the frame was read at
    """

    model_config = ConfigDict(frozen=True)

    header: MessageHeader
    image: ImageRgb888
    version: int = Field(default=0, ge=0, description="Slot version")

    @classmethod
    def from_frame(
        cls,
        frame: "DecodedFrame",
        entity_path: str,
        version: int,
        timestamp: Optional[float] = None,
    ) -> "PublishedMessage":
        """
        Stamp a decoded frame for publishing.

        Args:
            frame: Frame read from the slot
            entity_path: Session identity path
            version: Slot version of the frame
            timestamp: Publish time; defaults to time.time()
        """
        return cls(
            header=MessageHeader(
                timestamp=timestamp if timestamp is not None else time.time(),
                entity_path=entity_path,
            ),
            image=ImageRgb888(
                width=frame.width,
                height=frame.height,
                data=frame.data,
            ),
            version=version,
        )

    def to_wire(self) -> bytes:
        """Encode as a length-prefixed JSON header followed by the pixels."""
        header = json.dumps(
            {
                "timestamp": self.header.timestamp,
                "entity_path": self.header.entity_path,
                "reference_id": self.header.reference_id,
                "width": self.image.width,
                "height": self.image.height,
                "version": self.version,
            },
            separators=(",", ":"),
        ).encode("utf-8")
        return _LENGTH_PREFIX.pack(len(header)) + header + self.image.data

    @classmethod
    def from_wire(cls, payload: bytes) -> "PublishedMessage":
        """
        Decode a message produced by to_wire().

        Raises:
            ValueError: If the payload is truncated or malformed
        """
        if len(payload) < _LENGTH_PREFIX.size:
            raise ValueError("Payload shorter than length prefix")

        (header_len,) = _LENGTH_PREFIX.unpack_from(payload)
        start = _LENGTH_PREFIX.size
        end = start + header_len
        if len(payload) < end:
            raise ValueError("Payload truncated inside header")

        meta = json.loads(payload[start:end].decode("utf-8"))
        return cls(
            header=MessageHeader(
                timestamp=meta["timestamp"],
                entity_path=meta["entity_path"],
                reference_id=meta.get("reference_id", 0),
            ),
            image=ImageRgb888(
                width=meta["width"],
                height=meta["height"],
                data=payload[end:],
            ),
            version=meta.get("version", 0),
        )
