"""
Published Message Tests
=======================
"""

import struct

import pytest
from pydantic import ValidationError

from camera_relay.models.message import ImageRgb888, MessageHeader, PublishedMessage

from conftest import make_frame


class TestPublishedMessage:
    """Schema validation and stamping."""

    def test_from_frame(self):
        frame = make_frame(5, width=2, height=2)
        message = PublishedMessage.from_frame(
            frame, entity_path="/camera/h/s", version=3, timestamp=1700000000.5
        )

        assert message.header.timestamp == 1700000000.5
        assert message.header.entity_path == "/camera/h/s"
        assert message.header.reference_id == 0
        assert message.image.width == 2
        assert message.image.data == frame.data
        assert message.version == 3

    def test_image_buffer_size_is_checked(self):
        with pytest.raises(ValidationError):
            ImageRgb888(width=2, height=2, data=b"\x00" * 10)

    def test_header_requires_entity_path(self):
        with pytest.raises(ValidationError):
            MessageHeader(timestamp=1.0, entity_path="")

    def test_message_is_frozen(self):
        message = PublishedMessage.from_frame(make_frame(1), "/camera/h", version=1)
        with pytest.raises(ValidationError):
            message.version = 2


class TestWireFormat:
    """Length-prefixed JSON header followed by the RGB888 payload."""

    def test_layout(self):
        frame = make_frame(1, width=1, height=1)
        wire = PublishedMessage.from_frame(
            frame, "/camera/h", version=4, timestamp=2.0
        ).to_wire()

        (header_len,) = struct.unpack(">I", wire[:4])
        assert wire[4:4 + header_len].startswith(b"{")
        assert wire[4 + header_len:] == b"\x01\x01\x01"

    def test_decode(self):
        original = PublishedMessage.from_frame(
            make_frame(200, width=3, height=2), "/camera/10.0.0.5/stream1",
            version=17, timestamp=1770500938.284,
        )
        decoded = PublishedMessage.from_wire(original.to_wire())
        assert decoded == original

    @pytest.mark.parametrize("cut", [2, 10])
    def test_truncated_header(self, cut):
        wire = PublishedMessage.from_frame(make_frame(1), "/camera/h", version=1).to_wire()
        with pytest.raises(ValueError):
            PublishedMessage.from_wire(wire[:cut])

    def test_truncated_pixels(self):
        wire = PublishedMessage.from_frame(make_frame(1), "/camera/h", version=1).to_wire()
        with pytest.raises(ValueError):
            PublishedMessage.from_wire(wire[:-1])
