"""
Pixel Converter Tests
=====================
"""

import time

import numpy as np
import pytest

from camera_relay.errors import DecodeError
from camera_relay.stream.converter import frame_to_array, to_rgb_array, unit_to_frame
from camera_relay.stream.frame import DecodedFrame, DecodedUnit


class FakeVideoFrame:
    """Mimics av.VideoFrame.to_ndarray(format=...)."""

    def __init__(self, array, fail=False):
        self.array = array
        self.fail = fail
        self.requested_format = None

    def to_ndarray(self, format=None):
        self.requested_format = format
        if self.fail:
            raise ValueError("swscale failure")
        return self.array


class TestToRgbArray:
    """Input formats accepted by the converter."""

    def test_rgb_passthrough(self):
        rgb = np.arange(2 * 3 * 3, dtype=np.uint8).reshape(2, 3, 3)
        out = to_rgb_array(rgb)
        assert out.shape == (2, 3, 3)
        assert np.array_equal(out, rgb)
        assert out.flags["C_CONTIGUOUS"]

    def test_grey_is_expanded(self):
        grey = np.full((2, 3), 7, dtype=np.uint8)
        out = to_rgb_array(grey)
        assert out.shape == (2, 3, 3)
        assert (out == 7).all()

    def test_alpha_is_dropped(self):
        rgba = np.zeros((2, 2, 4), dtype=np.uint8)
        rgba[..., 0] = 10
        rgba[..., 3] = 255
        out = to_rgb_array(rgba)
        assert out.shape == (2, 2, 3)
        assert (out[..., 0] == 10).all()

    def test_video_frame_requests_rgb24(self):
        frame = FakeVideoFrame(np.zeros((4, 4, 3), dtype=np.uint8))
        out = to_rgb_array(frame)
        assert frame.requested_format == "rgb24"
        assert out.shape == (4, 4, 3)

    def test_video_frame_failure_is_recoverable(self):
        with pytest.raises(DecodeError) as exc_info:
            to_rgb_array(FakeVideoFrame(None, fail=True))
        assert exc_info.value.recoverable is True

    @pytest.mark.parametrize("image", [
        np.zeros((2, 2, 3), dtype=np.float32),
        np.zeros((2, 2, 2), dtype=np.uint8),
        np.zeros((2,), dtype=np.uint8),
        "not an image",
    ])
    def test_rejected_inputs(self, image):
        with pytest.raises(DecodeError):
            to_rgb_array(image)


class TestUnitToFrame:
    """Packaging decoded units as DecodedFrames."""

    def test_packs_rgb888_bytes(self):
        image = np.zeros((2, 4, 3), dtype=np.uint8)
        image[0, 0] = (1, 2, 3)
        frame = unit_to_frame(DecodedUnit(stream_index=1, image=image, timestamp=12.5))

        assert (frame.width, frame.height) == (4, 2)
        assert len(frame.data) == 4 * 2 * 3
        assert frame.data[:3] == b"\x01\x02\x03"
        assert frame.timestamp == 12.5
        assert frame.stream_index == 1

    def test_wallclock_fallback_timestamp(self):
        before = time.time()
        frame = unit_to_frame(DecodedUnit(0, np.zeros((1, 1, 3), dtype=np.uint8)))
        assert before <= frame.timestamp <= time.time()

    def test_frame_to_array_views_buffer(self):
        image = np.arange(2 * 2 * 3, dtype=np.uint8).reshape(2, 2, 3)
        frame = unit_to_frame(DecodedUnit(0, image, 1.0))
        assert np.array_equal(frame_to_array(frame), image)


class TestDecodedFrame:
    """DecodedFrame invariants."""

    def test_buffer_size_must_match(self):
        with pytest.raises(ValueError):
            DecodedFrame(width=2, height=2, data=b"\x00" * 11, timestamp=0.0)

    def test_dimensions_must_be_positive(self):
        with pytest.raises(ValueError):
            DecodedFrame(width=0, height=2, data=b"", timestamp=0.0)

    def test_repr_omits_pixels(self):
        frame = DecodedFrame(width=1, height=1, data=b"abc", timestamp=1.0)
        assert "abc" not in repr(frame)
