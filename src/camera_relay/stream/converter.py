"""
Pixel Converter
===============

Dedicated module for turning decoded pictures into packed RGB888 frames.

Design Rules:
    - This is the ONLY place in the codebase that touches pixel formats
    - Validates shape and dtype
    - Conversion failures are recoverable DecodeErrors (the unit is skipped)

Accepted inputs:
    - PyAV VideoFrame (any pixel format; reformatted by libswscale)
    - numpy uint8 arrays: (H, W) grey, (H, W, 3) RGB, (H, W, 4) RGBA
"""

import logging
import time

import cv2
import numpy as np

from camera_relay.errors import DecodeError
from camera_relay.stream.frame import DecodedFrame, DecodedUnit


logger = logging.getLogger(__name__)


def to_rgb_array(image) -> np.ndarray:
    """
    Convert a decoded picture to an (H, W, 3) uint8 RGB array.

    Args:
        image: PyAV VideoFrame or numpy array

    Returns:
        C-contiguous RGB array, dtype=uint8

    Raises:
        DecodeError: (recoverable) if the picture cannot be converted
    """
    if hasattr(image, "to_ndarray"):
        try:
            rgb = image.to_ndarray(format="rgb24")
        except Exception as e:
            raise DecodeError(f"Pixel format conversion failed: {e}") from e
    elif isinstance(image, np.ndarray):
        rgb = _array_to_rgb(image)
    else:
        raise DecodeError(f"Unsupported image type: {type(image).__name__}")

    if rgb.ndim != 3 or rgb.shape[2] != 3:
        raise DecodeError(f"Invalid RGB shape after conversion: {rgb.shape}")

    return np.ascontiguousarray(rgb)


def _array_to_rgb(array: np.ndarray) -> np.ndarray:
    if array.dtype != np.uint8:
        raise DecodeError(f"Invalid dtype: {array.dtype} (expected uint8)")

    if array.ndim == 2:
        return cv2.cvtColor(array, cv2.COLOR_GRAY2RGB)

    if array.ndim == 3:
        channels = array.shape[2]
        if channels == 3:
            return array
        if channels == 4:
            return cv2.cvtColor(array, cv2.COLOR_RGBA2RGB)
        if channels == 1:
            return cv2.cvtColor(array[:, :, 0], cv2.COLOR_GRAY2RGB)

    raise DecodeError(f"Invalid image shape: {array.shape}")


def unit_to_frame(unit: DecodedUnit) -> DecodedFrame:
    """
    Package a decoded unit as an RGB888 DecodedFrame.

    Uses the decoder timestamp when present, wallclock otherwise.

    Raises:
        DecodeError: (recoverable) if conversion fails
    """
    rgb = to_rgb_array(unit.image)
    height, width = rgb.shape[:2]

    if width == 0 or height == 0:
        raise DecodeError(f"Empty picture: {width}x{height}")

    timestamp = unit.timestamp if unit.timestamp is not None else time.time()

    return DecodedFrame(
        width=width,
        height=height,
        data=rgb.tobytes(),
        timestamp=timestamp,
        stream_index=unit.stream_index,
    )


def frame_to_array(frame: DecodedFrame) -> np.ndarray:
    """View a frame's buffer as an (H, W, 3) array without copying."""
    return np.frombuffer(frame.data, dtype=np.uint8).reshape(
        frame.height, frame.width, 3
    )
