"""
Data Models
===========

Pydantic models for messages leaving the relay.

Models:
    - MessageHeader: Timestamp + entity path
    - ImageRgb888: Uncompressed RGB888 payload
    - PublishedMessage: Complete message published on CAMERA_RGB
"""

from camera_relay.models.message import ImageRgb888, MessageHeader, PublishedMessage

__all__ = [
    "MessageHeader",
    "ImageRgb888",
    "PublishedMessage",
]
