"""
Error Types
===========

Exception hierarchy for the camera relay.

    CameraRelayError
    ├── ConfigError            invalid or missing configuration (startup)
    ├── StreamConnectionError  stream could not be opened (fatal)
    ├── DecodeError            decoder fault; `recoverable` selects skip vs. fatal
    └── PublishError           transport rejected a message (fatal to the consumer)

EndOfStream is not an error: it is the FrameSlot's closed signal.
"""

from typing import Optional


class CameraRelayError(Exception):
    """Base class for all relay errors."""
    pass


class ConfigError(CameraRelayError):
    """Raised when configuration is missing or malformed."""
    pass


class StreamConnectionError(CameraRelayError, ConnectionError):
    """Raised when the RTSP stream cannot be opened."""

    def __init__(self, message: str, url: Optional[str] = None) -> None:
        super().__init__(message)
        self.url = url


class DecodeError(CameraRelayError):
    """
    Raised when decoding a unit fails.

    Attributes:
        recoverable: True for an isolated corrupt unit that can be skipped,
            False when the decoder session itself is broken.
    """

    def __init__(self, message: str, recoverable: bool = True) -> None:
        super().__init__(message)
        self.recoverable = recoverable


class PublishError(CameraRelayError):
    """Raised when the publish transport fails to accept a message."""
    pass


class EndOfStream(Exception):
    """Raised by FrameSlot.read_latest once the slot is closed and drained."""
    pass
