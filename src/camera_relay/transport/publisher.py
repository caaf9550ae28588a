"""Publish transport interface."""

from typing import Protocol

from camera_relay.models.message import PublishedMessage


DEFAULT_TOPIC = "CAMERA_RGB"


class Publisher(Protocol):
    """
    Protocol for publish transports.

    publish() raises PublishError when the message cannot be accepted;
    the publish consumer treats that as fatal.
    """

    topic: str

    async def publish(self, message: PublishedMessage) -> None:
        ...

    async def close(self) -> None:
        ...
