"""
Publish Consumer
================

Reads the newest frame from the FrameSlot and publishes it.

This module provides the PublishConsumer class which:
    - Waits for slot versions newer than the last one it published
    - Stamps each frame with wallclock time and the session path
    - Hands the resulting PublishedMessage to the Publisher
    - Exits cleanly when the slot signals end of stream

Design Rules:
    - Exactly one publish per observed slot version
    - Versions published are strictly increasing (skips allowed, repeats not)
    - PublishError is FATAL: it propagates and tears down the pipeline
"""

import logging
import time

from camera_relay.errors import EndOfStream, PublishError
from camera_relay.models.message import PublishedMessage
from camera_relay.stream.frame import DecodedFrame
from camera_relay.stream.slot import FrameSlot
from camera_relay.transport.publisher import Publisher


logger = logging.getLogger(__name__)


class ConsumerMetrics:
    """Metrics for PublishConsumer observability."""

    __slots__ = (
        "messages_published",
        "last_version",
        "versions_skipped",
        "last_publish_time",
    )

    def __init__(self) -> None:
        self.messages_published: int = 0
        self.last_version: int = 0
        self.versions_skipped: int = 0
        self.last_publish_time: float = 0.0

    def to_dict(self) -> dict:
        """Export metrics as dict."""
        return {
            "messages_published": self.messages_published,
            "last_version": self.last_version,
            "versions_skipped": self.versions_skipped,
            "last_publish_time": self.last_publish_time,
        }


class PublishConsumer:
    """
    Latest-frame publisher for one camera.

    Attributes:
        slot: FrameSlot written by the decode producer
        publisher: Transport receiving PublishedMessages
        entity_path: Session identity stamped on every message
        metrics: Operational metrics

    Example:
        consumer = PublishConsumer(slot, hub, "/camera/10.0.0.5/stream1")
        task = asyncio.create_task(consumer.run())
    """

    def __init__(
        self,
        slot: FrameSlot[DecodedFrame],
        publisher: Publisher,
        entity_path: str,
        label: str = "camera",
    ) -> None:
        self.slot = slot
        self.publisher = publisher
        self.entity_path = entity_path
        self.label = label

        self.metrics = ConsumerMetrics()

    async def run(self) -> None:
        """
        Publish frames until the slot reports end of stream.

        Raises:
            PublishError: If the transport rejects a message
        """
        last_seen_version = self.slot.version
        logger.info(
            f"[{self.label}] Publishing to {self.publisher.topic} "
            f"as {self.entity_path}"
        )

        while True:
            try:
                frame, version = await self.slot.read_latest(last_seen_version)
            except EndOfStream:
                logger.info(
                    f"[{self.label}] End of stream, published "
                    f"{self.metrics.messages_published} messages"
                )
                return

            message = PublishedMessage.from_frame(
                frame,
                entity_path=self.entity_path,
                version=version,
                timestamp=time.time(),
            )

            try:
                await self.publisher.publish(message)
            except PublishError as e:
                logger.error(f"[{self.label}] Publish failed at version {version}: {e}")
                raise
            except Exception as e:
                logger.error(f"[{self.label}] Publish failed at version {version}: {e}")
                raise PublishError(str(e)) from e

            self.metrics.versions_skipped += version - last_seen_version - 1
            self.metrics.messages_published += 1
            self.metrics.last_version = version
            self.metrics.last_publish_time = message.header.timestamp
            last_seen_version = version
