"""
Topic Hub
=========

In-process publish/subscribe fan-out for one topic.

The hub is the relay's publish transport: cameras publish into it and
WebSocket handlers subscribe to it. Each subscriber owns a mailbox that
keeps at most ONE pending message per entity path, so a slow subscriber
drops stale frames instead of queuing them, and one busy camera cannot
starve another.

Design Rules:
    - publish() never waits on subscribers
    - publish() after close() raises PublishError
    - close() ends every subscription with EndOfStream
"""

import asyncio
import itertools
import logging
from collections import OrderedDict
from typing import Dict

from camera_relay.errors import EndOfStream, PublishError
from camera_relay.models.message import PublishedMessage
from camera_relay.transport.publisher import DEFAULT_TOPIC


logger = logging.getLogger(__name__)

_subscriber_ids = itertools.count(1)


class Subscription:
    """
    Per-subscriber mailbox: latest message per entity path.

    Attributes:
        id: Unique subscriber id
        dropped: Messages replaced before they were delivered
    """

    def __init__(self) -> None:
        self.id: int = next(_subscriber_ids)
        self.dropped: int = 0
        self.delivered: int = 0

        self._pending: "OrderedDict[str, PublishedMessage]" = OrderedDict()
        self._changed = asyncio.Event()
        self._closed: bool = False

    @property
    def closed(self) -> bool:
        return self._closed

    def offer(self, message: PublishedMessage) -> None:
        """Queue a message, replacing any undelivered one from the same camera."""
        if self._closed:
            return
        path = message.header.entity_path
        if self._pending.pop(path, None) is not None:
            self.dropped += 1
        self._pending[path] = message
        self._changed.set()

    async def get(self) -> PublishedMessage:
        """
        Wait for the next message.

        Cameras are served oldest-pending first.

        Raises:
            EndOfStream: Once the subscription is closed and drained
        """
        while not self._pending:
            if self._closed:
                raise EndOfStream()
            self._changed.clear()
            await self._changed.wait()

        _, message = self._pending.popitem(last=False)
        self.delivered += 1
        return message

    def close(self) -> None:
        self._closed = True
        self._changed.set()


class TopicHub:
    """
    Single-topic fan-out publisher.

    Attributes:
        topic: Logical topic name (default CAMERA_RGB)
        published: Messages accepted by publish()

    Example:
        hub = TopicHub()

        # Camera side
        await hub.publish(message)

        # Subscriber side
        subscription = hub.subscribe()
        try:
            while True:
                message = await subscription.get()
                ...
        except EndOfStream:
            pass
        finally:
            hub.unsubscribe(subscription)
    """

    def __init__(self, topic: str = DEFAULT_TOPIC) -> None:
        self.topic = topic
        self.published: int = 0

        self._subscribers: Dict[int, Subscription] = {}
        self._closed: bool = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    async def publish(self, message: PublishedMessage) -> None:
        """
        Deliver a message to every current subscriber.

        Raises:
            PublishError: If the hub has been closed
        """
        if self._closed:
            raise PublishError(f"Topic {self.topic} is closed")

        for subscription in list(self._subscribers.values()):
            subscription.offer(message)
        self.published += 1

    def subscribe(self) -> Subscription:
        """Register a new subscriber."""
        subscription = Subscription()
        if self._closed:
            subscription.close()
            return subscription

        self._subscribers[subscription.id] = subscription
        logger.info(
            f"Subscriber {subscription.id} joined {self.topic} "
            f"({len(self._subscribers)} active)"
        )
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        """Remove a subscriber. Unknown subscribers are ignored."""
        subscription.close()
        if self._subscribers.pop(subscription.id, None) is not None:
            logger.info(
                f"Subscriber {subscription.id} left {self.topic} "
                f"(delivered={subscription.delivered}, dropped={subscription.dropped})"
            )

    async def close(self) -> None:
        """Stop accepting messages and end all subscriptions."""
        if self._closed:
            return
        self._closed = True
        for subscription in self._subscribers.values():
            subscription.close()
        self._subscribers.clear()
        logger.info(f"Topic {self.topic} closed after {self.published} messages")

    def metrics(self) -> dict:
        """
        Get hub metrics for observability.

        Returns:
            Dict with topic, published, subscribers, dropped
        """
        return {
            "topic": self.topic,
            "published": self.published,
            "subscribers": len(self._subscribers),
            "dropped": sum(s.dropped for s in self._subscribers.values()),
        }
