"""
Transport Module
================

Publish side of the relay.

Components:
    - Publisher: Protocol consumed by the publish consumer
    - TopicHub: In-process fan-out serving WebSocket subscribers
    - Subscription: Per-subscriber latest-per-camera mailbox
"""

from camera_relay.transport.publisher import DEFAULT_TOPIC, Publisher
from camera_relay.transport.hub import Subscription, TopicHub

__all__ = [
    "DEFAULT_TOPIC",
    "Publisher",
    "Subscription",
    "TopicHub",
]
