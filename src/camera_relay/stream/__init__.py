"""
Stream Module
=============

Decode-to-publish pipeline components.

This module provides the frame-delivery layer for camera_relay:
    - StreamEndpoint: Immutable RTSP connection target
    - resolve_session_path: Stable /camera/<host>/<suffix> identity
    - DecodedFrame: Typed RGB888 frame (internal representation)
    - FrameSlot: Single-value, latest-wins hand-off cell
    - PyAVSource: RTSP decoder backend
    - DecodeProducer: Decoder loop writing into the FrameSlot
    - PublishConsumer: Reads the newest frame and publishes it
    - CameraPipeline: Supervisor for one producer/consumer pair

Example:
    from camera_relay.stream import CameraPipeline, PyAVSource, StreamEndpoint
    from camera_relay.transport import TopicHub

    endpoint = StreamEndpoint(host="10.0.0.5", suffix="stream1")
    hub = TopicHub()
    pipeline = CameraPipeline(endpoint, PyAVSource(endpoint), hub)

    # Runs until end of stream; raises on connection/decode/publish failure
    await pipeline.run()
"""

from camera_relay.stream.endpoint import StreamEndpoint
from camera_relay.stream.identity import resolve_session_path
from camera_relay.stream.frame import DecodedFrame, DecodedUnit
from camera_relay.stream.slot import FrameSlot
from camera_relay.stream.source import PyAVSource, VideoSource
from camera_relay.stream.producer import DecodeProducer, ProducerMetrics
from camera_relay.stream.consumer import ConsumerMetrics, PublishConsumer
from camera_relay.stream.pipeline import CameraPipeline, PipelineState


__all__ = [
    "StreamEndpoint",
    "resolve_session_path",
    "DecodedFrame",
    "DecodedUnit",
    "FrameSlot",
    "VideoSource",
    "PyAVSource",
    "DecodeProducer",
    "ProducerMetrics",
    "PublishConsumer",
    "ConsumerMetrics",
    "CameraPipeline",
    "PipelineState",
]
