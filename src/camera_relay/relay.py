"""
Camera Relay
============

Runs one CameraPipeline per configured camera, all publishing into the
same transport.

Design Rules:
    - Cameras are independent: one failing does not stop the others
    - No reconnect; a finished pipeline stays finished
    - run() returns when every pipeline has finished and reports failures
"""

import asyncio
import logging
from typing import Callable, Dict, List, Optional

from camera_relay.stream.endpoint import StreamEndpoint
from camera_relay.stream.pipeline import CameraPipeline, PipelineState
from camera_relay.stream.source import PyAVSource, VideoSource
from camera_relay.transport.publisher import Publisher


logger = logging.getLogger(__name__)


SourceFactory = Callable[[StreamEndpoint], VideoSource]


class CameraRelay:
    """
    Fleet of camera pipelines sharing one publisher.

    Attributes:
        pipelines: One CameraPipeline per endpoint, in configuration order
        publisher: Shared transport

    Example:
        relay = CameraRelay(settings.camera.endpoints(), hub)
        failures = await relay.run()
    """

    def __init__(
        self,
        endpoints: List[StreamEndpoint],
        publisher: Publisher,
        source_factory: Optional[SourceFactory] = None,
        connect_timeout: float = 5.0,
        read_timeout: float = 5.0,
    ) -> None:
        """
        Initialize relay.

        Args:
            endpoints: Camera endpoints (at least one)
            publisher: Transport shared by all pipelines
            source_factory: Builds a VideoSource per endpoint
                (defaults to PyAVSource)
            connect_timeout: Passed to the default PyAVSource
            read_timeout: Stall timeout for the default PyAVSource
        """
        if not endpoints:
            raise ValueError("At least one camera endpoint is required")

        if source_factory is None:
            def source_factory(endpoint: StreamEndpoint) -> VideoSource:
                return PyAVSource(
                    endpoint,
                    connect_timeout=connect_timeout,
                    read_timeout=read_timeout,
                )

        self.publisher = publisher
        self.pipelines: List[CameraPipeline] = [
            CameraPipeline(
                endpoint,
                source_factory(endpoint),
                publisher,
                label=f"camera {idx}",
            )
            for idx, endpoint in enumerate(endpoints)
        ]

    @property
    def running(self) -> int:
        """Number of pipelines currently RUNNING."""
        return sum(1 for p in self.pipelines if p.state is PipelineState.RUNNING)

    async def run(self) -> Dict[str, BaseException]:
        """
        Run every pipeline until it finishes.

        Returns:
            Mapping of pipeline label to terminal error for failed cameras
        """
        logger.info(
            f"Starting relay for {len(self.pipelines)} camera(s) "
            f"on topic {self.publisher.topic}"
        )
        for pipeline in self.pipelines:
            logger.info(
                f"[{pipeline.label}] {pipeline.endpoint.redacted_url} "
                f"-> {pipeline.entity_path}"
            )

        results = await asyncio.gather(
            *(pipeline.run() for pipeline in self.pipelines),
            return_exceptions=True,
        )

        failures: Dict[str, BaseException] = {}
        for pipeline, result in zip(self.pipelines, results):
            if isinstance(result, asyncio.CancelledError):
                continue
            if isinstance(result, BaseException):
                failures[pipeline.label] = result

        logger.info(
            f"Relay finished: {len(self.pipelines) - len(failures)} stopped, "
            f"{len(failures)} failed"
        )
        return failures

    def metrics(self) -> dict:
        """Per-camera pipeline metrics keyed by label."""
        return {pipeline.label: pipeline.metrics() for pipeline in self.pipelines}
