"""
Camera Pipeline
===============

Supervisor owning one decode producer and one publish consumer.

State machine:
    IDLE ──run()──▶ RUNNING ──clean end of stream / cancel──▶ STOPPED
                       │
                       └──connection, decode or publish error──▶ FAILED

Teardown rules:
    - Consumer exits (any reason)  → producer is cancelled
    - Producer exits (any reason)  → slot is closed, consumer drains and exits
    - Supervisor cancelled         → both tasks cancelled
    - No reconnect: the first terminal error ends the pipeline
"""

import asyncio
import logging
import time
from enum import Enum
from typing import Optional

from camera_relay.stream.consumer import PublishConsumer
from camera_relay.stream.endpoint import StreamEndpoint
from camera_relay.stream.frame import DecodedFrame
from camera_relay.stream.identity import resolve_session_path
from camera_relay.stream.producer import DecodeProducer
from camera_relay.stream.slot import FrameSlot
from camera_relay.stream.source import VideoSource
from camera_relay.transport.publisher import Publisher


logger = logging.getLogger(__name__)


class PipelineState(str, Enum):
    """Lifecycle states of a CameraPipeline."""

    IDLE = "IDLE"
    RUNNING = "RUNNING"
    STOPPED = "STOPPED"
    FAILED = "FAILED"


class CameraPipeline:
    """
    Decode → FrameSlot → publish pipeline for one camera.

    The session path is resolved once from the endpoint and shared by
    every message of the session.

    Attributes:
        endpoint: Camera connection target
        entity_path: Session identity path
        state: Current PipelineState
        error: Terminal error when state is FAILED

    Example:
        pipeline = CameraPipeline(endpoint, PyAVSource(endpoint), hub)
        await pipeline.run()   # returns on clean end of stream, raises on failure
    """

    def __init__(
        self,
        endpoint: StreamEndpoint,
        source: VideoSource,
        publisher: Publisher,
        label: Optional[str] = None,
    ) -> None:
        """
        Initialize pipeline (nothing starts until run()).

        Args:
            endpoint: Camera endpoint (provides stream index and identity)
            source: Decoder backend for the endpoint
            publisher: Transport shared with other pipelines
            label: Log prefix; defaults to the entity path
        """
        self.endpoint = endpoint
        self.entity_path = resolve_session_path(endpoint)
        self.label = label or self.entity_path

        self.slot: FrameSlot[DecodedFrame] = FrameSlot()
        self.producer = DecodeProducer(
            source,
            self.slot,
            stream_index=endpoint.stream_index,
            label=self.label,
        )
        self.consumer = PublishConsumer(
            self.slot,
            publisher,
            entity_path=self.entity_path,
            label=self.label,
        )

        self._state = PipelineState.IDLE
        self._error: Optional[BaseException] = None
        self._started_at: float = 0.0
        self._finished_at: float = 0.0

    @property
    def state(self) -> PipelineState:
        return self._state

    @property
    def error(self) -> Optional[BaseException]:
        return self._error

    def _transition(self, new_state: PipelineState) -> None:
        logger.info(f"[{self.label}] {self._state.value} -> {new_state.value}")
        self._state = new_state

    async def run(self) -> None:
        """
        Run until end of stream or the first terminal error.

        Raises:
            RuntimeError: If the pipeline was already started
            StreamConnectionError: If the stream cannot be opened
            DecodeError: On a fatal decoder fault
            PublishError: If the transport rejects a message
        """
        if self._state is not PipelineState.IDLE:
            raise RuntimeError(f"Pipeline already started (state={self._state.value})")

        self._started_at = time.time()
        self._transition(PipelineState.RUNNING)

        producer_task = asyncio.create_task(
            self.producer.run(), name=f"decode:{self.label}"
        )
        consumer_task = asyncio.create_task(
            self.consumer.run(), name=f"publish:{self.label}"
        )

        try:
            done, _ = await asyncio.wait(
                {producer_task, consumer_task},
                return_when=asyncio.FIRST_COMPLETED,
            )
            if consumer_task in done:
                producer_task.cancel()
            # Producer exit closes the slot, so the consumer finishes on its own.
            await asyncio.gather(producer_task, consumer_task, return_exceptions=True)

        except asyncio.CancelledError:
            producer_task.cancel()
            consumer_task.cancel()
            await asyncio.gather(producer_task, consumer_task, return_exceptions=True)
            self._finish(PipelineState.STOPPED)
            raise

        error = self._task_error(consumer_task) or self._task_error(producer_task)
        if error is not None:
            self._error = error
            logger.error(
                f"[{self.label}] Pipeline failed: {type(error).__name__}: {error}"
            )
            self._finish(PipelineState.FAILED)
            raise error

        self._finish(PipelineState.STOPPED)

    @staticmethod
    def _task_error(task: asyncio.Task) -> Optional[BaseException]:
        if task.cancelled():
            return None
        return task.exception()

    def _finish(self, state: PipelineState) -> None:
        self._finished_at = time.time()
        self._transition(state)

    def metrics(self) -> dict:
        """
        Get pipeline metrics for observability.

        Returns:
            Dict with state, entity path, uptime and stage counters
        """
        end = self._finished_at or time.time()
        uptime = end - self._started_at if self._started_at else 0.0
        return {
            "entity_path": self.entity_path,
            "state": self._state.value,
            "error": repr(self._error) if self._error else None,
            "connected": self.producer.connected,
            "uptime_seconds": round(uptime, 1),
            "producer": self.producer.metrics.to_dict(),
            "consumer": self.consumer.metrics.to_dict(),
            "slot": self.slot.metrics(),
        }
