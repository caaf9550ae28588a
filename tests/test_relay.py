"""
Camera Relay Tests
==================

Several independent pipelines sharing one transport.
"""

import asyncio

import pytest

from camera_relay.errors import StreamConnectionError
from camera_relay.relay import CameraRelay
from camera_relay.stream.endpoint import StreamEndpoint
from camera_relay.stream.pipeline import PipelineState
from camera_relay.stream.source import PyAVSource

from conftest import FakeSource, RecordingPublisher, make_unit


FRONT = StreamEndpoint(host="10.0.0.5", suffix="front")
BACK = StreamEndpoint(host="10.0.0.6", suffix="back")


class TestCameraRelay:
    """Cameras run and fail independently."""

    @pytest.mark.asyncio
    async def test_one_failure_does_not_stop_others(self):
        sources = {
            FRONT.host: FakeSource(
                open_error=StreamConnectionError("Connection refused", url=FRONT.redacted_url)
            ),
            BACK.host: FakeSource(
                [make_unit(0, value) for value in range(1, 4)], read_delay=0.01
            ),
        }
        publisher = RecordingPublisher()
        relay = CameraRelay([FRONT, BACK], publisher, source_factory=lambda e: sources[e.host])

        failures = await asyncio.wait_for(relay.run(), timeout=5.0)

        assert list(failures) == ["camera 0"]
        assert isinstance(failures["camera 0"], StreamConnectionError)
        front, back = relay.pipelines
        assert front.state is PipelineState.FAILED
        assert back.state is PipelineState.STOPPED
        assert {m.header.entity_path for m in publisher.messages} == {"/camera/10.0.0.6/back"}

    @pytest.mark.asyncio
    async def test_all_cameras_publish_to_shared_transport(self):
        publisher = RecordingPublisher()
        relay = CameraRelay(
            [FRONT, BACK],
            publisher,
            source_factory=lambda e: FakeSource([make_unit(0, 1)], read_delay=0.01),
        )

        failures = await asyncio.wait_for(relay.run(), timeout=5.0)

        assert failures == {}
        assert sorted(m.header.entity_path for m in publisher.messages) == [
            "/camera/10.0.0.5/front",
            "/camera/10.0.0.6/back",
        ]
        assert relay.running == 0

    @pytest.mark.asyncio
    async def test_running_count_and_metrics(self):
        relay = CameraRelay(
            [FRONT, BACK],
            RecordingPublisher(),
            source_factory=lambda e: FakeSource(read_delay=0.005, repeat=True),
        )
        task = asyncio.create_task(relay.run())
        await asyncio.sleep(0.05)

        assert relay.running == 2
        metrics = relay.metrics()
        assert set(metrics) == {"camera 0", "camera 1"}
        assert metrics["camera 1"]["entity_path"] == "/camera/10.0.0.6/back"

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert relay.running == 0

    def test_requires_endpoints(self):
        with pytest.raises(ValueError):
            CameraRelay([], RecordingPublisher())

    def test_default_source_is_pyav(self):
        relay = CameraRelay([FRONT], RecordingPublisher(), connect_timeout=2.0, read_timeout=9.0)
        source = relay.pipelines[0].producer.source

        assert isinstance(source, PyAVSource)
        assert source.connect_timeout == 2.0
        assert source.read_timeout == 9.0
