"""
camera_relay
============

Latest-frame RTSP relay: decodes a live camera stream to RGB888 and
republishes only the newest frame, tagged with a stable per-camera
entity path.

Components:
    - stream: Endpoint, identity, FrameSlot, decode producer, publish
      consumer and the per-camera pipeline supervisor
    - transport: Publisher protocol and the in-process TopicHub
    - models: Published message schema
    - relay: Multi-camera fleet
    - config: Settings loading (YAML + environment)

Example:
    from camera_relay.config import load_config
    from camera_relay.relay import CameraRelay
    from camera_relay.transport import TopicHub

    settings = load_config()
    hub = TopicHub(settings.publisher.topic)
    failures = await CameraRelay(settings.camera.endpoints(), hub).run()
"""

__version__ = "0.1.0"

__all__ = [
    "__version__",
]
