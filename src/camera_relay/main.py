"""
camera_relay Main Application
=============================

FastAPI entry point for the RTSP camera relay.

On startup the lifespan loads settings, creates the TopicHub and one
CameraPipeline per configured camera, and runs them in the background.
When every pipeline has finished the server shuts itself down, leaving
restart policy to the process supervisor.

Endpoints:
    GET  /            - Service information
    GET  /health      - Liveness probe (is process alive?)
    GET  /ready       - Readiness probe (is at least one camera running?)
    GET  /metrics     - Per-camera pipeline, slot and transport counters
    WS   /ws/{topic}  - Binary RGB888 frame stream (topic CAMERA_RGB)
"""

import asyncio
import logging
import sys
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI, WebSocket
from fastapi.responses import JSONResponse

from camera_relay.config import Settings, load_config, setup_logging
from camera_relay.errors import ConfigError, EndOfStream
from camera_relay.relay import CameraRelay, SourceFactory
from camera_relay.transport.hub import Subscription, TopicHub


logger = logging.getLogger(__name__)


# =============================================================================
# Relay Task
# =============================================================================

async def run_relay(app: FastAPI) -> None:
    """Run the relay, then close the hub and request server shutdown."""
    relay: CameraRelay = app.state.relay
    hub: TopicHub = app.state.hub

    try:
        failures = await relay.run()
    finally:
        await hub.close()

    app.state.relay_failures = failures
    for label, error in failures.items():
        logger.error(f"[{label}] terminated with {type(error).__name__}: {error}")

    shutdown = getattr(app.state, "shutdown_callback", None)
    if shutdown is not None:
        logger.info("All cameras finished, shutting down")
        shutdown()


async def _end_on_disconnect(websocket: WebSocket, subscription: Subscription) -> None:
    """End the subscription when the client goes away."""
    while True:
        event = await websocket.receive()
        if event["type"] == "websocket.disconnect":
            subscription.close()
            return


# =============================================================================
# Lifespan Management
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan manager with graceful shutdown."""
    settings: Settings = app.state.settings

    # Startup
    app.state.startup_time = time.time()
    logger.info(f"Starting {settings.service.name} {settings.service.version}")

    hub = TopicHub(topic=settings.publisher.topic)
    relay = CameraRelay(
        settings.camera.endpoints(),
        hub,
        source_factory=app.state.source_factory,
        connect_timeout=settings.decoder.connect_timeout_seconds,
        read_timeout=settings.decoder.read_timeout_seconds,
    )
    app.state.hub = hub
    app.state.relay = relay
    app.state.relay_failures = {}

    relay_task = asyncio.create_task(run_relay(app), name="camera_relay")
    app.state.relay_task = relay_task

    yield

    # Shutdown
    logger.info("Shutting down gracefully...")

    if not relay_task.done():
        relay_task.cancel()
    try:
        await relay_task
    except asyncio.CancelledError:
        pass

    await hub.close()
    logger.info("Shutdown complete")


# =============================================================================
# FastAPI Application
# =============================================================================

def create_app(
    settings: Optional[Settings] = None,
    source_factory: Optional[SourceFactory] = None,
) -> FastAPI:
    """
    Build the relay application.

    Args:
        settings: Loaded settings (defaults to load_config())
        source_factory: VideoSource builder (defaults to PyAVSource)
    """
    if settings is None:
        settings = load_config()

    app = FastAPI(
        title="camera_relay",
        description="Latest-frame RTSP to RGB888 relay",
        version=settings.service.version,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.source_factory = source_factory
    app.state.startup_time = time.time()

    # -------------------------------------------------------------------------
    # HTTP Endpoints
    # -------------------------------------------------------------------------

    @app.get("/")
    async def root() -> JSONResponse:
        """Service information endpoint."""
        return JSONResponse({
            "service": settings.service.name,
            "version": settings.service.version,
            "topic": settings.publisher.topic,
            "cameras": settings.camera.count,
        })

    @app.get("/health")
    async def health() -> JSONResponse:
        """
        Liveness probe - is the process alive?

        Always returns 200 if the service is running.
        """
        return JSONResponse({
            "status": "healthy",
            "uptime_seconds": round(time.time() - app.state.startup_time, 1),
        })

    @app.get("/ready")
    async def ready() -> JSONResponse:
        """
        Readiness probe - is at least one camera pipeline running?

        Returns 200 when ready, 503 otherwise.
        """
        relay: CameraRelay = app.state.relay
        states = {p.label: p.state.value for p in relay.pipelines}

        if relay.running > 0:
            return JSONResponse({"status": "ready", "pipelines": states})
        return JSONResponse(
            {"status": "not_ready", "pipelines": states},
            status_code=503,
        )

    @app.get("/metrics")
    async def metrics() -> JSONResponse:
        """Detailed metrics for observability."""
        relay: CameraRelay = app.state.relay
        hub: TopicHub = app.state.hub
        return JSONResponse({
            "uptime_seconds": round(time.time() - app.state.startup_time, 1),
            "transport": hub.metrics(),
            "cameras": relay.metrics(),
        })

    # -------------------------------------------------------------------------
    # WebSocket Endpoints
    # -------------------------------------------------------------------------

    @app.websocket("/ws/{topic}")
    async def topic_stream(websocket: WebSocket, topic: str) -> None:
        """WebSocket endpoint streaming the newest frame of every camera."""
        hub: TopicHub = app.state.hub

        if topic != hub.topic:
            logger.warning(f"Rejected subscription to unknown topic: {topic}")
            await websocket.close(code=1008)
            return

        await websocket.accept()
        subscription = hub.subscribe()
        watcher = asyncio.create_task(_end_on_disconnect(websocket, subscription))

        try:
            while True:
                message = await subscription.get()
                await websocket.send_bytes(message.to_wire())
        except EndOfStream:
            if not watcher.done():
                logger.info(f"Topic {topic} closed, ending subscriber {subscription.id}")
                await websocket.close()
        except Exception as e:
            logger.warning(f"WebSocket error (subscriber {subscription.id}): {e}")
        finally:
            watcher.cancel()
            hub.unsubscribe(subscription)

    return app


# =============================================================================
# Main Entry Point
# =============================================================================

def main() -> int:
    """Console entry point: load config, serve until all cameras finish."""
    import uvicorn

    try:
        settings = load_config()
    except ConfigError as e:
        logging.basicConfig(level=logging.ERROR)
        logger.error(str(e))
        return 2

    setup_logging(settings)

    app = create_app(settings)
    server = uvicorn.Server(
        uvicorn.Config(
            app,
            host=settings.server.host,
            port=settings.server.port,
            log_config=None,
        )
    )
    app.state.shutdown_callback = lambda: setattr(server, "should_exit", True)

    server.run()

    return 1 if getattr(app.state, "relay_failures", None) else 0


if __name__ == "__main__":
    sys.exit(main())
