#!/usr/bin/env python3
"""
Relay Integration Check
=======================

Standalone script to soak-test a running camera_relay.

This script:
    1. Subscribes to the relay's WebSocket topic
    2. Runs for a configurable duration
    3. Logs per-camera stats every N seconds
    4. Reports final summary (fails if a version ever repeats or regresses)

Prerequisites:
    - camera_relay must be running with at least one reachable camera

Usage:
    python scripts/integration_check.py --duration 120
    python scripts/integration_check.py --url ws://localhost:8002/ws/CAMERA_RGB
"""

import argparse
import asyncio
import logging
import os
import sys
import time
from typing import Dict

import websockets

from camera_relay.models.message import PublishedMessage


# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%S",
)
logger = logging.getLogger(__name__)


class CameraStats:
    """Per-entity-path counters."""

    __slots__ = ("received", "last_version", "skipped", "regressions", "max_latency")

    def __init__(self) -> None:
        self.received: int = 0
        self.last_version: int = 0
        self.skipped: int = 0
        self.regressions: int = 0
        self.max_latency: float = 0.0

    def update(self, message: PublishedMessage) -> None:
        if message.version <= self.last_version:
            self.regressions += 1
        elif self.last_version:
            self.skipped += message.version - self.last_version - 1
        self.received += 1
        self.last_version = max(self.last_version, message.version)
        self.max_latency = max(self.max_latency, time.time() - message.header.timestamp)


async def run_check(url: str, duration: int, report_interval: int) -> Dict[str, CameraStats]:
    """
    Subscribe to the relay and collect stats.

    Args:
        url: WebSocket URL of the relay topic
        duration: Check duration in seconds
        report_interval: Seconds between progress reports

    Returns:
        Stats per entity path
    """
    logger.info("=" * 60)
    logger.info("camera_relay Integration Check")
    logger.info("=" * 60)
    logger.info(f"Relay URL: {url}")
    logger.info(f"Duration: {duration} seconds")
    logger.info("=" * 60)

    stats: Dict[str, CameraStats] = {}
    start_time = time.time()
    last_report_time = start_time

    async with websockets.connect(url, max_size=None) as ws:
        while True:
            elapsed = time.time() - start_time
            if elapsed >= duration:
                logger.info(f"Check duration ({duration}s) reached")
                break

            try:
                raw = await asyncio.wait_for(ws.recv(), timeout=1.0)
            except asyncio.TimeoutError:
                raw = None
            except websockets.ConnectionClosed as e:
                logger.warning(f"Relay closed the connection: {e}")
                break

            if isinstance(raw, bytes):
                message = PublishedMessage.from_wire(raw)
                stats.setdefault(message.header.entity_path, CameraStats()).update(message)

            if time.time() - last_report_time >= report_interval:
                logger.info("-" * 40)
                logger.info(f"Progress Report (elapsed: {elapsed:.0f}s)")
                for path, camera in stats.items():
                    logger.info(
                        f"  {path}: received={camera.received} "
                        f"version={camera.last_version} skipped={camera.skipped} "
                        f"max_latency={camera.max_latency * 1000:.0f}ms"
                    )
                last_report_time = time.time()

    logger.info("=" * 60)
    logger.info("FINAL SUMMARY")
    logger.info("=" * 60)
    total_time = time.time() - start_time
    for path, camera in stats.items():
        logger.info(
            f"{path}: {camera.received} messages, "
            f"{camera.received / total_time:.1f}/s, "
            f"skipped={camera.skipped}, regressions={camera.regressions}"
        )
    logger.info("=" * 60)

    return stats


def main():
    parser = argparse.ArgumentParser(
        description="Integration check for a running camera_relay"
    )
    parser.add_argument(
        "--url",
        type=str,
        default=os.environ.get("RELAY_URL", "ws://localhost:8002/ws/CAMERA_RGB"),
        help="WebSocket URL of the relay topic",
    )
    parser.add_argument(
        "--duration",
        type=int,
        default=120,
        help="Check duration in seconds (default: 120)",
    )
    parser.add_argument(
        "--report-interval",
        type=int,
        default=10,
        help="Seconds between progress reports (default: 10)",
    )

    args = parser.parse_args()

    stats = asyncio.run(run_check(
        url=args.url,
        duration=args.duration,
        report_interval=args.report_interval,
    ))

    received = sum(camera.received for camera in stats.values())
    regressions = sum(camera.regressions for camera in stats.values())

    if received > 0 and regressions == 0:
        logger.info("CHECK PASSED - frames received in version order")
        sys.exit(0)

    logger.error(f"CHECK FAILED - received={received}, regressions={regressions}")
    sys.exit(1)


if __name__ == "__main__":
    main()
