"""
camera_relay Real-Time OpenCV Viewer
====================================

Architecture:
    Thread 1 (daemon)  : WebSocket reader  → decodes relay messages
    Main thread        : cv2.imshow render loop, one window per camera

Every message carries its entity path (/camera/<host>/<suffix>); each
path gets its own window.

Usage:  python viewer.py
Controls: q/ESC quit, s print per-camera stats
"""

import os
import threading
import time
from typing import Dict

import cv2
import numpy as np

# ─── WebSocket ────────────────────────────────────────────────────────────────
from websockets.sync.client import connect as ws_connect

from camera_relay.models.message import PublishedMessage


# =============================================================================
# Configuration
# =============================================================================

RELAY_URL = os.getenv("RELAY_URL", "ws://localhost:8002/ws/CAMERA_RGB")
MAX_MESSAGE_BYTES = 64 * 1024 * 1024


# =============================================================================
# Thread-safe shared state
# =============================================================================

_lock = threading.Lock()
_frames: Dict[str, np.ndarray] = {}
_stats: Dict[str, dict] = {}
_state = {
    "ws_connected": False,
    "reconnect_count": 0,
}


def _set(k, v):
    with _lock:
        _state[k] = v


def _store(message: PublishedMessage) -> None:
    image = message.image
    rgb = np.frombuffer(image.data, dtype=np.uint8).reshape(image.height, image.width, 3)
    bgr = cv2.cvtColor(rgb, cv2.COLOR_RGB2BGR)
    path = message.header.entity_path

    with _lock:
        _frames[path] = bgr
        stats = _stats.setdefault(path, {"received": 0, "version": 0, "skipped": 0})
        if stats["version"] and message.version > stats["version"] + 1:
            stats["skipped"] += message.version - stats["version"] - 1
        stats["received"] += 1
        stats["version"] = message.version
        stats["latency_ms"] = (time.time() - message.header.timestamp) * 1000.0


# =============================================================================
# Thread 1: WebSocket reader
# =============================================================================

def ws_reader_thread():
    while True:
        try:
            ws = ws_connect(RELAY_URL, max_size=MAX_MESSAGE_BYTES)
            _set("ws_connected", True)
            with _lock:
                _state["reconnect_count"] += 1
            print(f"[relay] Connected to {RELAY_URL}")
            try:
                while True:
                    try:
                        raw = ws.recv(timeout=5.0)
                    except TimeoutError:
                        continue
                    if isinstance(raw, str):
                        continue
                    _store(PublishedMessage.from_wire(raw))
            finally:
                ws.close()
        except Exception as e:
            _set("ws_connected", False)
            print(f"[relay] Disconnected: {e}. Reconnecting in 1s...")
            time.sleep(1.0)


# =============================================================================
# Main render loop
# =============================================================================

def main():
    print("=" * 60)
    print("camera_relay Viewer")
    print("=" * 60)
    print(f"  Relay:  {RELAY_URL}")
    print()
    print("  Controls:")
    print("    q/ESC  quit")
    print("    s      print per-camera stats")
    print("=" * 60)

    t1 = threading.Thread(target=ws_reader_thread, daemon=True)
    t1.start()

    opened = set()

    while True:
        with _lock:
            frames = dict(_frames)

        if not frames:
            blank = np.full((480, 640, 3), 30, dtype=np.uint8)
            cv2.putText(blank, "Waiting for camera_relay...", (110, 240),
                        cv2.FONT_HERSHEY_SIMPLEX, 0.8, (100, 100, 100), 2)
            cv2.imshow("camera_relay", blank)
            opened.add("camera_relay")

        for path, frame in frames.items():
            if path not in opened:
                cv2.namedWindow(path, cv2.WINDOW_NORMAL)
                cv2.resizeWindow(path, 960, 540)
                opened.add(path)
            cv2.imshow(path, frame)

        key = cv2.waitKey(30) & 0xFF
        if key == ord('q') or key == 27:
            break
        elif key == ord('s'):
            with _lock:
                for path, stats in _stats.items():
                    print(
                        f"[stats] {path}: received={stats['received']} "
                        f"version={stats['version']} skipped={stats['skipped']} "
                        f"latency={stats.get('latency_ms', 0):.0f}ms"
                    )

    cv2.destroyAllWindows()
    print("\n[viewer] Shutdown.")


if __name__ == "__main__":
    main()
