"""
Video Sources
=============

Decoder boundary for the relay.

This module provides the VideoSource protocol and the PyAV-backed
implementation that opens an RTSP stream over TCP and yields decoded
pictures tagged with their stream index.

Design Rules:
    - Sources are BLOCKING; the producer runs them in a worker thread
    - open() fails fast with StreamConnectionError
    - read() returns None at end of stream
    - close() may be called from any thread, also while read() is blocked;
      the blocked call then returns None instead of raising
    - A corrupt packet raises a recoverable DecodeError and the source
      stays usable; a demuxer fault is non-recoverable
"""

import logging
import threading
from collections import deque
from typing import Deque, Iterator, Optional, Protocol

import av

from camera_relay.errors import DecodeError, StreamConnectionError
from camera_relay.stream.endpoint import StreamEndpoint
from camera_relay.stream.frame import DecodedUnit


logger = logging.getLogger(__name__)


class VideoSource(Protocol):
    """
    Protocol for decoder backends.

    This interface is implemented by:
        - PyAVSource (RTSP via FFmpeg)
        - in-memory fakes in the test suite
    """

    def open(self) -> None:
        """
        Connect and negotiate the stream.

        Raises:
            StreamConnectionError: If the stream cannot be opened
        """
        ...

    def read(self) -> Optional[DecodedUnit]:
        """
        Block until the next decoded unit is available.

        Returns:
            Next unit, or None at end of stream (or once closed)

        Raises:
            DecodeError: recoverable for a corrupt unit, fatal otherwise
        """
        ...

    def close(self) -> None:
        """
        Release decoder and network resources. Idempotent.

        Safe to call from another thread while open() or read() is
        blocked; the blocked call returns as soon as the backend lets it.
        """
        ...


class PyAVSource:
    """
    RTSP decoder built on PyAV (libavformat/libavcodec).

    Only the video stream selected by the endpoint's stream index is
    demuxed and decoded.

    Reads carry a stall timeout in the manner of FFmpeg's RTSP `-timeout`
    option: if the camera delivers nothing for `read_timeout` seconds the
    demuxer gives up. A close() issued from another thread while a read
    is blocked is deferred until that read returns, at the latest after
    the stall timeout, and the read then reports end of stream.

    Attributes:
        endpoint: Connection target
        connect_timeout: Seconds allowed for the RTSP handshake
        read_timeout: Seconds without data before a read fails (None = wait forever)

    Example:
        source = PyAVSource(endpoint, connect_timeout=5.0)
        source.open()
        try:
            while (unit := source.read()) is not None:
                handle(unit)
        finally:
            source.close()
    """

    def __init__(
        self,
        endpoint: StreamEndpoint,
        connect_timeout: float = 5.0,
        read_timeout: Optional[float] = 5.0,
    ) -> None:
        """
        Initialize the source (does not connect).

        Args:
            endpoint: Camera endpoint
            connect_timeout: Seconds before open() gives up
            read_timeout: Stall timeout for reads once streaming
        """
        self.endpoint = endpoint
        self.connect_timeout = connect_timeout
        self.read_timeout = read_timeout

        self._container = None
        self._packets: Optional[Iterator] = None
        self._pending: Deque[DecodedUnit] = deque()

        # Guards {_busy, _closing, _container}
        self._lock = threading.Lock()
        self._busy: bool = False
        self._closing: bool = False

    @property
    def options(self) -> dict:
        """FFmpeg demuxer options."""
        return {
            "rtsp_transport": "tcp",
            "allowed_media_types": "video",
        }

    @property
    def closed(self) -> bool:
        return self._closing

    def open(self) -> None:
        url = self.endpoint.redacted_url
        if not self._begin():
            raise StreamConnectionError(f"Source closed before opening {url}", url=url)

        try:
            logger.info(f"Opening RTSP stream: {url}")
            try:
                self._container = av.open(
                    self.endpoint.url,
                    options=self.options,
                    timeout=(self.connect_timeout, self.read_timeout),
                )
            except (av.error.FFmpegError, OSError) as e:
                raise StreamConnectionError(
                    f"Failed to open {url}: {e}", url=url
                ) from e

            video = list(self._container.streams.video)
            selected = [s for s in video if s.index == self.endpoint.stream_index]
            if not selected:
                self._release()
                if not video:
                    raise StreamConnectionError(f"No video stream in {url}", url=url)
                raise StreamConnectionError(
                    f"Stream {self.endpoint.stream_index} is not a video stream in {url} "
                    f"(video streams: {[s.index for s in video]})",
                    url=url,
                )

            for stream in selected:
                logger.info(
                    f"Video stream {stream.index}: codec={stream.codec_context.name}, "
                    f"{stream.codec_context.width}x{stream.codec_context.height}"
                )

            self._packets = self._container.demux(*selected)
        finally:
            self._end()

    def read(self) -> Optional[DecodedUnit]:
        if not self._begin():
            return None

        try:
            if self._packets is None:
                raise DecodeError("Source is not open", recoverable=False)

            while not self._pending:
                try:
                    packet = next(self._packets)
                except StopIteration:
                    return None
                except av.error.FFmpegError as e:
                    if self._closing:
                        return None
                    raise DecodeError(f"Demuxer failure: {e}", recoverable=False) from e

                self._decode_packet(packet)

            return self._pending.popleft()
        finally:
            self._end()

    def _decode_packet(self, packet) -> None:
        index = packet.stream.index
        try:
            frames = packet.decode()
        except av.error.EOFError:
            return
        except av.error.InvalidDataError as e:
            raise DecodeError(
                f"Corrupt packet on stream {index}: {e}", recoverable=True
            ) from e
        except av.error.FFmpegError as e:
            raise DecodeError(
                f"Decoder failure on stream {index}: {e}", recoverable=False
            ) from e

        for frame in frames:
            self._pending.append(
                DecodedUnit(stream_index=index, image=frame, timestamp=frame.time)
            )

    def close(self) -> None:
        with self._lock:
            self._closing = True
            if self._busy:
                # The blocked call releases the container on its way out
                return
        self._release()

    def _begin(self) -> bool:
        with self._lock:
            if self._closing:
                return False
            self._busy = True
            return True

    def _end(self) -> None:
        with self._lock:
            self._busy = False
            closing = self._closing
        if closing:
            self._release()

    def _release(self) -> None:
        with self._lock:
            container, self._container = self._container, None
            self._packets = None
            self._pending.clear()

        if container is not None:
            try:
                container.close()
            finally:
                logger.info(f"Closed RTSP stream: {self.endpoint.redacted_url}")
