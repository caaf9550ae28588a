"""
Stream Endpoint
===============

Immutable connection parameters for one RTSP camera.

A StreamEndpoint is built once at startup from configuration and passed
explicitly into the pipeline. It fully determines the decoder URL and
the session identity path.
"""

import re
from dataclasses import dataclass
from urllib.parse import quote


RTSP_SCHEME = "rtsp"
DEFAULT_RTSP_PORT = 554

_PASSWORD_RE = re.compile(r"://([^:/@]+):([^@]+)@")


@dataclass(frozen=True, slots=True)
class StreamEndpoint:
    """
    Connection target for an RTSP stream (always TCP transport).

    Attributes:
        host: Camera host name or IP address
        port: RTSP port
        username: Login name (empty = no credentials)
        password: Login password (empty = username only)
        suffix: Path on the camera, e.g. "stream1" or "Streaming/Channels/101"
        stream_index: Logical stream to relay when several are multiplexed
    """

    host: str
    port: int = DEFAULT_RTSP_PORT
    username: str = ""
    password: str = ""
    suffix: str = ""
    stream_index: int = 0

    def __post_init__(self) -> None:
        if not self.host:
            raise ValueError("host must not be empty")
        if not 0 < self.port <= 65535:
            raise ValueError(f"port out of range: {self.port}")
        if self.stream_index < 0:
            raise ValueError(f"stream_index must be >= 0, got {self.stream_index}")

    @property
    def scheme(self) -> str:
        return RTSP_SCHEME

    @property
    def url(self) -> str:
        """Decoder URL: rtsp://[user[:pass]@]host:port/suffix"""
        userinfo = ""
        if self.username:
            userinfo = quote(self.username, safe="")
            if self.password:
                userinfo += ":" + quote(self.password, safe="")
            userinfo += "@"
        path = self.suffix.lstrip("/")
        return f"{RTSP_SCHEME}://{userinfo}{self.netloc_host}:{self.port}/{path}"

    @property
    def netloc_host(self) -> str:
        """Host as written in a URL (IPv6 literals are bracketed)."""
        if ":" in self.host and not self.host.startswith("["):
            return f"[{self.host}]"
        return self.host

    @property
    def redacted_url(self) -> str:
        """URL safe for logs (password masked)."""
        return mask_password(self.url)


def mask_password(url: str) -> str:
    """Mask the password component of a URL."""
    return _PASSWORD_RE.sub(r"://\1:****@", url)
