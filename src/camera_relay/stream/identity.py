"""Session identity paths for camera streams."""

from camera_relay.stream.endpoint import StreamEndpoint


SESSION_PATH_PREFIX = "/camera"


def resolve_session_path(endpoint: StreamEndpoint) -> str:
    """
    Derive the canonical entity path for a stream.

    Format is ``/camera/<host>/<suffix>``; the suffix segment is dropped
    when the endpoint has no path suffix.

    Example:
        >>> resolve_session_path(StreamEndpoint(host="10.0.0.5", suffix="stream1"))
        '/camera/10.0.0.5/stream1'
        >>> resolve_session_path(StreamEndpoint(host="10.0.0.5"))
        '/camera/10.0.0.5'
    """
    suffix = endpoint.suffix.strip("/")
    if not suffix:
        return f"{SESSION_PATH_PREFIX}/{endpoint.host}"
    return f"{SESSION_PATH_PREFIX}/{endpoint.host}/{suffix}"
