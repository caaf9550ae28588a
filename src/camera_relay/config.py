"""
camera_relay Configuration
==========================

This module handles configuration loading for the camera relay.

Configuration Sources (in order of precedence):
    1. Environment variables (highest priority)
    2. config.yaml file
    3. Default values (lowest priority)

Camera Variables (comma-separated, one entry per camera):
    CAMERA_IP          -> camera.ip            (required)
    CAMERA_USERNAME    -> camera.username      (required, may be empty)
    CAMERA_PASSWORD    -> camera.password      (required, may be empty)
    CAMERA_PORT        -> camera.port          (default 554)
    CAMERA_URI_SUFFIX  -> camera.uri_suffix    (default "")
    STREAM_INDEX       -> camera.stream_index  (default 0)

Service Variables:
    RELAY_CONNECT_TIMEOUT -> decoder.connect_timeout_seconds
    RELAY_READ_TIMEOUT    -> decoder.read_timeout_seconds
    RELAY_TOPIC           -> publisher.topic
    RELAY_PORT            -> server.port
    PORT                  -> server.port (takes precedence over RELAY_PORT)
    RELAY_LOG_LEVEL       -> logging.level
    RELAY_LOG_FORMAT      -> logging.format

Example:
    from camera_relay.config import load_config

    settings = load_config()
    for endpoint in settings.camera.endpoints():
        print(endpoint.redacted_url)
"""

import os
import logging
from pathlib import Path
from typing import List, Mapping, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from camera_relay.errors import ConfigError
from camera_relay.stream.endpoint import DEFAULT_RTSP_PORT, StreamEndpoint
from camera_relay.transport.publisher import DEFAULT_TOPIC


logger = logging.getLogger(__name__)


# =============================================================================
# Configuration Models
# =============================================================================

class ServiceConfig(BaseModel):
    """Service identification configuration."""

    name: str = Field(default="camera-relay", description="Service name")
    version: str = Field(default="v0.1.0", description="Service version")


# Fields that may be given once and apply to every camera.
_BROADCAST_FIELDS = ("port", "uri_suffix", "stream_index")

# Env var name for each camera field, used in error messages.
_CAMERA_ENV_NAMES = {
    "username": "CAMERA_USERNAME",
    "password": "CAMERA_PASSWORD",
    "ip": "CAMERA_IP",
    "port": "CAMERA_PORT",
    "uri_suffix": "CAMERA_URI_SUFFIX",
    "stream_index": "STREAM_INDEX",
}


def split_csv(value) -> list:
    """Split a comma-separated string into trimmed items; lists pass through."""
    if value is None:
        return value
    if isinstance(value, str):
        return [item.strip() for item in value.split(",")]
    if isinstance(value, (list, tuple)):
        return [item.strip() if isinstance(item, str) else item for item in value]
    return [value]


class CameraConfig(BaseModel):
    """
    RTSP camera configuration.

    Every field is a list with one entry per camera. port, uri_suffix and
    stream_index may be given once and are then applied to every camera.
    """

    ip: List[str] = Field(..., min_length=1, description="Camera host/IP")
    username: List[str] = Field(..., description="RTSP usernames (empty = none)")
    password: List[str] = Field(..., description="RTSP passwords (empty = none)")
    port: List[int] = Field(
        default_factory=lambda: [DEFAULT_RTSP_PORT],
        description="RTSP ports",
    )
    uri_suffix: List[str] = Field(
        default_factory=lambda: [""],
        description="Stream path on the camera",
    )
    stream_index: List[int] = Field(
        default_factory=lambda: [0],
        description="Stream index to relay",
    )

    @field_validator(
        "ip", "username", "password", "port", "uri_suffix", "stream_index",
        mode="before",
    )
    @classmethod
    def _split(cls, value):
        return split_csv(value)

    @field_validator("ip")
    @classmethod
    def _non_empty_hosts(cls, value: List[str]) -> List[str]:
        if any(not host for host in value):
            raise ValueError("CAMERA_IP entries must not be empty")
        return value

    @model_validator(mode="after")
    def _check_lengths(self) -> "CameraConfig":
        lengths = {name: len(getattr(self, name)) for name in _CAMERA_ENV_NAMES}
        expected = max(lengths.values())

        for name in _BROADCAST_FIELDS:
            values = getattr(self, name)
            if len(values) == 1 and expected > 1:
                setattr(self, name, values * expected)
                lengths[name] = expected

        if any(length != expected for length in lengths.values()):
            details = ", ".join(
                f"{_CAMERA_ENV_NAMES[name]}: {length}"
                for name, length in lengths.items()
            )
            raise ValueError(
                "All camera config fields must have the same number of "
                f"comma-separated values. Field lengths: {details}. "
                f"Expected: {expected}"
            )
        return self

    @property
    def count(self) -> int:
        """Number of configured cameras."""
        return len(self.ip)

    def endpoints(self) -> List[StreamEndpoint]:
        """Build one StreamEndpoint per configured camera."""
        return [
            StreamEndpoint(
                host=self.ip[i],
                port=self.port[i],
                username=self.username[i],
                password=self.password[i],
                suffix=self.uri_suffix[i],
                stream_index=self.stream_index[i],
            )
            for i in range(self.count)
        ]


class DecoderConfig(BaseModel):
    """Decoder (PyAV) configuration."""

    connect_timeout_seconds: float = Field(
        default=5.0,
        gt=0,
        description="Timeout for opening the RTSP stream",
    )

    read_timeout_seconds: float = Field(
        default=5.0,
        gt=0,
        description="Seconds without data before a streaming read fails",
    )


class PublisherConfig(BaseModel):
    """Publish transport configuration."""

    topic: str = Field(
        default=DEFAULT_TOPIC,
        min_length=1,
        description="Topic name frames are published on",
    )


class ServerConfig(BaseModel):
    """Server configuration."""

    host: str = Field(default="0.0.0.0", description="Bind host")
    port: int = Field(default=8002, ge=1, le=65535, description="Bind port")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="INFO", description="Log level")
    format: str = Field(default="json", description="Log format: json or text")


class Settings(BaseModel):
    """
    Main settings class for camera_relay.

    Loaded once at startup from YAML and environment variables, then
    treated as immutable.
    """

    service: ServiceConfig = Field(default_factory=ServiceConfig)
    camera: CameraConfig
    decoder: DecoderConfig = Field(default_factory=DecoderConfig)
    publisher: PublisherConfig = Field(default_factory=PublisherConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


# =============================================================================
# Configuration Loading
# =============================================================================

def load_config(
    config_path: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Settings:
    """
    Load configuration from YAML file and environment variables.

    Priority (highest to lowest):
        1. Environment variables
        2. YAML config file
        3. Default values

    Args:
        config_path: Path to config.yaml. If None, searches common locations.
        environ: Environment mapping (defaults to os.environ)

    Returns:
        Settings: Loaded configuration

    Raises:
        ConfigError: If required values are missing or invalid
    """
    if environ is None:
        environ = os.environ

    # Find config file
    if config_path is None:
        search_paths = [
            Path("config.yaml"),
            Path("config.yml"),
            Path("/app/config.yaml"),
        ]
        for path in search_paths:
            if path.exists():
                config_path = str(path)
                break

    # Load from YAML if exists
    config_data: dict = {}
    if config_path and Path(config_path).exists():
        logger.info(f"Loading config from: {config_path}")
        with open(config_path, "r") as f:
            try:
                config_data = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigError(f"Invalid YAML in {config_path}: {e}") from e
        if not isinstance(config_data, dict):
            raise ConfigError(f"Top level of {config_path} must be a mapping")
    else:
        logger.debug("No config file found, using defaults and environment variables")

    # Apply environment variable overrides
    _apply_env_overrides(config_data, environ)

    if "camera" not in config_data:
        raise ConfigError("CAMERA_IP, CAMERA_USERNAME and CAMERA_PASSWORD are required")

    try:
        return Settings.model_validate(config_data)
    except ValidationError as e:
        raise ConfigError(_describe_validation_error(e)) from e


def _apply_env_overrides(config_data: dict, environ: Mapping[str, str]) -> None:
    """Apply environment variable overrides to config data."""

    # Camera settings (present-but-empty is meaningful for credentials)
    for field, env_name in _CAMERA_ENV_NAMES.items():
        if env_name in environ:
            config_data.setdefault("camera", {})[field] = environ[env_name]

    # Decoder settings
    if env_timeout := environ.get("RELAY_CONNECT_TIMEOUT"):
        config_data.setdefault("decoder", {})["connect_timeout_seconds"] = env_timeout
    if env_read := environ.get("RELAY_READ_TIMEOUT"):
        config_data.setdefault("decoder", {})["read_timeout_seconds"] = env_read

    # Publisher settings
    if env_topic := environ.get("RELAY_TOPIC"):
        config_data.setdefault("publisher", {})["topic"] = env_topic

    # Server settings
    if env_port := environ.get("PORT"):
        config_data.setdefault("server", {})["port"] = env_port
    elif env_port := environ.get("RELAY_PORT"):
        config_data.setdefault("server", {})["port"] = env_port

    # Logging settings
    if env_log := environ.get("RELAY_LOG_LEVEL"):
        config_data.setdefault("logging", {})["level"] = env_log
    if env_fmt := environ.get("RELAY_LOG_FORMAT"):
        config_data.setdefault("logging", {})["format"] = env_fmt


def _describe_validation_error(error: ValidationError) -> str:
    parts = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"])
        parts.append(f"{location}: {item['msg']}" if location else item["msg"])
    return "Invalid configuration: " + "; ".join(parts)


def setup_logging(settings: Settings) -> None:
    """Configure logging based on settings."""
    log_level = getattr(logging, settings.logging.level.upper(), logging.INFO)

    if settings.logging.format == "json":
        log_format = '{"time": "%(asctime)s", "level": "%(levelname)s", "module": "%(name)s", "message": "%(message)s"}'
    else:
        log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    logging.basicConfig(
        level=log_level,
        format=log_format,
        datefmt="%Y-%m-%dT%H:%M:%S",
        force=True,
    )

    # libav is chatty at INFO
    logging.getLogger("libav").setLevel(max(log_level, logging.WARNING))
