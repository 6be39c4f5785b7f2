"""
Configuration for the gesture stream client.

Environment Variables:
    GESTURE_STREAM_SERVER: WebSocket URL (default: ws://127.0.0.1:8000/ws/process-gesture-stream)
    GESTURE_STREAM_TOKEN: Optional Bearer token
    GESTURE_STREAM_SAMPLE_RATE: Hand data rate in Hz (default: 20)
    GESTURE_STREAM_CAPTURE_RATE: Screen capture rate in Hz (default: 5)
    GESTURE_STREAM_CAPTURE_WIDTH: Capture width in pixels (default: 640)
    GESTURE_STREAM_CAPTURE_HEIGHT: Capture height in pixels (default: 480)
    GESTURE_STREAM_JPEG_QUALITY: JPEG quality 1-100 (default: 75)
    GESTURE_STREAM_READINESS: "any" or "both" (default: any)
    GESTURE_STREAM_SKELETON: "openxr" or "ovr" (default: openxr)
"""

import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional

from .scheduler import ReadinessPolicy
from .skeletons import MAPPINGS

logger = logging.getLogger(__name__)

DEFAULT_SERVER_URL = "ws://127.0.0.1:8000/ws/process-gesture-stream"
ENV_PREFIX = "GESTURE_STREAM_"


class ConfigError(ValueError):
    """Invalid configuration value."""


@dataclass
class StreamConfig:
    """
    Streaming client settings.

    capture_rate is clamped to [1, sample_rate]; everything else is
    validated and rejected with ConfigError.
    """
    server_url: str = DEFAULT_SERVER_URL
    token: Optional[str] = None
    sample_rate: float = 20.0
    capture_rate: float = 5.0
    capture_width: int = 640
    capture_height: int = 480
    jpeg_quality: int = 75
    readiness: str = ReadinessPolicy.ANY.value
    skeleton: str = "openxr"
    ping_interval: float = 20.0
    ping_timeout: float = 10.0

    def __post_init__(self):
        if not self.server_url.startswith(("ws://", "wss://")):
            raise ConfigError(f"server_url must be a ws:// or wss:// URL, got '{self.server_url}'")
        if self.sample_rate <= 0:
            raise ConfigError(f"sample_rate must be positive, got {self.sample_rate}")

        if self.capture_rate < 1.0:
            logger.warning(f"capture_rate {self.capture_rate} below 1 Hz, using 1 Hz")
            self.capture_rate = 1.0
        if self.capture_rate > self.sample_rate:
            logger.warning(
                f"capture_rate {self.capture_rate} exceeds sample_rate, using {self.sample_rate}"
            )
            self.capture_rate = self.sample_rate

        if self.capture_width <= 0 or self.capture_height <= 0:
            raise ConfigError(
                f"capture size must be positive, got {self.capture_width}x{self.capture_height}"
            )
        if not 1 <= self.jpeg_quality <= 100:
            raise ConfigError(f"jpeg_quality must be within 1..100, got {self.jpeg_quality}")
        if self.readiness not in {p.value for p in ReadinessPolicy}:
            raise ConfigError(f"readiness must be 'any' or 'both', got '{self.readiness}'")
        if self.skeleton not in MAPPINGS:
            raise ConfigError(f"skeleton must be one of {sorted(MAPPINGS)}, got '{self.skeleton}'")
        if self.ping_interval <= 0 or self.ping_timeout <= 0:
            raise ConfigError("ping_interval and ping_timeout must be positive")

    @property
    def readiness_policy(self) -> ReadinessPolicy:
        return ReadinessPolicy(self.readiness)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> 'StreamConfig':
        """Build a config from GESTURE_STREAM_* environment variables."""
        env = os.environ if environ is None else environ

        def get(name, cast, default):
            raw = env.get(ENV_PREFIX + name)
            if raw is None or raw == "":
                return default
            try:
                return cast(raw)
            except ValueError:
                raise ConfigError(f"{ENV_PREFIX}{name}: invalid value '{raw}'") from None

        defaults = cls()
        return cls(
            server_url=get("SERVER", str, defaults.server_url),
            token=get("TOKEN", str, defaults.token),
            sample_rate=get("SAMPLE_RATE", float, defaults.sample_rate),
            capture_rate=get("CAPTURE_RATE", float, defaults.capture_rate),
            capture_width=get("CAPTURE_WIDTH", int, defaults.capture_width),
            capture_height=get("CAPTURE_HEIGHT", int, defaults.capture_height),
            jpeg_quality=get("JPEG_QUALITY", int, defaults.jpeg_quality),
            readiness=get("READINESS", str.lower, defaults.readiness),
            skeleton=get("SKELETON", str.lower, defaults.skeleton),
            ping_interval=get("PING_INTERVAL", float, defaults.ping_interval),
            ping_timeout=get("PING_TIMEOUT", float, defaults.ping_timeout),
        )
