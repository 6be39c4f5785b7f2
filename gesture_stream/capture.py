"""
Scene Capture - the low-rate image side channel.

Waits for the end of the current frame, validates it, optionally crops a
region, resizes into a pre-allocated buffer, and returns the frame as a
base64 JPEG string.

A failed capture never produces a partial image: the result carries a
reason instead, and the payload goes out without a capture that tick.
"""

import asyncio
import base64
import logging
from dataclasses import dataclass
from typing import Callable, Optional, Protocol, Tuple

import cv2
import numpy as np

logger = logging.getLogger(__name__)

# (x, y, width, height) in source-frame pixels
Region = Tuple[float, float, float, float]


@dataclass
class CaptureResult:
    """Result of one capture attempt."""
    ok: bool
    reason: str
    image_b64: Optional[str] = None


class FrameSource(Protocol):
    """External capability providing the rendered frame."""

    async def next_frame(self) -> Optional[np.ndarray]:
        """Wait for end-of-frame and return the BGR image, or None."""
        ...

    def close(self) -> None:
        ...


def clamp_region(region: Region, width: int, height: int) -> Tuple[int, int, int, int]:
    """
    Clamp a region to the frame bounds.

    Returns:
        (x0, y0, x1, y1) integer pixel bounds; x1 <= x0 or y1 <= y0 means
        the region has no visible area.
    """
    x, y, w, h = region
    x0 = int(np.clip(x, 0, width))
    y0 = int(np.clip(y, 0, height))
    x1 = int(np.clip(x + w, 0, width))
    y1 = int(np.clip(y + h, 0, height))
    return x0, y0, x1, y1


class FrameCapture:
    """
    Captures, compresses, and encodes frames for the payload.

    Validates:
    - Frame not None/empty
    - Frame has shape (H, W, 3) and 8-bit pixels
    - Capture region (if any) has non-zero visible area
    """

    def __init__(
        self,
        source: FrameSource,
        width: int = 640,
        height: int = 480,
        quality: int = 75,
        region_provider: Optional[Callable[[], Optional[Region]]] = None,
    ):
        """
        Initialize FrameCapture.

        Args:
            source: Frame source to read from
            width: Output image width in pixels
            height: Output image height in pixels
            quality: JPEG quality (1-100)
            region_provider: Optional callable returning the region to crop
                each capture; None from the callable means the full frame.
        """
        if width <= 0 or height <= 0:
            raise ValueError("Capture width and height must be positive")
        if not 1 <= quality <= 100:
            raise ValueError("JPEG quality must be within 1..100")
        self.source = source
        self.width = width
        self.height = height
        self.quality = quality
        self.region_provider = region_provider

        self._buffer: Optional[np.ndarray] = np.empty((height, width, 3), dtype=np.uint8)

        self._captures_ok = 0
        self._captures_failed = 0
        self._last_failure: Optional[str] = None

    @property
    def closed(self) -> bool:
        return self._buffer is None

    async def capture(self) -> CaptureResult:
        """Capture the current frame as a base64 JPEG."""
        if self._buffer is None:
            return self._fail("closed")

        frame = await self.source.next_frame()

        if frame is None:
            return self._fail("no_frame")
        if frame.size == 0:
            return self._fail("empty_frame")
        if frame.ndim != 3:
            return self._fail("invalid_dims")
        if frame.shape[2] != 3:
            return self._fail("invalid_channels")
        if frame.dtype != np.uint8:
            return self._fail("invalid_dtype")

        if self.region_provider is not None:
            region = self.region_provider()
            if region is not None:
                h, w = frame.shape[:2]
                x0, y0, x1, y1 = clamp_region(region, w, h)
                if x1 <= x0 or y1 <= y0:
                    return self._fail("zero_area")
                frame = frame[y0:y1, x0:x1]

        resized = cv2.resize(frame, (self.width, self.height), dst=self._buffer,
                             interpolation=cv2.INTER_AREA)

        ok, buf = cv2.imencode(
            '.jpg', resized, [int(cv2.IMWRITE_JPEG_QUALITY), self.quality]
        )
        if not ok or buf is None or buf.size == 0:
            return self._fail("encode_failed")

        self._captures_ok += 1
        return CaptureResult(True, "ok", base64.b64encode(buf.tobytes()).decode('ascii'))

    def _fail(self, reason: str) -> CaptureResult:
        self._captures_failed += 1
        self._last_failure = reason
        logger.warning(f"Capture failed: {reason}")
        return CaptureResult(False, reason)

    def close(self) -> None:
        """Release the pixel buffer and the frame source."""
        if self._buffer is None:
            return
        self._buffer = None
        self.source.close()
        logger.debug("Capture resources released")

    def get_stats(self) -> dict:
        """Get capture statistics."""
        total = self._captures_ok + self._captures_failed
        return {
            "captures_total": total,
            "captures_ok": self._captures_ok,
            "captures_failed": self._captures_failed,
            "last_failure": self._last_failure,
        }


class CameraFrameSource:
    """FrameSource backed by an OpenCV camera or stream URL."""

    def __init__(self, device=0):
        """
        Args:
            device: Camera index or stream URL accepted by cv2.VideoCapture
        """
        self.device = device
        self.cap: Optional[cv2.VideoCapture] = None

    def open(self) -> bool:
        """Open the capture device."""
        logger.info(f"Opening camera source: {self.device}")
        self.cap = cv2.VideoCapture(self.device)
        if not self.cap.isOpened():
            logger.error("Failed to open camera source")
            self.cap = None
            return False

        width = int(self.cap.get(cv2.CAP_PROP_FRAME_WIDTH))
        height = int(self.cap.get(cv2.CAP_PROP_FRAME_HEIGHT))
        fps = self.cap.get(cv2.CAP_PROP_FPS)
        logger.info(f"Camera opened: {width}x{height} @ {fps:.1f} fps")
        return True

    async def next_frame(self) -> Optional[np.ndarray]:
        # Let the current frame's work finish before reading pixels
        await asyncio.sleep(0)
        if self.cap is None:
            return None
        ok, frame = self.cap.read()
        if not ok:
            return None
        return frame

    def close(self) -> None:
        if self.cap is not None:
            self.cap.release()
            self.cap = None
