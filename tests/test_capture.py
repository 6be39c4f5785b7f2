from __future__ import annotations

import base64

import cv2
import numpy as np
import pytest

from conftest import run
from gesture_stream.capture import FrameCapture, clamp_region


class FakeFrameSource:
    def __init__(self, frame):
        self.frame = frame
        self.closed = False
        self.reads = 0

    async def next_frame(self):
        self.reads += 1
        return self.frame

    def close(self) -> None:
        self.closed = True


def _frame(h: int = 240, w: int = 320) -> np.ndarray:
    frame = np.zeros((h, w, 3), dtype=np.uint8)
    frame[:, : w // 2] = (255, 0, 0)
    frame[:, w // 2:] = (0, 200, 100)
    return frame


def _decode(image_b64: str) -> np.ndarray:
    data = np.frombuffer(base64.b64decode(image_b64), dtype=np.uint8)
    return cv2.imdecode(data, cv2.IMREAD_COLOR)


def test_capture_encodes_resized_jpeg() -> None:
    capture = FrameCapture(FakeFrameSource(_frame()), width=64, height=48, quality=80)
    result = run(capture.capture())
    assert result.ok and result.reason == "ok"
    image = _decode(result.image_b64)
    assert image.shape == (48, 64, 3)
    assert capture.get_stats()["captures_ok"] == 1


@pytest.mark.parametrize(
    "frame, reason",
    [
        (None, "no_frame"),
        (np.zeros((0, 0, 3), dtype=np.uint8), "empty_frame"),
        (np.zeros((10, 10), dtype=np.uint8), "invalid_dims"),
        (np.zeros((10, 10, 4), dtype=np.uint8), "invalid_channels"),
        (np.full((10, 10, 3), 0.5, dtype=np.float32), "invalid_dtype"),
    ],
)
def test_invalid_frames_yield_no_artifact(frame, reason) -> None:
    capture = FrameCapture(FakeFrameSource(frame), width=32, height=32)
    result = run(capture.capture())
    assert not result.ok
    assert result.reason == reason
    assert result.image_b64 is None
    assert capture.get_stats()["last_failure"] == reason


def test_float_frame_never_sends_stale_buffer() -> None:
    capture = FrameCapture(FakeFrameSource(np.full((120, 160, 3), 0.5, dtype=np.float32)),
                           width=32, height=32)
    capture._buffer[:] = 7
    result = run(capture.capture())
    assert (result.ok, result.reason) == (False, "invalid_dtype")
    assert result.image_b64 is None

    capture.source.frame = np.full((120, 160, 3), 200, dtype=np.uint8)
    result = run(capture.capture())
    assert result.ok
    assert abs(float(_decode(result.image_b64).mean()) - 200.0) < 3.0


def test_offscreen_region_is_zero_area() -> None:
    capture = FrameCapture(FakeFrameSource(_frame()), width=32, height=32,
                           region_provider=lambda: (400.0, 10.0, 50.0, 50.0))
    result = run(capture.capture())
    assert (result.ok, result.reason) == (False, "zero_area")


def test_region_crop_is_captured() -> None:
    capture = FrameCapture(FakeFrameSource(_frame()), width=20, height=20,
                           region_provider=lambda: (0.0, 0.0, 100.0, 100.0))
    result = run(capture.capture())
    assert result.ok
    image = _decode(result.image_b64)
    # Crop lies entirely in the blue half
    assert image[10, 10, 0] > 200
    assert image[10, 10, 1] < 50


def test_region_provider_none_uses_full_frame() -> None:
    capture = FrameCapture(FakeFrameSource(_frame()), width=16, height=16,
                           region_provider=lambda: None)
    assert run(capture.capture()).ok


def test_clamp_region() -> None:
    assert clamp_region((-10, -10, 50, 50), 100, 80) == (0, 0, 40, 40)
    assert clamp_region((90, 70, 50, 50), 100, 80) == (90, 70, 100, 80)


def test_close_releases_resources() -> None:
    source = FakeFrameSource(_frame())
    capture = FrameCapture(source, width=16, height=16)
    capture.close()
    capture.close()
    assert capture.closed
    assert source.closed
    result = run(capture.capture())
    assert (result.ok, result.reason) == (False, "closed")
    assert source.reads == 0


@pytest.mark.parametrize("kwargs", [{"quality": 0}, {"quality": 101}, {"width": 0}])
def test_invalid_settings_rejected(kwargs) -> None:
    with pytest.raises(ValueError):
        FrameCapture(FakeFrameSource(None), **kwargs)
