"""
Message Schema and Payload Assembly for gesture stream messages.

Defines the JSON message format sent to the inference backend and the
builder that produces one immutable payload per tick.
"""

import json
import logging
import math
from dataclasses import dataclass
from typing import Optional, Tuple

from .hand_sampler import HandSample
from .skeletons import NUM_LANDMARKS

logger = logging.getLogger(__name__)

Vec3 = Tuple[float, float, float]


def _vec(d: dict) -> Vec3:
    return (float(d['x']), float(d['y']), float(d['z']))


def _vec_dict(v: Vec3) -> dict:
    return {"x": v[0], "y": v[1], "z": v[2]}


@dataclass(frozen=True)
class HandFrame:
    """
    Immutable copy of one hand's sample at send time.

    Attributes:
        world_wrist_root: Wrist position in world space
        relative_landmarks: 21 hand-local landmarks in MediaPipe order
    """
    world_wrist_root: Vec3
    relative_landmarks: Tuple[Vec3, ...]

    @classmethod
    def from_sample(cls, sample: HandSample) -> 'HandFrame':
        """Snapshot a HandSample so later in-place updates don't leak in."""
        return cls(
            world_wrist_root=tuple(float(v) for v in sample.wrist_world),
            relative_landmarks=tuple(
                (float(p[0]), float(p[1]), float(p[2])) for p in sample.landmarks
            ),
        )

    def to_dict(self) -> dict:
        return {
            "world_wrist_root": _vec_dict(self.world_wrist_root),
            "relative_landmarks": [_vec_dict(p) for p in self.relative_landmarks],
        }

    @classmethod
    def from_dict(cls, d: dict) -> 'HandFrame':
        return cls(
            world_wrist_root=_vec(d['world_wrist_root']),
            relative_landmarks=tuple(_vec(p) for p in d['relative_landmarks']),
        )


@dataclass(frozen=True)
class GesturePayload:
    """
    Message sent from client to backend on every primary tick.

    Attributes:
        left_hand: Left hand landmarks
        right_hand: Right hand landmarks
        screen_capture: Base64 JPEG, present only on capture ticks
    """
    left_hand: HandFrame
    right_hand: HandFrame
    screen_capture: Optional[str] = None

    def to_dict(self) -> dict:
        payload = {
            "left_hand": self.left_hand.to_dict(),
            "right_hand": self.right_hand.to_dict(),
        }
        # Absent capture is omitted so the backend can tell it from an empty image
        if self.screen_capture is not None:
            payload["screen_capture"] = self.screen_capture
        return payload

    def to_json(self) -> str:
        """Serialize to JSON string."""
        return json.dumps(self.to_dict())

    @classmethod
    def from_json(cls, data: str) -> 'GesturePayload':
        """Deserialize from JSON string."""
        d = json.loads(data)
        return cls(
            left_hand=HandFrame.from_dict(d['left_hand']),
            right_hand=HandFrame.from_dict(d['right_hand']),
            screen_capture=d.get('screen_capture'),
        )


def validate_payload(payload: GesturePayload) -> Tuple[bool, str]:
    """
    Check a payload before transmission.

    Returns:
        Tuple of (is_valid, reason_string)
    """
    for name, hand in (("left", payload.left_hand), ("right", payload.right_hand)):
        if len(hand.relative_landmarks) != NUM_LANDMARKS:
            return False, f"{name}_landmark_count"
        values = list(hand.world_wrist_root)
        for p in hand.relative_landmarks:
            values.extend(p)
        if not all(math.isfinite(v) for v in values):
            return False, f"{name}_not_finite"
    if payload.screen_capture is not None and not payload.screen_capture:
        return False, "empty_capture"
    return True, "ok"


class PayloadBuilder:
    """
    Assembles one immutable GesturePayload per tick.

    A capture attached with attach_capture() is consumed by the next
    build(), so it is never sent twice.
    """

    def __init__(self):
        self._pending_capture: Optional[str] = None
        self._built = 0
        self._with_capture = 0

    @property
    def has_capture(self) -> bool:
        return self._pending_capture is not None

    def attach_capture(self, image_b64: str) -> None:
        if not image_b64:
            raise ValueError("Capture must be a non-empty base64 string")
        self._pending_capture = image_b64

    def clear_capture(self) -> None:
        self._pending_capture = None

    def build(self, left: HandSample, right: HandSample) -> GesturePayload:
        """Snapshot both hands and consume any pending capture."""
        payload = GesturePayload(
            left_hand=HandFrame.from_sample(left),
            right_hand=HandFrame.from_sample(right),
            screen_capture=self._pending_capture,
        )
        self._built += 1
        if self._pending_capture is not None:
            self._with_capture += 1
        self._pending_capture = None
        return payload

    def get_stats(self) -> dict:
        return {
            "payloads_built": self._built,
            "payloads_with_capture": self._with_capture,
        }
