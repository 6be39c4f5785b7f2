"""
Hand Sampler - per-hand state holder.

Each sampler owns one HandSample, allocated once and updated in place on
every tick from its joint source.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

import numpy as np

from .normalizer import JointNormalizer
from .rig import JointSource
from .skeletons import NUM_LANDMARKS

logger = logging.getLogger(__name__)


@dataclass
class HandSample:
    """
    Latest normalized output for one hand.

    Attributes:
        wrist_world: Wrist position in world space, shape (3,)
        landmarks: Hand-local landmarks in MediaPipe order, shape (21, 3)
        valid: Whether the last sample came from a tracked source
    """
    wrist_world: np.ndarray = field(default_factory=lambda: np.zeros(3))
    landmarks: np.ndarray = field(default_factory=lambda: np.zeros((NUM_LANDMARKS, 3)))
    valid: bool = False


class HandSampler:
    """
    Runs the normalizer for one hand and tracks readiness.

    A sampler is ready only after a successful sample() since its source
    last became valid. Any failed sample marks it not-ready again.
    """

    def __init__(
        self,
        name: str,
        source: Optional[JointSource],
        normalizer: JointNormalizer,
    ):
        """
        Initialize HandSampler.

        Args:
            name: Label used in logs ("left" / "right")
            source: Joint source for this hand (may be None if not wired)
            normalizer: Normalizer configured with the skeleton mapping
        """
        self.name = name
        self.source = source
        self.normalizer = normalizer

        self.output: Optional[HandSample] = None
        self._ready = False

        self._samples_ok = 0
        self._samples_skipped = 0

    @property
    def initialized(self) -> bool:
        return self.output is not None

    def initialize(self) -> bool:
        """
        Allocate the fixed-size sample containers.

        Returns:
            True on the first call, False (no-op) on any later call
        """
        if self.output is not None:
            logger.debug(f"{self.name} hand sampler already initialized")
            return False
        self.output = HandSample()
        return True

    def is_ready(self) -> bool:
        return self._ready

    def sample(self) -> bool:
        """
        Sample the source into the HandSample.

        Returns:
            True if the sample was updated, False if the tick was skipped
        """
        if not self._source_available():
            return self._skip()

        hs = self.output
        try:
            wrist = self.normalizer.normalize(self.source, hs.landmarks)
        except ValueError as e:
            logger.warning(f"{self.name} hand normalization failed: {e}")
            return self._skip()

        if wrist is None:
            return self._skip()

        hs.wrist_world[:] = wrist
        hs.valid = True
        self._ready = True
        self._samples_ok += 1
        return True

    def _source_available(self) -> bool:
        if self.output is None:
            return False
        src = self.source
        return src is not None and src.is_initialized and src.is_tracked

    def _skip(self) -> bool:
        self._ready = False
        if self.output is not None:
            self.output.valid = False
        self._samples_skipped += 1
        return False

    def get_stats(self) -> dict:
        """Get sampling statistics."""
        return {
            "hand": self.name,
            "ready": self._ready,
            "samples_ok": self._samples_ok,
            "samples_skipped": self._samples_skipped,
        }
