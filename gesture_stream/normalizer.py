"""
Joint Normalizer - rig joints to canonical hand-local landmarks.

Converts world-space joints into the 21 MediaPipe landmarks expressed in
the wrist's local frame, with the Y axis flipped to match the backend's
coordinate convention.
"""

import logging
from typing import Optional, Sequence

import numpy as np
from scipy.spatial.transform import Rotation as R

from .rig import JointSource
from .skeletons import NUM_LANDMARKS, LandmarkMapping

logger = logging.getLogger(__name__)

# Rig is Y-up left-handed; backend expects MediaPipe's Y-down image axes
AXIS_FLIP = np.array([1.0, -1.0, 1.0])


def to_hand_local(
    wrist_position: Sequence[float],
    wrist_rotation: Sequence[float],
    points: np.ndarray,
) -> np.ndarray:
    """
    Express world points in the wrist frame and apply the axis flip.

    Args:
        wrist_position: Wrist world position (x, y, z)
        wrist_rotation: Wrist world rotation quaternion (x, y, z, w)
        points: (N, 3) world positions

    Returns:
        (N, 3) hand-local positions with y negated
    """
    points = np.asarray(points, dtype=np.float64).reshape(-1, 3)
    offset = points - np.asarray(wrist_position, dtype=np.float64)
    local = R.from_quat(wrist_rotation).inv().apply(offset)
    return local.reshape(-1, 3) * AXIS_FLIP


class JointNormalizer:
    """
    Maps a rig snapshot into a fixed-order (21, 3) landmark array.

    The mapping table decides which joint feeds which landmark; the
    transform itself is the same for every skeleton type.
    """

    def __init__(self, mapping: LandmarkMapping):
        self.mapping = mapping

    def normalize(
        self,
        source: JointSource,
        landmarks_out: np.ndarray,
    ) -> Optional[np.ndarray]:
        """
        Normalize one snapshot into landmarks_out in place.

        Joints missing from the snapshot leave their row untouched; joints
        not in the mapping table are ignored.

        Args:
            source: Joint source for one hand
            landmarks_out: Pre-allocated (21, 3) float array

        Returns:
            Wrist world position as a (3,) array, or None if the wrist
            joint is not present in the snapshot.
        """
        if landmarks_out.shape != (NUM_LANDMARKS, 3):
            raise ValueError(
                f"landmarks_out must have shape ({NUM_LANDMARKS}, 3), got {landmarks_out.shape}"
            )

        wrist = source.joint(self.mapping.wrist)
        if wrist is None:
            logger.debug(f"Wrist joint '{self.mapping.wrist}' missing from snapshot")
            return None

        indices = []
        points = []
        for joint in source.joints():
            idx = self.mapping.index_of(joint.id)
            if idx < 0:
                continue
            indices.append(idx)
            points.append(joint.position)

        if indices:
            local = to_hand_local(wrist.position, wrist.rotation, np.array(points))
            landmarks_out[indices] = local

        return np.asarray(wrist.position, dtype=np.float64)
