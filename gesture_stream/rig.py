"""
Rig data model and joint sources.

The tracking rig is an external collaborator: each tick it exposes a set of
named joints with world-space pose and parent linkage. The core only reads
it through the JointSource capability below.

RigReplay drives RigSnapshot instances from a JSON-lines recording so the
client can run without a live headset.
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Protocol, Tuple, Union

logger = logging.getLogger(__name__)

IDENTITY_QUAT = (0.0, 0.0, 0.0, 1.0)


@dataclass(frozen=True)
class Joint:
    """
    One skeletal joint in world space.

    Attributes:
        id: Joint identifier from the rig's joint enumeration
        position: World position (x, y, z) in meters
        rotation: World rotation quaternion (x, y, z, w)
        parent: Identifier of the parent joint, None for the root
    """
    id: str
    position: Tuple[float, float, float]
    rotation: Tuple[float, float, float, float] = IDENTITY_QUAT
    parent: Optional[str] = None

    @classmethod
    def from_dict(cls, d: dict) -> 'Joint':
        """Build a joint from its JSON representation."""
        position = tuple(float(v) for v in d['position'])
        rotation = tuple(float(v) for v in d.get('rotation', IDENTITY_QUAT))
        if len(position) != 3 or len(rotation) != 4:
            raise ValueError(f"Malformed joint '{d.get('id')}'")
        return cls(
            id=str(d['id']),
            position=position,
            rotation=rotation,
            parent=d.get('parent'),
        )


class JointSource(Protocol):
    """Read-only capability over a tracked hand skeleton."""

    @property
    def is_tracked(self) -> bool:
        """True while the rig reports valid, currently tracked data."""
        ...

    @property
    def is_initialized(self) -> bool:
        """True once the rig has built its skeleton."""
        ...

    def joint(self, joint_id: str) -> Optional[Joint]:
        """Return the joint with this identifier, or None if missing."""
        ...

    def joints(self) -> Iterable[Joint]:
        """Iterate over every joint in the current snapshot."""
        ...


class RigSnapshot:
    """
    In-memory JointSource holding the latest joints for one hand.

    The owner replaces the joint set with update(); readers always see a
    complete snapshot because the joint dict is swapped, never edited.
    """

    def __init__(
        self,
        joints: Optional[Iterable[Joint]] = None,
        tracked: bool = True,
        initialized: bool = True,
    ):
        self._joints: Dict[str, Joint] = {}
        self._tracked = False
        self._initialized = initialized
        if joints is not None:
            self.update(joints, tracked=tracked)

    @property
    def is_tracked(self) -> bool:
        return self._tracked

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    def joint(self, joint_id: str) -> Optional[Joint]:
        return self._joints.get(joint_id)

    def joints(self) -> Iterable[Joint]:
        return self._joints.values()

    def update(self, joints: Iterable[Joint], tracked: bool = True) -> None:
        """Replace the snapshot with a new set of joints."""
        self._joints = {j.id: j for j in joints}
        self._tracked = tracked
        self._initialized = True

    def mark_lost(self) -> None:
        """Keep the last joints but report the hand as untracked."""
        self._tracked = False


# ============================================================================
# Recorded rig playback
# ============================================================================

HandFrames = Tuple[Optional[List[Joint]], Optional[List[Joint]]]


def _parse_hand(d: Optional[dict]) -> Optional[List[Joint]]:
    """Parse one hand entry; None means the hand was not tracked."""
    if not d or not d.get('tracked', True):
        return None
    return [Joint.from_dict(j) for j in d.get('joints', [])]


def load_recording(path: Union[str, Path]) -> List[HandFrames]:
    """
    Load a rig recording.

    Each non-empty line is a JSON object with optional "left" and "right"
    entries of the form {"tracked": bool, "joints": [{"id", "position",
    "rotation", "parent"}, ...]}.

    Args:
        path: Path to the JSON-lines file

    Returns:
        List of (left_joints, right_joints) per recorded frame
    """
    frames: List[HandFrames] = []
    with open(path, 'r', encoding='utf-8') as f:
        for line_no, line in enumerate(f, 1):
            line = line.strip()
            if not line:
                continue
            try:
                d = json.loads(line)
                frames.append((_parse_hand(d.get('left')), _parse_hand(d.get('right'))))
            except (ValueError, KeyError, TypeError) as e:
                raise ValueError(f"{path}:{line_no}: invalid rig frame: {e}") from e
    if not frames:
        raise ValueError(f"{path}: recording contains no frames")
    logger.info(f"Loaded {len(frames)} rig frames from {path}")
    return frames


class RigReplay:
    """
    Replays a recorded rig into two RigSnapshot instances at a fixed rate.

    Runs on its own cadence, independent of the sampling loop, the same
    way a live rig updates once per rendered frame.
    """

    def __init__(
        self,
        frames: List[HandFrames],
        rate: float = 72.0,
        loop: bool = True,
    ):
        """
        Initialize replay.

        Args:
            frames: Recorded frames from load_recording()
            rate: Playback rate in frames per second
            loop: Restart from the first frame after the last one
        """
        if rate <= 0:
            raise ValueError("Replay rate must be positive")
        self.frames = frames
        self.rate = rate
        self.loop = loop
        self.left = RigSnapshot(initialized=False)
        self.right = RigSnapshot(initialized=False)
        self._index = 0
        self._running = False

    def step(self) -> bool:
        """Advance one frame. Returns False once a non-looping replay ends."""
        if self._index >= len(self.frames):
            if not self.loop:
                return False
            self._index = 0

        left, right = self.frames[self._index]
        self._apply(self.left, left)
        self._apply(self.right, right)
        self._index += 1
        return True

    @staticmethod
    def _apply(snapshot: RigSnapshot, joints: Optional[List[Joint]]) -> None:
        if joints is None:
            snapshot.mark_lost()
        else:
            snapshot.update(joints)

    async def run(self) -> None:
        """Play frames until stopped or the recording ends."""
        self._running = True
        interval = 1.0 / self.rate
        while self._running and self.step():
            await asyncio.sleep(interval)
        self._running = False

    def stop(self) -> None:
        self._running = False
