from __future__ import annotations

import asyncio
from typing import Callable, Optional, Sequence

import numpy as np
import pytest
from scipy.spatial.transform import Rotation as R
from websockets.exceptions import ConnectionClosedError

from gesture_stream.rig import Joint, RigSnapshot
from gesture_stream.skeletons import NUM_LANDMARKS, LandmarkMapping, OPENXR_HAND


def hand_joints(
    local_points: np.ndarray,
    wrist_position: Sequence[float] = (0.0, 0.0, 0.0),
    wrist_rotation: Sequence[float] = (0.0, 0.0, 0.0, 1.0),
    mapping: LandmarkMapping = OPENXR_HAND,
) -> list[Joint]:
    """Place a (21, 3) wrist-local hand into world space as rig joints."""
    rot = R.from_quat(wrist_rotation)
    world = rot.apply(np.asarray(local_points, dtype=np.float64)) + np.asarray(wrist_position)
    joints = []
    for joint_id, idx in mapping.joints.items():
        rotation = tuple(wrist_rotation) if joint_id == mapping.wrist else (0.0, 0.0, 0.0, 1.0)
        joints.append(Joint(id=joint_id, position=tuple(world[idx]), rotation=rotation))
    return joints


def local_hand(seed: int = 0) -> np.ndarray:
    """Random wrist-local hand with the wrist at the origin."""
    rng = np.random.default_rng(seed)
    points = rng.uniform(-0.1, 0.1, size=(NUM_LANDMARKS, 3))
    points[0] = 0.0
    return points


@pytest.fixture
def tracked_hand() -> Callable[..., RigSnapshot]:
    def _make(local_points: Optional[np.ndarray] = None, **kwargs) -> RigSnapshot:
        points = local_hand() if local_points is None else local_points
        return RigSnapshot(hand_joints(points, **kwargs))
    return _make


_END = object()


class FakeConnection:
    def __init__(self):
        self.sent = []
        self.closed = False
        self.close_code = None
        self.close_reason = ""
        self.fail_sends = False
        self._inbox: asyncio.Queue = asyncio.Queue()

    async def send(self, message: str) -> None:
        if self.closed or self.fail_sends:
            raise ConnectionClosedError(None, None)
        self.sent.append(message)

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self._inbox.get()
        if item is _END:
            raise StopAsyncIteration
        if isinstance(item, BaseException):
            raise item
        return item

    def push(self, item) -> None:
        self._inbox.put_nowait(item)

    async def close(self) -> None:
        if not self.closed:
            self.closed = True
            self.close_code = 1000
            self._inbox.put_nowait(_END)


def fake_connector(conn: FakeConnection, calls: list | None = None):
    async def connect(url, **kwargs):
        if calls is not None:
            calls.append((url, kwargs))
        return conn
    return connect


def run(coro):
    return asyncio.run(coro)


async def wait_until(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached before timeout")
        await asyncio.sleep(0.001)
