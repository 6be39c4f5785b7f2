from __future__ import annotations

import asyncio
import json

import numpy as np

from conftest import FakeConnection, fake_connector, hand_joints, local_hand, run, wait_until
from gesture_stream.config import StreamConfig
from gesture_stream.main import GestureStreamClient
from gesture_stream.rig import RigReplay, load_recording


class FakeCamera:
    def __init__(self):
        self.closed = False

    async def next_frame(self):
        await asyncio.sleep(0)
        return np.full((48, 64, 3), 120, dtype=np.uint8)

    def close(self) -> None:
        self.closed = True


def _recording(tmp_path) -> str:
    left = {
        "tracked": True,
        "joints": [
            {"id": j.id, "position": list(j.position), "rotation": list(j.rotation)}
            for j in hand_joints(local_hand(5), wrist_position=(0.1, 1.2, 0.3))
        ],
    }
    path = tmp_path / "session.jsonl"
    path.write_text(json.dumps({"left": left, "right": {"tracked": False}}) + "\n", encoding="utf-8")
    return str(path)


def test_session_ends_on_server_close_and_releases_resources(tmp_path) -> None:
    out_dir = tmp_path / "out"

    async def scenario():
        conn = FakeConnection()
        camera = FakeCamera()
        replay = RigReplay(load_recording(_recording(tmp_path)), rate=200.0)
        config = StreamConfig(sample_rate=200.0, capture_rate=50.0,
                              capture_width=32, capture_height=24)
        client = GestureStreamClient(config, replay, camera=camera, save_dir=str(out_dir),
                                     connector=fake_connector(conn))

        session = asyncio.create_task(client.run())
        await wait_until(lambda: len(conn.sent) >= 5)
        await conn.close()
        await asyncio.wait_for(session, 1.0)

        await client.stop()
        await client.stop()
        return client, camera, conn

    client, camera, conn = run(scenario())

    assert not client.ws_client.is_open
    assert not client.scheduler.running
    assert client.capture.closed
    assert camera.closed
    assert client._replay_task.done()

    messages = [json.loads(m) for m in conn.sent]
    assert messages[0]["left_hand"]["world_wrist_root"] == {"x": 0.1, "y": 1.2, "z": 0.3}
    assert "screen_capture" in messages[0]
    assert any("screen_capture" not in m for m in messages)

    saved = sorted(p.name for p in out_dir.iterdir())
    assert len(saved) == 1
    assert saved[0].startswith("hand_landmarks_left_")


def test_stop_without_camera_or_session() -> None:
    async def scenario():
        replay = RigReplay([(None, None)], rate=50.0)
        client = GestureStreamClient(StreamConfig(), replay,
                                     connector=fake_connector(FakeConnection()))
        await client.stop()
        return client

    client = run(scenario())
    assert client.capture is None
    assert not client.ws_client.is_open
