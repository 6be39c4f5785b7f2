from __future__ import annotations

import asyncio
import json

from websockets.exceptions import ConnectionClosedError

from conftest import FakeConnection, fake_connector, run, wait_until
from gesture_stream.hand_sampler import HandSample
from gesture_stream.message import PayloadBuilder
from gesture_stream.ws_client import ConnectionFailed, ConnectionState, StreamClient


def _payload():
    sample = HandSample()
    sample.valid = True
    return PayloadBuilder().build(sample, sample)


def test_connect_opens_and_sends() -> None:
    async def scenario():
        conn = FakeConnection()
        opened = asyncio.Event()

        async def on_open():
            opened.set()

        client = StreamClient(on_open=on_open, connector=fake_connector(conn))
        assert client.state is ConnectionState.CLOSED
        await client.connect("ws://backend/ws")
        assert client.state is ConnectionState.CONNECTING
        await asyncio.wait_for(opened.wait(), 1.0)
        assert client.is_open

        assert await client.send(_payload()) is True
        msg = json.loads(conn.sent[0])
        assert len(msg["left_hand"]["relative_landmarks"]) == 21
        assert "screen_capture" not in msg
        await client.close()
        assert client.state is ConnectionState.CLOSED
        assert conn.closed
        return client.get_stats()

    stats = run(scenario())
    assert stats["messages_sent"] == 1
    assert stats["connected"] is False


def test_error_closes_and_blocks_further_sends() -> None:
    async def scenario():
        conn = FakeConnection()
        client = StreamClient(connector=fake_connector(conn))
        await client.connect("ws://backend/ws")
        await wait_until(lambda: client.is_open)

        conn.push(ConnectionClosedError(None, None))
        await asyncio.wait_for(client.wait_closed(), 1.0)
        assert client.state is ConnectionState.CLOSED

        assert await client.send(_payload()) is False
        assert await client.send(_payload()) is False
        assert conn.sent == []
        stats = client.get_stats()
        await client.close()
        return stats

    stats = run(scenario())
    assert stats["messages_dropped"] == 2
    assert stats["last_error"] is not None


def test_injected_error_event_closes() -> None:
    async def scenario():
        conn = FakeConnection()
        client = StreamClient(connector=fake_connector(conn))
        await client.connect("ws://backend/ws")
        await wait_until(lambda: client.is_open)
        client.notify(ConnectionFailed(OSError("network unreachable")))
        await asyncio.wait_for(client.wait_closed(), 1.0)
        assert await client.send(_payload()) is False
        await client.close()
        return conn.sent

    assert run(scenario()) == []


def test_connect_failure_ends_closed() -> None:
    async def scenario():
        async def refuse(url, **kwargs):
            raise ConnectionRefusedError("refused")

        opened = []

        async def on_open():
            opened.append(True)

        client = StreamClient(on_open=on_open, connector=refuse)
        await client.connect("ws://127.0.0.1:1/ws")
        await asyncio.wait_for(client.wait_closed(), 1.0)
        state = client.state
        await client.close()
        return state, opened, client.stats.last_error

    state, opened, last_error = run(scenario())
    assert state is ConnectionState.CLOSED
    assert opened == []
    assert "refused" in last_error


def test_unexpected_connect_error_ends_closed() -> None:
    async def scenario():
        async def broken(url, **kwargs):
            raise ValueError("bad handshake header")

        client = StreamClient(connector=broken)
        await client.connect("ws://backend/ws")
        await asyncio.wait_for(client.wait_closed(), 1.0)
        await client.close()
        return client.state, client.stats.last_error

    state, last_error = run(scenario())
    assert state is ConnectionState.CLOSED
    assert "bad handshake header" in last_error


def test_inbound_messages_reach_observer() -> None:
    async def scenario():
        conn = FakeConnection()
        received = []
        client = StreamClient(on_message=received.append, connector=fake_connector(conn))
        await client.connect("ws://backend/ws")
        await wait_until(lambda: client.is_open)
        conn.push('{"gesture": "pinch"}')
        conn.push("ack")
        await wait_until(lambda: len(received) == 2)
        await client.close()
        return received, client.stats.messages_received

    received, count = run(scenario())
    assert received == ['{"gesture": "pinch"}', "ack"]
    assert count == 2


def test_send_racing_disconnect_is_dropped() -> None:
    async def scenario():
        conn = FakeConnection()
        client = StreamClient(connector=fake_connector(conn))
        await client.connect("ws://backend/ws")
        await wait_until(lambda: client.is_open)
        conn.fail_sends = True
        result = await client.send(_payload())
        await client.close()
        return result, client.stats.messages_dropped

    assert run(scenario()) == (False, 1)


def test_close_never_connected_is_safe() -> None:
    async def scenario():
        client = StreamClient()
        await client.close()
        await client.close()
        assert await client.send(_payload()) is False
        await asyncio.wait_for(client.wait_closed(), 0.1)
        return client.state

    assert run(scenario()) is ConnectionState.CLOSED


def test_close_cancels_streaming_loop() -> None:
    async def scenario():
        conn = FakeConnection()
        cancelled = asyncio.Event()

        async def on_open():
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                cancelled.set()
                raise

        client = StreamClient(on_open=on_open, connector=fake_connector(conn))
        await client.connect("ws://backend/ws")
        await wait_until(lambda: client.is_open)
        await asyncio.sleep(0)
        await client.close()
        return cancelled.is_set()

    assert run(scenario()) is True


def test_server_close_ends_session() -> None:
    async def scenario():
        conn = FakeConnection()
        client = StreamClient(connector=fake_connector(conn))
        await client.connect("ws://backend/ws")
        await wait_until(lambda: client.is_open)
        await conn.close()
        await asyncio.wait_for(client.wait_closed(), 1.0)
        state = client.state
        await client.close()
        return state

    assert run(scenario()) is ConnectionState.CLOSED


def test_token_and_keepalive_passed_to_transport() -> None:
    async def scenario():
        conn = FakeConnection()
        calls = []
        client = StreamClient(token="secret", ping_interval=5.0, ping_timeout=2.0,
                              connector=fake_connector(conn, calls))
        await client.connect("ws://backend/ws")
        await wait_until(lambda: client.is_open)
        await client.close()
        return calls

    (url, kwargs), = run(scenario())
    assert url == "ws://backend/ws"
    assert kwargs["additional_headers"] == {"Authorization": "Bearer secret"}
    assert kwargs["ping_interval"] == 5.0
    assert kwargs["ping_timeout"] == 2.0


def test_second_connect_is_ignored() -> None:
    async def scenario():
        conn = FakeConnection()
        calls = []
        client = StreamClient(connector=fake_connector(conn, calls))
        await client.connect("ws://backend/ws")
        await client.connect("ws://other/ws")
        await wait_until(lambda: client.is_open)
        await client.close()
        return calls

    assert len(run(scenario())) == 1


def test_streaming_loop_stops_after_transport_error() -> None:
    from conftest import hand_joints, local_hand
    from gesture_stream.hand_sampler import HandSampler
    from gesture_stream.normalizer import JointNormalizer
    from gesture_stream.rig import RigSnapshot
    from gesture_stream.scheduler import MultiRateScheduler
    from gesture_stream.skeletons import OPENXR_HAND

    async def scenario():
        conn = FakeConnection()
        normalizer = JointNormalizer(OPENXR_HAND)
        left = HandSampler("left", RigSnapshot(hand_joints(local_hand())), normalizer)
        right = HandSampler("right", None, normalizer)
        client = StreamClient(connector=fake_connector(conn))
        scheduler = MultiRateScheduler(left, right, client, sample_rate=500.0, capture_rate=1.0)
        client.on_open = scheduler.run

        await client.connect("ws://backend/ws")
        await wait_until(lambda: len(conn.sent) >= 3)
        conn.push(ConnectionClosedError(None, None))
        await asyncio.wait_for(client.wait_closed(), 1.0)
        await wait_until(lambda: not scheduler.running)
        sent = len(conn.sent)
        await asyncio.sleep(0.02)
        await client.close()
        return sent, len(conn.sent), client.state

    sent_at_close, sent_later, state = run(scenario())
    assert sent_at_close >= 3
    assert sent_later == sent_at_close
    assert state is ConnectionState.CLOSED
