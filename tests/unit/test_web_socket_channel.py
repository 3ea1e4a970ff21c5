"""Tests for the WebSocket channel against the in-process mock platform."""

import asyncio
from types import SimpleNamespace

import pytest
import pytest_asyncio

from conftest import TOKEN, eventually, make_configuration
from trading_e2e import (
    ChannelClosedError,
    ChannelConnectionError,
    ConnectionState,
    ExpectationMatcher,
    IgnoreOptions,
    InboundQueue,
    WebSocketChannel,
)
from trading_e2e import web_socket_channel


def types(queue):
    return [event.get("type") for event in queue.events()]


@pytest_asyncio.fixture
async def channel(platform):
    queue = InboundQueue()
    channel = WebSocketChannel(queue, IgnoreOptions(), name="unit")
    await channel.connect(make_configuration(platform).web_socket_url_with_token(TOKEN))
    assert platform.wait_for_clients(1)
    yield channel
    await channel.stop_heartbeat()
    await channel.disconnect()


class TestConnection:

    @pytest.mark.asyncio
    async def test_connect_and_disconnect(self, channel):
        assert channel.connected()
        assert channel.state is ConnectionState.CONNECTED
        await channel.disconnect()
        assert not channel.connected()
        assert channel.state is ConnectionState.DISCONNECTED
        assert channel.pending_disconnection

    @pytest.mark.asyncio
    async def test_bad_token_is_refused(self, platform):
        channel = WebSocketChannel(InboundQueue(), name="unit")
        with pytest.raises(ChannelConnectionError):
            await channel.connect(make_configuration(platform).web_socket_url_with_token("wrong"))
        assert not channel.connected()

    @pytest.mark.asyncio
    async def test_refused_port(self):
        channel = WebSocketChannel(InboundQueue(), name="unit", open_timeout=1)
        with pytest.raises(ChannelConnectionError):
            await channel.connect("ws://127.0.0.1:9?token=x")

    @pytest.mark.asyncio
    async def test_reconnect_resets_pending_disconnection(self, platform, channel):
        await channel.disconnect()
        await channel.connect(make_configuration(platform).web_socket_url_with_token(TOKEN))
        assert channel.connected()
        assert not channel.pending_disconnection

    @pytest.mark.asyncio
    async def test_server_drop_marks_channel_disconnected(self, platform, channel):
        platform.drop_clients()
        assert await eventually(lambda: not channel.connected())
        with pytest.raises(ChannelClosedError):
            await channel.send({"type": "heartbeat"})


class TestReceivePath:

    @pytest.mark.asyncio
    async def test_event_is_queued_with_receipt_time(self, platform, channel):
        platform.publish({"type": "trade", "payload": {"qty": 5}})
        matcher = ExpectationMatcher(channel.queue, channel.connected, poll_interval=0.01)
        [event] = await matcher.expect({"type": "trade", "payload": {"qty": 5}}, timeout=2)
        assert isinstance(event["trace"]["rx"], int)

    @pytest.mark.asyncio
    async def test_existing_trace_is_kept(self, platform, channel):
        platform.publish({"type": "trade", "trace": {"tx": 1}})
        assert await eventually(lambda: "trade" in types(channel.queue))
        trace = channel.queue.events()[0]["trace"]
        assert trace["tx"] == 1 and "rx" in trace

    @pytest.mark.asyncio
    async def test_heartbeats_are_filtered(self, platform, channel):
        await asyncio.sleep(0.2)
        platform.publish({"type": "trade"})
        assert await eventually(lambda: "trade" in types(channel.queue))
        assert "heartbeat" not in types(channel.queue)

    @pytest.mark.asyncio
    async def test_heartbeats_kept_when_not_ignored(self, platform):
        queue = InboundQueue()
        channel = WebSocketChannel(queue, IgnoreOptions(heartbeat=False), name="unit")
        await channel.connect(make_configuration(platform).web_socket_url_with_token(TOKEN))
        try:
            assert await eventually(lambda: "heartbeat" in types(queue))
        finally:
            await channel.disconnect()

    @pytest.mark.asyncio
    async def test_suspended_orders_are_filtered(self, platform, channel):
        platform.publish({"type": "EXECUTION_REPORT", "payload": {"orderStatus": "SUSPENDED"}})
        platform.publish({"type": "EXECUTION_REPORT", "payload": {"orderStatus": "NEW"}})
        assert await eventually(lambda: len(channel.queue) == 1)
        await asyncio.sleep(0.05)
        assert [e["payload"]["orderStatus"] for e in channel.queue.events()] == ["NEW"]

    @pytest.mark.asyncio
    async def test_multi_is_expanded(self, platform, channel):
        platform.publish_multi([{"type": "a"}, {"type": "b"}])
        assert await eventually(lambda: len(channel.queue) == 2)
        assert types(channel.queue) == ["a", "b"]

    @pytest.mark.asyncio
    async def test_batch_envelope(self, batched_platform):
        queue = InboundQueue()
        channel = WebSocketChannel(queue, name="unit")
        await channel.connect(make_configuration(batched_platform).web_socket_url_with_token(TOKEN))
        assert batched_platform.wait_for_clients(1)
        try:
            batched_platform.publish_batch([{"type": "a"}, {"type": "b"}, {"type": "c"}])
            assert await eventually(lambda: len(queue) == 3)
            assert types(queue) == ["a", "b", "c"]
        finally:
            await channel.disconnect()

    def test_malformed_frames_are_dropped(self):
        queue = InboundQueue()
        channel = WebSocketChannel(queue, name="unit")
        channel._on_frame("not json")
        channel._on_frame('{"unexpected": 1}')
        channel._on_frame('{"data": [1, 2]}')
        assert len(queue) == 0

    def test_receipt_time_never_runs_backwards(self, monkeypatch):
        queue = InboundQueue()
        channel = WebSocketChannel(queue, name="unit")
        clock = iter([1000.000, 999.500, 1000.250])
        monkeypatch.setattr(web_socket_channel, "time", SimpleNamespace(time=lambda: next(clock)))
        for _ in range(3):
            channel._on_frame('{"data": {"type": "tick"}}')
        assert [event["trace"]["rx"] for event in queue.events()] == [1000000, 1000000, 1000250]

    @pytest.mark.asyncio
    async def test_events_dropped_after_disconnect_starts(self, channel):
        await channel.disconnect()
        channel._on_frame('{"data": {"type": "late"}}')
        assert len(channel.queue) == 0


class TestSendPath:

    @pytest.mark.asyncio
    async def test_send_reaches_server(self, platform, channel):
        assert await channel.send({"type": "subscribe", "id": "trade.4", "channel": "trade"})
        matcher = ExpectationMatcher(channel.queue, channel.connected, poll_interval=0.01)
        await matcher.expect({"id": "trade.4", "status": "OK"}, timeout=2)
        assert platform.received("subscribe")[0]["channel"] == "trade"

    @pytest.mark.asyncio
    async def test_send_on_closed_channel(self):
        channel = WebSocketChannel(InboundQueue(), name="unit")
        with pytest.raises(ChannelClosedError):
            await channel.send({"type": "heartbeat"})
        assert await channel.send({"type": "heartbeat"}, tolerate_closed=True) is False

    @pytest.mark.asyncio
    async def test_heartbeat_loop(self, platform, channel):
        channel.start_heartbeat(0.02)
        assert channel.heartbeat_running
        assert await eventually(lambda: len(platform.received("heartbeat")) >= 2)
        await channel.stop_heartbeat()
        assert not channel.heartbeat_running
