import asyncio
import json

import pytest

from stallbid.services.bid_channel import BidUpdateChannel, ChannelError, encode_frame, parse_frame

from tests.conftest import STALL_ID, make_bid


class FakeSocket:
    """Scripted websocket: recv() serves the handshake, iteration serves the rest"""

    def __init__(self, handshake, messages):
        self.handshake = list(handshake)
        self.messages = list(messages)
        self.sent = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return False

    async def send(self, data):
        self.sent.append(data)

    async def recv(self):
        return self.handshake.pop(0)

    def __aiter__(self):
        return self

    async def __anext__(self):
        if not self.messages:
            raise StopAsyncIteration
        return self.messages.pop(0)


def message(body: str) -> str:
    return encode_frame("MESSAGE", {"destination": f"/topic/stall/{STALL_ID}", "subscription": "sub-7"}, body)


def test_encode_frame_layout():
    frame = encode_frame("SUBSCRIBE", {"id": "sub-1", "destination": "/topic/stall/1"})

    assert frame == "SUBSCRIBE\nid:sub-1\ndestination:/topic/stall/1\n\n\x00"


def test_header_values_are_escaped_outside_connect():
    frame = encode_frame("SEND", {"note": "a:b\nc"})

    assert "note:a\\cb\\nc" in frame
    assert parse_frame(frame).headers["note"] == "a:b\nc"


def test_parse_frame_reads_command_headers_and_body():
    frame = parse_frame("MESSAGE\r\ndestination:/topic/stall/7\r\ndestination:ignored\r\n\r\n{\"a\": 1}\x00\n")

    assert frame.command == "MESSAGE"
    assert frame.headers == {"destination": "/topic/stall/7"}
    assert frame.body == '{"a": 1}'


def test_heartbeat_is_not_a_frame():
    assert parse_frame("\n") is None
    assert parse_frame(b"\r\n") is None


@pytest.mark.asyncio
async def test_message_frames_are_normalized():
    received = []

    async def on_bid(bid):
        received.append(bid)

    channel = BidUpdateChannel(STALL_ID, on_bid, ws_url="ws://test/ws")

    assert await channel.handle_message(message(json.dumps(make_bid(3, 6100))))
    assert await channel.handle_message(message("not json"))
    assert not await channel.handle_message(encode_frame("RECEIPT", {"receipt-id": "1"}))

    assert received[0].amount == 6100
    assert received[0].stall_id == STALL_ID
    assert received[1] is None


@pytest.mark.asyncio
async def test_error_frame_raises():
    async def on_bid(bid):
        pass

    channel = BidUpdateChannel(STALL_ID, on_bid, ws_url="ws://test/ws")

    with pytest.raises(ChannelError, match="denied"):
        await channel.handle_message(encode_frame("ERROR", {"message": "denied"}))


@pytest.mark.asyncio
async def test_run_connects_subscribes_and_reconnects(session):
    sockets = []
    received = []
    second_connect = asyncio.Event()

    def connect(url):
        sock = FakeSocket(
            handshake=["\n", encode_frame("CONNECTED", {"version": "1.2"})],
            messages=[message(json.dumps(make_bid(len(sockets) + 1, 5100 + len(sockets) * 100)))],
        )
        sockets.append(sock)
        if len(sockets) == 2:
            second_connect.set()
        return sock

    async def on_bid(bid):
        received.append(bid.amount)

    channel = BidUpdateChannel(STALL_ID, on_bid, ws_url="ws://test:8080/ws", session=session,
                               reconnect_delay=0, connect=connect)
    channel.start()
    await asyncio.wait_for(second_connect.wait(), timeout=2)
    await channel.stop()

    connect_frame = parse_frame(sockets[0].sent[0])
    subscribe_frame = parse_frame(sockets[0].sent[1])
    assert connect_frame.command == "CONNECT"
    assert connect_frame.headers["host"] == "test"
    assert connect_frame.headers["Authorization"] == "Bearer test-token"
    assert subscribe_frame.command == "SUBSCRIBE"
    assert subscribe_frame.headers["destination"] == f"/topic/stall/{STALL_ID}"
    assert received[0] == 5100
    assert not channel.connected


@pytest.mark.asyncio
async def test_refused_handshake_is_retried():
    attempts = []
    done = asyncio.Event()

    def connect(url):
        attempts.append(url)
        if len(attempts) >= 3:
            done.set()
        return FakeSocket(handshake=[encode_frame("ERROR", {"message": "bad login"})], messages=[])

    async def on_bid(bid):
        pass

    channel = BidUpdateChannel(STALL_ID, on_bid, ws_url="ws://test/ws", reconnect_delay=0, connect=connect)
    channel.start()
    await asyncio.wait_for(done.wait(), timeout=2)
    await channel.stop()

    assert len(attempts) >= 3
