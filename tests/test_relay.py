"""
Tests for Relay Protocol and Message Channels
==============================================
"""

import pytest
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from core.types import Letter, RelayMessage
from modules.relay.protocol import RelayProtocol
from modules.relay.channels import (
    LoopbackChannel, SocketIOChannel, ChannelError, ChannelClosedError,
    MessageChannel, create_channel, sio_exceptions,
)


class RejectingChannel(MessageChannel):
    """Open channel whose sends are always refused."""

    @property
    def is_open(self):
        return True

    def connect(self):
        pass

    def close(self):
        pass

    def send(self, payload):
        raise ChannelError("send rejected")


@pytest.fixture
def channels():
    return LoopbackChannel.pair("alice", "bob")


class TestEncodeDecode:

    @pytest.mark.parametrize("letter", list(Letter))
    def test_round_trip(self, channels, letter):
        relay = RelayProtocol(channels[0])
        assert relay.decode(relay.encode(letter)) == letter

    def test_payload_is_bare_letter(self, channels):
        message = RelayProtocol(channels[0]).encode(Letter.V)
        assert message == RelayMessage(letter="V", sender_id="alice")
        assert message.payload == "V"

    def test_encode_rejects_none(self, channels):
        with pytest.raises(ValueError):
            RelayProtocol(channels[0]).encode(None)

    @pytest.mark.parametrize("raw", ["", "Z", "v", "VV", "Letter V", None, 7, b"V"])
    def test_malformed_payloads(self, channels, raw):
        assert RelayProtocol(channels[0]).decode(raw) is None

    def test_surrounding_whitespace_tolerated(self, channels):
        assert RelayProtocol(channels[0]).decode(" L\n") == Letter.L


class TestSend:

    def test_send_reaches_peer(self, channels):
        alice, bob = channels
        received = []
        bob.add_listener(lambda payload, sender: received.append((payload, sender)))

        assert RelayProtocol(alice).send(Letter.Y) is True
        assert received == [("Y", "alice")]

    def test_order_preserved(self, channels):
        alice, bob = channels
        received = []
        bob.add_listener(lambda payload, sender: received.append(payload))
        relay = RelayProtocol(alice)
        for letter in (Letter.A, Letter.B, Letter.C):
            relay.send(letter)
        assert received == ["A", "B", "C"]

    def test_closed_channel_drops_without_raising(self, channels):
        alice, _ = channels
        alice.close()
        relay = RelayProtocol(alice)
        assert relay.send(Letter.A) is False
        assert relay.stats["failed"] == 1

    def test_rejected_send_drops_without_raising(self):
        relay = RelayProtocol(RejectingChannel("x"))
        assert relay.send(Letter.B) is False
        assert relay.stats == {"sent": 0, "failed": 1, "dropped": 0}

    def test_receive_counts_dropped(self, channels):
        relay = RelayProtocol(channels[1])
        assert relay.receive("nope", "alice") is None
        assert relay.receive("C", "alice") == Letter.C
        assert relay.stats["dropped"] == 1


class TestLoopbackChannel:

    def test_echo_mode_delivers_to_self(self):
        channel = LoopbackChannel("me", echo=True)
        channel.connect()
        received = []
        channel.add_listener(lambda payload, sender: received.append((payload, sender)))
        channel.send("V")
        assert received == [("V", "loopback-peer")]

    def test_send_when_closed_raises(self):
        channel = LoopbackChannel("me")
        with pytest.raises(ChannelClosedError):
            channel.send("A")

    def test_listener_error_isolated(self, channels):
        alice, bob = channels
        received = []

        def broken(payload, sender):
            raise RuntimeError("boom")

        bob.add_listener(broken)
        bob.add_listener(lambda payload, sender: received.append(payload))
        alice.send("I")
        assert received == ["I"]

    def test_remove_listener(self, channels):
        alice, bob = channels
        received = []
        listener = lambda payload, sender: received.append(payload)  # noqa: E731
        bob.add_listener(listener)
        bob.remove_listener(listener)
        alice.send("A")
        assert received == []

    def test_random_sender_id(self):
        assert LoopbackChannel().sender_id != LoopbackChannel().sender_id


class TestSocketIOChannel:

    @pytest.fixture
    def channel(self):
        return SocketIOChannel({"channel": "room1", "server_url": "http://relay.invalid"}, "alice")

    def test_send_when_disconnected(self, channel):
        assert not channel.is_open
        with pytest.raises(ChannelClosedError):
            channel.send("V")

    def test_inbound_event_delivered(self, channel):
        received = []
        channel.add_listener(lambda payload, sender: received.append((payload, sender)))
        channel._on_event({"channel": "room1", "text": "B", "sender": "bob"})
        assert received == [("B", "bob")]

    def test_other_rooms_ignored(self, channel):
        received = []
        channel.add_listener(lambda payload, sender: received.append(payload))
        channel._on_event({"channel": "room2", "text": "B", "sender": "bob"})
        channel._on_event("B")
        assert received == []

    def test_connect_failure_wrapped(self, channel, monkeypatch):
        def refuse(*args, **kwargs):
            raise sio_exceptions.ConnectionError("refused")

        monkeypatch.setattr(channel._sio, "connect", refuse)
        with pytest.raises(ChannelError):
            channel.connect()

    def test_create_channel_backends(self):
        assert isinstance(create_channel({"backend": "loopback"}), LoopbackChannel)
        assert isinstance(create_channel({"backend": "socketio"}), SocketIOChannel)
        with pytest.raises(ValueError):
            create_channel({"backend": "carrier-pigeon"})


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
