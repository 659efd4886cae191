"""
Message channel adapters carrying short text payloads between peers.

A channel guarantees in-order delivery of one sender's messages and nothing
else: no acknowledgement, no retry. Delivery to listeners happens on the
channel's own thread (Socket.IO) or inline (loopback).

Backends:
    socketio  - python-socketio client joined to a named room on a relay server
    loopback  - in-process pair, for tests and single-machine demos
"""

import logging
import threading
import uuid
from typing import Callable, List

import socketio
from socketio import exceptions as sio_exceptions

logger = logging.getLogger(__name__)

MessageCallback = Callable[[str, str], None]  # (payload, sender_id)


class ChannelError(Exception):
    """A message could not be handed to the channel."""


class ChannelClosedError(ChannelError):
    """The channel is not connected."""


class MessageChannel:
    """Base class: listener registry plus the send/connect contract."""

    def __init__(self, sender_id: str = None):
        self._sender_id = sender_id or uuid.uuid4().hex[:8]
        self._listeners: List[MessageCallback] = []
        self._lock = threading.Lock()

    @property
    def sender_id(self) -> str:
        return self._sender_id

    @property
    def is_open(self) -> bool:
        raise NotImplementedError

    def connect(self):
        raise NotImplementedError

    def close(self):
        raise NotImplementedError

    def send(self, payload: str):
        """Dispatch a payload; raises ChannelError if it cannot be handed off."""
        raise NotImplementedError

    def add_listener(self, callback: MessageCallback):
        with self._lock:
            if callback not in self._listeners:
                self._listeners.append(callback)

    def remove_listener(self, callback: MessageCallback):
        with self._lock:
            self._listeners = [cb for cb in self._listeners if cb != callback]

    def _deliver(self, payload, sender_id):
        with self._lock:
            listeners = list(self._listeners)
        for callback in listeners:
            try:
                callback(payload, sender_id)
            except Exception as e:
                logger.error("Channel listener error (%s): %s",
                             getattr(callback, "__name__", callback), e)

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, *args):
        self.close()


class LoopbackChannel(MessageChannel):
    """In-process channel. Messages sent on one end reach its peer's listeners.

    With ``echo=True`` and no peer, sends come back to the sender's own
    listeners under ``echo_sender_id`` (single-machine demo).
    """

    def __init__(self, sender_id: str = None, echo: bool = False,
                 echo_sender_id: str = "loopback-peer"):
        super().__init__(sender_id)
        self._peer = None
        self._echo = echo
        self._echo_sender_id = echo_sender_id
        self._open = False
        self.sent: List[str] = []

    @classmethod
    def pair(cls, local_id: str = "local", remote_id: str = "remote"):
        """Two connected ends of one channel."""
        a, b = cls(local_id), cls(remote_id)
        a._peer, b._peer = b, a
        a.connect()
        b.connect()
        return a, b

    @property
    def is_open(self) -> bool:
        return self._open

    def connect(self):
        self._open = True
        logger.debug("Loopback channel open (%s)", self._sender_id)

    def close(self):
        self._open = False
        logger.debug("Loopback channel closed (%s)", self._sender_id)

    def send(self, payload: str):
        if not self._open:
            raise ChannelClosedError("loopback channel %s is closed" % self._sender_id)
        self.sent.append(payload)
        if self._peer is not None:
            if self._peer.is_open:
                self._peer._deliver(payload, self._sender_id)
        elif self._echo:
            self._deliver(payload, self._echo_sender_id)


class SocketIOChannel(MessageChannel):
    """python-socketio client bound to one room on a relay server.

    Wire format (both directions), on ``event_name``:
        {"channel": <room>, "text": <payload>, "sender": <sender_id>}
    On connect the client emits ``join`` with {"channel", "sender"}.
    """

    def __init__(self, config: dict, sender_id: str = None):
        super().__init__(sender_id or config.get("sender_id"))
        self._server_url = config.get("server_url", "http://localhost:5000")
        self._room = config.get("channel", "sign-relay")
        self._event_name = config.get("event_name", "channel_message")
        self._transports = config.get("transports", ["websocket"])
        self._connect_timeout = config.get("connect_timeout_s", 5)

        self._sio = socketio.Client(reconnection=config.get("reconnection", True))
        self._sio.on("connect", self._on_connect)
        self._sio.on("disconnect", self._on_disconnect)
        self._sio.on(self._event_name, self._on_event)

    @property
    def is_open(self) -> bool:
        return self._sio.connected

    def connect(self):
        """Connect to the relay server; raises ChannelError on failure."""
        try:
            self._sio.connect(
                self._server_url,
                transports=self._transports,
                wait_timeout=self._connect_timeout,
            )
        except sio_exceptions.ConnectionError as e:
            raise ChannelError("cannot reach relay server %s: %s" % (self._server_url, e)) from e

    def close(self):
        if self._sio.connected:
            self._sio.disconnect()

    def send(self, payload: str):
        if not self._sio.connected:
            raise ChannelClosedError("not connected to %s" % self._server_url)
        try:
            self._sio.emit(self._event_name, {
                "channel": self._room,
                "text": payload,
                "sender": self._sender_id,
            })
        except sio_exceptions.SocketIOError as e:
            raise ChannelError(str(e)) from e

    def _on_connect(self):
        logger.info("Relay connected: %s (room=%s, id=%s)",
                    self._server_url, self._room, self._sender_id)
        self._sio.emit("join", {"channel": self._room, "sender": self._sender_id})

    def _on_disconnect(self, *args):
        logger.warning("Relay disconnected from %s", self._server_url)

    def _on_event(self, data):
        if not isinstance(data, dict):
            logger.debug("Ignoring non-object relay event: %r", data)
            return
        if data.get("channel", self._room) != self._room:
            return
        self._deliver(data.get("text"), str(data.get("sender", "")))


def create_channel(config: dict) -> MessageChannel:
    """Build the channel named by ``relay.backend``."""
    backend = config.get("backend", "socketio")
    if backend == "loopback":
        return LoopbackChannel(config.get("sender_id"), echo=config.get("echo", True))
    if backend == "socketio":
        return SocketIOChannel(config)
    raise ValueError("unknown relay backend: %s" % backend)
