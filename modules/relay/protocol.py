"""
Relay protocol: confirmed letters <-> channel payloads.

The payload is the bare uppercase letter ("V"). Delivery is at-most-once
and best-effort: a failed send is logged and dropped, inbound payloads
that are not one of the known letters are discarded, and messages are
handled in arrival order with no deduplication.
"""

import logging
from typing import Optional, Union

from core.types import Letter, RelayMessage
from modules.relay.channels import MessageChannel, ChannelError

logger = logging.getLogger(__name__)


class RelayProtocol:
    """Encodes outbound letters and decodes inbound payloads for one channel."""

    def __init__(self, channel: MessageChannel):
        self._channel = channel
        self._sent_count = 0
        self._failed_count = 0
        self._dropped_count = 0

    @property
    def channel(self) -> MessageChannel:
        return self._channel

    @property
    def sender_id(self) -> str:
        return self._channel.sender_id

    def encode(self, letter: Letter) -> RelayMessage:
        """Build the outbound message for a confirmed letter (never None)."""
        if not isinstance(letter, Letter):
            raise ValueError("cannot relay %r: not a Letter" % (letter,))
        return RelayMessage(letter=letter.value, sender_id=self.sender_id)

    def decode(self, raw: Union[str, RelayMessage, None]) -> Optional[Letter]:
        """Extract the letter from an inbound payload, or None if malformed."""
        if isinstance(raw, RelayMessage):
            raw = raw.letter
        if not isinstance(raw, str):
            return None
        return Letter.from_string(raw.strip())

    def send(self, letter: Letter) -> bool:
        """Hand a confirmed letter to the channel.

        Returns:
            True if the channel accepted it; False if it was dropped.
            Channel errors are logged here and never propagate.
        """
        message = self.encode(letter)
        try:
            self._channel.send(message.payload)
        except ChannelError as e:
            self._failed_count += 1
            logger.warning("Relay send dropped (%s): %s", message.letter, e)
            return False
        self._sent_count += 1
        logger.debug("Relayed %s as %s", message.letter, message.sender_id)
        return True

    def receive(self, payload, sender_id: str) -> Optional[Letter]:
        """Decode one inbound delivery; malformed payloads are counted and dropped."""
        letter = self.decode(payload)
        if letter is None:
            self._dropped_count += 1
            logger.debug("Dropped malformed payload from %s: %r", sender_id, payload)
        return letter

    @property
    def stats(self) -> dict:
        return {
            "sent": self._sent_count,
            "failed": self._failed_count,
            "dropped": self._dropped_count,
        }
