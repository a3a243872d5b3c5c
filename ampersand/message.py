"""Messages passed between the components of the application."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from enum import IntEnum


class MessageType(IntEnum):
    """The kind of content a message carries."""

    NONE = 0
    AUDIO = 1
    AUDIO_INTERPOLATE = 2
    TEXT = 3
    SIGNAL = 4


class SignalType(IntEnum):
    """Signal codes, carried in the format field of SIGNAL messages."""

    NONE = 0
    CALL_START = 1
    CALL_END = 2
    CALL_TERMINATE = 3
    RADIO_KEY = 4
    RADIO_UNKEY = 5


@dataclass
class Message:
    """An internal event or block of data, with routing information."""

    # Large enough for 20ms of PCM16 at 48K.
    MAX_SIZE = 160 * 6 * 2
    BROADCAST = 0xFFFFFFFF

    type: MessageType = MessageType.NONE
    format: int = 0
    body: bytes = b""
    origin_us: int = 0
    source_bus_id: int = 0
    source_call_id: int = 0
    dest_bus_id: int = 0
    dest_call_id: int = 0

    def __post_init__(self) -> None:
        self.body = bytes(self.body)
        if len(self.body) > self.MAX_SIZE:
            raise ValueError(
                f"message body of {len(self.body)} bytes exceeds {self.MAX_SIZE}"
            )

    @property
    def size(self) -> int:
        """Length of the body in bytes."""
        return len(self.body)

    def set_source(self, bus_id: int, call_id: int) -> None:
        """Set where the message came from."""
        self.source_bus_id = bus_id
        self.source_call_id = call_id

    def set_dest(self, bus_id: int, call_id: int) -> None:
        """Set where the message is going."""
        self.dest_bus_id = bus_id
        self.dest_call_id = call_id

    def copy(self) -> Message:
        """Return an independent copy of this message."""
        return dataclasses.replace(self)