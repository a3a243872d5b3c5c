"""Retention and retransmission of reliably delivered frames.

Every reliable frame goes through a buffer. Frames are released in
sequence order and kept until the peer acknowledges them. Frames the
peer has not acknowledged in time are sent again.
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

_LOG = logging.getLogger(__name__)

# How many unacknowledged frames the buffer can hold.
BUFFER_CAPACITY = 16
# How long a frame waits for an acknowledgement before it is sent again.
RETRANSMIT_INTERVAL_MS = 2000


def compare_wrap(a: int, b: int) -> int:
    """Compare two 8-bit sequence numbers, allowing for wrap-around.

    The two values are assumed to be within 128 of each other, so 0xfd
    counts as less than 0x04 because the larger number has just wrapped.
    Returns -1, 0 or 1.
    """
    a &= 0xFF
    b &= 0xFF
    if a == b:
        return 0
    if a < 0x80:
        return -1 if a < b < a + 0x80 else 1
    return 1 if a - 0x80 < b < a else -1


@dataclass(frozen=True)
class ReliableFrame:
    """A frame that must reach the peer, identified by its outbound sequence number."""

    o_seq_no: int
    time_stamp: int = 0
    payload: Any = None
    retransmit: bool = False

    def __post_init__(self) -> None:
        if not 0 <= self.o_seq_no <= 0xFF:
            raise ValueError(f"sequence number {self.o_seq_no} is not 8-bit")

    def as_retransmit(self) -> ReliableFrame:
        """Return a copy of this frame with the retransmission flag set."""
        return dataclasses.replace(self, retransmit=True)


FrameSink = Callable[[ReliableFrame], None]


class RetransmissionBuffer:
    """Holds outbound reliable frames until the peer acknowledges them."""

    def __init__(self, capacity: int = BUFFER_CAPACITY) -> None:
        self.capacity = capacity
        self.reset()

    def reset(self) -> None:
        """Return to the initial state, as at the start of a call."""
        self._frames: list[ReliableFrame] = []
        self._next_out_seq = 0
        self._next_expected_seq = 0
        self._last_retransmit_attempt_ms = 0
        self._retransmit_count = 0

    @property
    def retransmit_count(self) -> int:
        """Number of times a frame has been sent again."""
        return self._retransmit_count

    @property
    def next_out_seq(self) -> int:
        """Sequence number of the next frame to be sent for the first time."""
        return self._next_out_seq

    @property
    def next_expected_seq(self) -> int:
        """The peer's next expected sequence number, as last reported."""
        return self._next_expected_seq

    def __len__(self) -> int:
        return len(self._frames)

    def is_empty(self) -> bool:
        """True when no frames are being retained."""
        return not self._frames

    def set_expected_seq(self, seq: int) -> bool:
        """Record the peer's next expected sequence number and drop acknowledged frames.

        A number lower than the one already recorded is ignored.
        """
        seq &= 0xFF
        if compare_wrap(seq, self._next_expected_seq) >= 0:
            self._next_expected_seq = seq
        mark = self._next_expected_seq
        self._frames = [f for f in self._frames if compare_wrap(f.o_seq_no, mark) >= 0]
        return True

    def poll(self, elapsed_ms: int, sink: FrameSink) -> None:
        """Send frames due for first transmission, then any due for retransmission."""
        sent_anything = True
        while sent_anything:
            sent_anything = False
            for frame in self._frames:
                if frame.o_seq_no == self._next_out_seq:
                    sink(frame)
                    self._next_out_seq = (self._next_out_seq + 1) & 0xFF
                    sent_anything = True

        if elapsed_ms > self._last_retransmit_attempt_ms + RETRANSMIT_INTERVAL_MS:
            for frame in self._frames:
                if (
                    compare_wrap(frame.o_seq_no, self._next_expected_seq) >= 0
                    and elapsed_ms > frame.time_stamp + RETRANSMIT_INTERVAL_MS
                ):
                    sink(frame.as_retransmit())
                    self._retransmit_count += 1
            self._last_retransmit_attempt_ms = elapsed_ms

    def retransmit_to_seq(self, target_seq: int, sink: FrameSink) -> None:
        """Immediately resend every unacknowledged frame up to and including target_seq."""
        target_seq &= 0xFF
        for frame in self._frames:
            if (
                compare_wrap(frame.o_seq_no, self._next_expected_seq) >= 0
                and compare_wrap(frame.o_seq_no, target_seq) <= 0
            ):
                sink(frame.as_retransmit())
                self._retransmit_count += 1

    def consume(self, frame: ReliableFrame) -> bool:
        """Accept a frame for delivery.

        Frames may arrive in any order but are sent in sequence order.
        Returns False when the buffer is full or the sequence number is
        already held.
        """
        if len(self._frames) >= self.capacity:
            return False
        if any(f.o_seq_no == frame.o_seq_no for f in self._frames):
            _LOG.info("Rejected %d dup", frame.o_seq_no)
            return False
        self._frames.append(frame)
        return True