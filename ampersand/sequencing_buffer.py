"""Adaptive jitter buffer that puts voice and signal frames back in order.

The playout delay is estimated with "Algorithm 1" from Ramjee, Kurose,
Towsley and Schulzrinne, "Adaptive Playout Mechanisms for Packetized
Audio Applications in Wide-Area Networks".
"""

from __future__ import annotations

import bisect
import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

_LOG = logging.getLogger(__name__)

_U32 = 0xFFFFFFFF

# Size of an audio tick in milliseconds.
VOICE_TICK_MS = 20
# Initial playout margin; must be a multiple of the tick size.
DEFAULT_INITIAL_MARGIN_MS = VOICE_TICK_MS * 3
# The most the cursor may move back inside a talkspurt to pick up a late frame.
MID_TS_ADJUST_MAX_MS = 40
# Milliseconds of silence before a talkspurt is declared over.
DEFAULT_TALKSPURT_TIMEOUT_MS = 60
# Room for one second of audio plus some interspersed control frames.
MAX_BUFFER_SIZE = 64

_ALPHA = 0.998002
_BETA = 5.0


def extend_time(remote_time: int, local_time: int) -> int:
    """Extend a 16-bit mini-frame time to 32 bits using a nearby local time.

    Times that already use the upper 16 bits are returned unchanged.
    """
    if remote_time & 0xFFFF0000:
        return remote_time
    r2 = remote_time & 0xFFFF
    l1 = local_time & 0xFFFF0000
    l2 = local_time & 0xFFFF
    if l2 >= 0x8000:
        boundary = (l2 - 0x8000) & 0xFFFF
        if r2 < boundary:
            return ((l1 + 0x10000) & _U32) | r2
        return l1 | r2
    boundary = (l2 + 0x8000) & 0xFFFF
    if r2 > boundary:
        return ((l1 - 0x10000) & _U32) | r2
    return l1 | r2


def round_up_to_tick(value: int, tick: int) -> int:
    """Round up to the next multiple of tick."""
    return math.ceil(value / tick) * tick


def round_to_tick(value: int, tick: int) -> int:
    """Round to the nearest multiple of tick, halves away from zero."""
    quotient = value / tick
    magnitude = math.floor(abs(quotient) + 0.5)
    return int(math.copysign(magnitude, quotient)) * tick


class SequencingBufferSink(ABC):
    """Receives the frames a sequencing buffer releases on each tick."""

    @abstractmethod
    def play_signal(self, frame: Any, local_time: int) -> None:
        """Process a signalling frame now."""

    @abstractmethod
    def play_voice(self, frame: Any, local_time: int) -> None:
        """Play a voice frame now."""

    @abstractmethod
    def interpolate_voice(self, local_time: int, duration: int) -> None:
        """Fill in duration milliseconds of missing voice."""


@dataclass
class _Slot:
    voice: bool
    remote_time: int
    local_time: int
    payload: Any


class SequencingBuffer:
    """Adaptive jitter buffer for one call."""

    def __init__(self) -> None:
        self.talkspurt_timeout_interval = DEFAULT_TALKSPURT_TIMEOUT_MS
        self.delay_locked = False
        self._initial_margin = DEFAULT_INITIAL_MARGIN_MS
        self.reset()

    def reset(self) -> None:
        """Clear all frames, tracking state and statistics."""
        self._slots: list[_Slot] = []
        self._max_buffer_depth = 0
        self._overflow_count = 0
        self._late_voice_frame_count = 0
        self._interpolated_voice_frame_count = 0
        self._last_played_local = 0
        self._last_played_origin = 0
        self._origin_cursor = 0
        self._in_talkspurt = False
        self._talkspurt_count = 0
        self._talkspurt_frame_count = 0
        self._talkspurt_first_origin = 0
        self._voice_playout_count = 0
        self._voice_consumed_count = 0
        self._di = 0.0
        self._di_1 = 0.0
        self._vi = 0.0
        self._vi_1 = 0.0
        self._ideal_delay = 0.0
        self._worst_margin = 0
        self._total_margin = 0

    def lock_delay(self) -> None:
        """Mark the playout delay as locked."""
        self.delay_locked = True

    def unlock_delay(self) -> None:
        """Mark the playout delay as adjustable."""
        self.delay_locked = False

    def set_initial_margin(self, ms: int) -> None:
        """Set the playout margin used at the start of a call and seed the estimator."""
        self._initial_margin = ms
        self._di = self._di_1 = float(ms)
        self._vi = self._vi_1 = 0.0

    # ----- Diagnostics ------------------------------------------------------

    @property
    def late_voice_frame_count(self) -> int:
        return self._late_voice_frame_count

    @property
    def interpolated_voice_frame_count(self) -> int:
        return self._interpolated_voice_frame_count

    @property
    def overflow_count(self) -> int:
        return self._overflow_count

    @property
    def max_buffer_depth(self) -> int:
        return self._max_buffer_depth

    @property
    def talkspurt_count(self) -> int:
        """Completed talkspurts since reset."""
        return self._talkspurt_count

    @property
    def ideal_delay(self) -> float:
        """Current estimate of the ideal playout delay in milliseconds."""
        return self._ideal_delay

    @property
    def max_size(self) -> int:
        return MAX_BUFFER_SIZE

    def is_empty(self) -> bool:
        """True when no frames are waiting."""
        return not self._slots

    def __len__(self) -> int:
        return len(self._slots)

    def in_talkspurt(self) -> bool:
        """True while a talkspurt is being played."""
        return self._in_talkspurt

    # ----- Input ------------------------------------------------------------

    def consume_signal(self, payload: Any, remote_time: int, local_time: int) -> bool:
        """Queue a signal frame; False when the buffer is full."""
        return self._consume(False, payload, remote_time, local_time)

    def consume_voice(self, payload: Any, remote_time: int, local_time: int) -> bool:
        """Queue a voice frame; False when the buffer is full."""
        return self._consume(True, payload, remote_time, local_time)

    def _consume(self, voice: bool, payload: Any, remote_time: int, local_time: int) -> bool:
        if len(self._slots) >= MAX_BUFFER_SIZE:
            self._overflow_count += 1
            _LOG.info("Sequencing Buffer overflow")
            return False
        bisect.insort_right(
            self._slots,
            _Slot(voice, remote_time, local_time, payload),
            key=lambda slot: slot.remote_time,
        )
        if voice:
            start_of_call = self._voice_consumed_count == 0
            self._voice_consumed_count += 1
            self._update_delay_target(start_of_call, local_time, remote_time)
        return True

    def _update_delay_target(self, start_of_call: bool, rx_time: int, orig_time: int) -> None:
        ni = float(rx_time) - float(orig_time)
        if start_of_call:
            self._di = self._di_1 = ni
            self._vi = self._vi_1 = 0.0
        else:
            self._di = _ALPHA * self._di_1 + (1 - _ALPHA) * ni
            self._di_1 = self._di
            self._vi = _ALPHA * self._vi_1 + (1 - _ALPHA) * abs(self._di - ni)
            self._vi_1 = self._vi
        self._ideal_delay = self._di + _BETA * self._vi

    # ----- Output -----------------------------------------------------------

    def play_out(self, local_time: int, sink: SequencingBufferSink) -> None:
        """Release whatever is due at local_time, which must fall on a tick boundary."""
        voice_played = False
        self._max_buffer_depth = max(self._max_buffer_depth, len(self._slots))

        while self._slots:
            slot = self._slots[0]
            if not slot.voice:
                self._slots.pop(0)
                sink.play_signal(slot.payload, local_time)
                continue

            old_cursor = self._origin_cursor

            if slot.remote_time <= self._last_played_origin:
                _LOG.info(
                    "Discarded OOO frame (%d <= %d)",
                    slot.remote_time, self._last_played_origin,
                )
                self._late_voice_frame_count += 1
                self._slots.pop(0)
                continue

            if not self._in_talkspurt:
                self._start_talkspurt(slot, local_time, old_cursor)

            if slot.remote_time < self._origin_cursor:
                if self._origin_cursor - slot.remote_time <= MID_TS_ADJUST_MAX_MS:
                    _LOG.info(
                        "Mid TS, adjusting (%d < %d)",
                        slot.remote_time, self._origin_cursor,
                    )
                    self._origin_cursor = slot.remote_time
                else:
                    _LOG.info(
                        "Mid TS, discarded frame (%d < %d)",
                        slot.remote_time, self._origin_cursor,
                    )
                    self._late_voice_frame_count += 1
                    self._slots.pop(0)
            elif slot.remote_time == self._origin_cursor:
                sink.play_voice(slot.payload, local_time)
                voice_played = True
                self._last_played_local = local_time
                self._last_played_origin = slot.remote_time
                self._voice_playout_count += 1
                margin = local_time - slot.local_time
                if self._talkspurt_first_origin == slot.remote_time:
                    self._worst_margin = margin
                    self._total_margin = margin
                    self._talkspurt_frame_count = 1
                else:
                    self._worst_margin = min(self._worst_margin, margin)
                    self._total_margin += margin
                    self._talkspurt_frame_count += 1
                self._slots.pop(0)
                break
            else:
                break

        if self._in_talkspurt and self._talkspurt_frame_count > 0:
            if not voice_played:
                sink.interpolate_voice(local_time, VOICE_TICK_MS)
                self._interpolated_voice_frame_count += 1
                _LOG.info("Interpolated %d", self._origin_cursor)
            if local_time > self._last_played_local + self.talkspurt_timeout_interval:
                self._in_talkspurt = False
                self._talkspurt_count += 1
                avg_margin = int(self._total_margin / self._talkspurt_frame_count)
                _LOG.info("End TS, avgM: %d, shortM: %d", avg_margin, self._worst_margin)

        self._origin_cursor += VOICE_TICK_MS

    def _start_talkspurt(self, slot: _Slot, local_time: int, old_cursor: int) -> None:
        if self._voice_playout_count == 0:
            self._origin_cursor = round_to_tick(
                slot.remote_time - self._initial_margin, VOICE_TICK_MS
            )
        else:
            ideal_cursor = round_to_tick(
                int(local_time - self._ideal_delay), VOICE_TICK_MS
            )
            if ideal_cursor < self._origin_cursor:
                self._origin_cursor = max(ideal_cursor, self._last_played_origin)
            elif ideal_cursor > self._origin_cursor:
                self._origin_cursor = min(ideal_cursor, slot.remote_time)

            if self._origin_cursor > old_cursor:
                _LOG.info(
                    "Start TS, moving cursor forward %d -> %d",
                    old_cursor, self._origin_cursor,
                )
            elif self._origin_cursor < old_cursor:
                _LOG.info(
                    "Start TS, moving cursor backward %d <- %d",
                    self._origin_cursor, old_cursor,
                )
            else:
                _LOG.info("Start TS, No cursor movement")

        self._in_talkspurt = True
        self._talkspurt_frame_count = 0
        self._talkspurt_first_origin = slot.remote_time
        self._last_played_origin = 0
        self._last_played_local = 0