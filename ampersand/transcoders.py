"""Conversion between PCM16 samples and signed-linear little-endian wire formats."""

from __future__ import annotations

import struct
from collections.abc import Sequence


class TranscodeError(ValueError):
    """Raised when a block has the wrong size or a sample is out of range."""


def _decode_block(fmt: struct.Struct, block_size: int, data: bytes) -> list[int]:
    if len(data) != block_size * 2:
        raise TranscodeError(f"expected {block_size * 2} bytes, got {len(data)}")
    return list(fmt.unpack(bytes(data)))


def _encode_block(fmt: struct.Struct, block_size: int, pcm: Sequence[int]) -> bytes:
    if len(pcm) != block_size:
        raise TranscodeError(f"expected {block_size} samples, got {len(pcm)}")
    try:
        return fmt.pack(*pcm)
    except struct.error as exc:
        raise TranscodeError(str(exc)) from exc


class Slin48kTranscoder:
    """SLIN at 48kHz: 960 samples per 20ms block."""

    AUDIO_RATE = 48000
    BLOCK_SIZE = 160 * 6
    BLOCK_PERIOD_MS = 20

    def __init__(self) -> None:
        self._format = struct.Struct(f"<{self.BLOCK_SIZE}h")

    def reset(self) -> None:
        """Clear any decoder state (this format keeps none)."""

    def decode(self, data: bytes) -> list[int]:
        """Turn one block of wire bytes into PCM16 samples."""
        return _decode_block(self._format, self.BLOCK_SIZE, data)

    def decode_gap(self) -> list[int]:
        """Produce a block to stand in for a missing one: silence."""
        return [0] * self.BLOCK_SIZE

    def encode(self, pcm: Sequence[int]) -> bytes:
        """Turn one block of PCM16 samples into wire bytes."""
        return _encode_block(self._format, self.BLOCK_SIZE, pcm)


class Slin16kTranscoder:
    """SLIN at 16kHz: 320 samples per 20ms block."""

    AUDIO_RATE = 16000
    BLOCK_SIZE = 160 * 2
    BLOCK_PERIOD_MS = 20

    def __init__(self) -> None:
        self._format = struct.Struct(f"<{self.BLOCK_SIZE}h")

    def reset(self) -> None:
        """Clear any decoder state (this format keeps none)."""

    def decode(self, data: bytes) -> list[int]:
        """Turn one block of wire bytes into PCM16 samples."""
        return _decode_block(self._format, self.BLOCK_SIZE, data)

    def decode_gap(self) -> list[int]:
        """Produce a block to stand in for a missing one: silence."""
        return [0] * self.BLOCK_SIZE

    def encode(self, pcm: Sequence[int]) -> bytes:
        """Turn one block of PCM16 samples into wire bytes."""
        return _encode_block(self._format, self.BLOCK_SIZE, pcm)