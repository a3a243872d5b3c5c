"""Conversion of 20ms PCM16 blocks between 8k, 16k and 48k sample rates."""

from __future__ import annotations

from collections import deque
from collections.abc import Sequence
from operator import mul

BLOCK_SIZE_8K = 160
BLOCK_SIZE_16K = 160 * 2
BLOCK_SIZE_48K = 160 * 6
BLOCK_PERIOD_MS = 20

# Low-pass filter used for 8K <-> 48K conversion, running at 48K.
F1_COEFFS = (
    103, 136, 148, 74, -113, -395, -694,
    -881, -801, -331, 573, 1836, 3265, 4589, 5525, 5864, 5525,
    4589, 3265, 1836, 573, -331, -801, -881, -694, -395, -113,
    74, 148, 136, 103,
)
F2_COEFFS = F1_COEFFS
# Low-pass filter used for 16K <-> 48K conversion.
F16_COEFFS = (
    -3915, -295, 1127, -1312, 481, 531, -508, -720, 1840, -1315, -770, 2263,
    -691, -4236, 9813, 20508, 9813, -4236, -691, 2263, -770, -1315, 1840, -720,
    -508, 531, 481, -1312, 1127, -295, -3915,
)

_INT16_MIN = -32768
_INT16_MAX = 32767


def block_size_for_rate(rate: int) -> int:
    """Number of samples in a 20ms block at the given rate."""
    sizes = {8000: BLOCK_SIZE_8K, 16000: BLOCK_SIZE_16K, 48000: BLOCK_SIZE_48K}
    try:
        return sizes[rate]
    except KeyError:
        raise ValueError(f"unsupported sample rate {rate}") from None


class FirFilterQ15:
    """A Q15 fixed-point FIR filter that keeps its history between blocks.

    Coefficients are stored time-reversed: the first one multiplies the
    oldest sample in the window.
    """

    def __init__(self, coeffs: Sequence[int]) -> None:
        if not coeffs:
            raise ValueError("a filter needs at least one coefficient")
        self.coeffs = tuple(coeffs)
        self._window: deque[int] = deque(maxlen=len(self.coeffs))
        self.reset()

    def reset(self) -> None:
        """Zero the filter history."""
        self._window.clear()
        self._window.extend([0] * (len(self.coeffs) - 1))

    def process(self, block: Sequence[int]) -> list[int]:
        """Filter a block of samples, saturating the output to 16 bits."""
        out = []
        for sample in block:
            self._window.append(sample)
            acc = sum(map(mul, self.coeffs, self._window)) >> 15
            out.append(max(_INT16_MIN, min(_INT16_MAX, acc)))
        return out


_FILTERS = {
    (8000, 48000): F1_COEFFS,
    (48000, 8000): F2_COEFFS,
    (16000, 48000): F16_COEFFS,
    (48000, 16000): F16_COEFFS,
}


class Resampler:
    """Converts 20ms PCM16 blocks between sample rates.

    The filter keeps state across blocks, so one instance should serve
    only one audio stream.
    """

    def __init__(self, in_rate: int | None = None, out_rate: int | None = None) -> None:
        self.in_rate = 0
        self.out_rate = 0
        self._filter: FirFilterQ15 | None = None
        if in_rate is not None and out_rate is not None:
            self.set_rates(in_rate, out_rate)

    def reset(self) -> None:
        """Clear the filter history without changing the rates."""
        if self._filter is not None:
            self._filter.reset()

    def set_rates(self, in_rate: int, out_rate: int) -> None:
        """Choose the conversion; resets the filter state."""
        if in_rate == out_rate:
            coeffs = None
        else:
            try:
                coeffs = _FILTERS[(in_rate, out_rate)]
            except KeyError:
                raise ValueError(
                    f"unsupported conversion {in_rate} -> {out_rate}"
                ) from None
        self.in_rate = in_rate
        self.out_rate = out_rate
        self._filter = FirFilterQ15(coeffs) if coeffs is not None else None

    def in_block_size(self) -> int:
        """Samples per input block."""
        return block_size_for_rate(self.in_rate)

    def out_block_size(self) -> int:
        """Samples per output block."""
        return block_size_for_rate(self.out_rate)

    def resample(self, block: Sequence[int]) -> list[int]:
        """Convert one 20ms block and return the output block."""
        if not self.in_rate or not self.out_rate:
            raise RuntimeError("rates have not been set")
        if len(block) != self.in_block_size():
            raise ValueError(
                f"expected {self.in_block_size()} samples, got {len(block)}"
            )
        if self._filter is None:
            return list(block)
        if self.out_rate > self.in_rate:
            factor = self.out_rate // self.in_rate
            upsampled = [s for s in block for _ in range(factor)]
            return self._filter.process(upsampled)
        factor = self.in_rate // self.out_rate
        return self._filter.process(block)[::factor]