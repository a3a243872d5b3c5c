import pytest

from ampersand.resampler import (
    F1_COEFFS,
    F16_COEFFS,
    FirFilterQ15,
    Resampler,
    block_size_for_rate,
)


def test_block_sizes():
    assert block_size_for_rate(8000) == 160
    assert block_size_for_rate(16000) == 320
    assert block_size_for_rate(48000) == 960


def test_unknown_rate_block_size_raises():
    with pytest.raises(ValueError):
        block_size_for_rate(44100)


@pytest.mark.parametrize("coeffs", [F1_COEFFS, F16_COEFFS])
def test_filters_have_symmetric_impulse_response(coeffs):
    f = FirFilterQ15(coeffs)
    response = f.process([32767] + [0] * 30)
    assert len(response) == 31
    assert response == response[::-1]
    assert any(response)


def test_fir_first_coefficient_applies_to_oldest_sample():
    delayed = FirFilterQ15((16384, 0, 0))
    direct = FirFilterQ15((0, 0, 16384))
    assert delayed.process([2, 4, 6, 8]) == [0, 0, 1, 2]
    assert direct.process([2, 4, 6, 8]) == [1, 2, 3, 4]


def test_fir_state_carries_across_blocks():
    data = [((i * 1237) % 20000) - 10000 for i in range(40)]
    whole = FirFilterQ15(F16_COEFFS).process(data)
    split = FirFilterQ15(F16_COEFFS)
    assert split.process(data[:13]) + split.process(data[13:]) == whole


def test_fir_saturates():
    f = FirFilterQ15((32767, 32767, 32767))
    out = f.process([32767] * 5)
    assert max(out) == 32767
    f2 = FirFilterQ15((32767, 32767, 32767))
    assert min(f2.process([-32768] * 5)) == -32768


def test_fir_reset_clears_history():
    f = FirFilterQ15(F1_COEFFS)
    block = [1000] * 50
    first = f.process(block)
    f.reset()
    assert f.process(block) == first


@pytest.mark.parametrize(
    "rates,in_len,out_len",
    [
        ((8000, 48000), 160, 960),
        ((48000, 8000), 960, 160),
        ((16000, 48000), 320, 960),
        ((48000, 16000), 960, 320),
    ],
)
def test_output_lengths(rates, in_len, out_len):
    r = Resampler(*rates)
    assert r.in_block_size() == in_len
    assert r.out_block_size() == out_len
    assert len(r.resample([0] * in_len)) == out_len


def test_silence_stays_silent():
    r = Resampler(8000, 48000)
    assert r.resample([0] * 160) == [0] * 960


def test_constant_input_settles_to_constant_output():
    r = Resampler(48000, 8000)
    out = r.resample([8000] * 960)
    tail = out[10:]
    assert len(set(tail)) == 1
    assert tail[0] > 0


def test_upsample_constant_settles():
    r = Resampler(16000, 48000)
    out = r.resample([-5000] * 320)
    assert len(set(out[40:])) == 1
    assert out[-1] < 0


def test_same_rate_copies():
    r = Resampler(48000, 48000)
    block = list(range(-480, 480))
    assert r.resample(block) == block


def test_reset_gives_reproducible_output():
    r = Resampler(8000, 48000)
    block = [((i * 331) % 30000) - 15000 for i in range(160)]
    first = r.resample(block)
    second = r.resample(block)
    r.reset()
    assert r.resample(block) == first
    assert first != second


def test_set_rates_resets_state():
    r = Resampler(8000, 48000)
    block = [12000] * 160
    fresh = r.resample(block)
    r.resample(block)
    r.set_rates(8000, 48000)
    assert r.resample(block) == fresh


def test_unsupported_conversion_raises():
    with pytest.raises(ValueError):
        Resampler().set_rates(8000, 16000)


def test_wrong_block_length_raises():
    r = Resampler(48000, 8000)
    with pytest.raises(ValueError):
        r.resample([0] * 160)


def test_unset_rates_raise():
    with pytest.raises(RuntimeError):
        Resampler().resample([0] * 160)