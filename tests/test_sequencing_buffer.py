import pytest

from ampersand.sequencing_buffer import (
    DEFAULT_INITIAL_MARGIN_MS,
    MAX_BUFFER_SIZE,
    VOICE_TICK_MS,
    SequencingBuffer,
    SequencingBufferSink,
    extend_time,
    round_to_tick,
    round_up_to_tick,
)


class RecordingSink(SequencingBufferSink):
    def __init__(self):
        self.events = []

    def play_signal(self, frame, local_time):
        self.events.append(("signal", frame, local_time))

    def play_voice(self, frame, local_time):
        self.events.append(("voice", frame, local_time))

    def interpolate_voice(self, local_time, duration):
        self.events.append(("interp", duration, local_time))

    def voices(self):
        return [(frame, t) for kind, frame, t in self.events if kind == "voice"]

    def interps(self):
        return [(d, t) for kind, d, t in self.events if kind == "interp"]


def simulate(buf, deliveries, start, stop):
    """deliveries maps tick -> remote times delivered (payload = remote time)."""
    sink = RecordingSink()
    for tick in range(start, stop, VOICE_TICK_MS):
        for rt in deliveries.get(tick, []):
            assert buf.consume_voice(rt, rt, tick)
        buf.play_out(tick, sink)
    return sink


def on_time(remote_times):
    return {rt: [rt] for rt in remote_times}


def test_in_order_playback_uses_initial_margin():
    buf = SequencingBuffer()
    frames = list(range(1000, 1200, VOICE_TICK_MS))
    sink = simulate(buf, on_time(frames), 1000, 1400)
    voices = sink.voices()
    assert [f for f, _ in voices] == frames
    assert all(t - f == DEFAULT_INITIAL_MARGIN_MS for f, t in voices)


def test_custom_initial_margin():
    buf = SequencingBuffer()
    margin = VOICE_TICK_MS * 5
    buf.set_initial_margin(margin)
    frames = list(range(1000, 1100, VOICE_TICK_MS))
    sink = simulate(buf, on_time(frames), 1000, 1400)
    voices = sink.voices()
    assert [f for f, _ in voices] == frames
    assert all(t - f == margin for f, t in voices)


def test_missing_frame_is_interpolated():
    buf = SequencingBuffer()
    frames = [rt for rt in range(1000, 1220, VOICE_TICK_MS) if rt != 1100]
    sink = simulate(buf, on_time(frames), 1000, 1300)
    assert [f for f, _ in sink.voices()] == frames
    kinds = [(k, f) for k, f, _ in sink.events]
    gap = kinds.index(("voice", 1080))
    assert kinds[gap + 1] == ("interp", VOICE_TICK_MS)
    assert kinds[gap + 2] == ("voice", 1120)
    assert buf.interpolated_voice_frame_count == len(sink.interps())


def test_talkspurt_ends_after_silence():
    buf = SequencingBuffer()
    frames = list(range(1000, 1100, VOICE_TICK_MS))
    sink = simulate(buf, on_time(frames), 1000, 1160)
    assert buf.in_talkspurt()
    sink2 = simulate(buf, {}, 1160, 1400)
    assert not buf.in_talkspurt()
    assert buf.talkspurt_count == 1
    assert all(kind == "interp" for kind, _, _ in sink2.events)
    # Once ended, nothing more is produced.
    sink3 = simulate(buf, {}, 1400, 1500)
    assert sink3.events == []
    assert len(sink.voices()) == len(frames)


def test_second_talkspurt_plays_all_frames_in_order():
    buf = SequencingBuffer()
    first = list(range(1000, 1100, VOICE_TICK_MS))
    second = list(range(2000, 2100, VOICE_TICK_MS))
    deliveries = on_time(first)
    deliveries.update(on_time(second))
    sink = simulate(buf, deliveries, 1000, 2400)
    played = [f for f, _ in sink.voices()]
    assert played == first + second
    assert all(t >= f for f, t in sink.voices())
    assert buf.talkspurt_count == 2


def test_slightly_late_frame_is_recovered():
    buf = SequencingBuffer()
    frames = list(range(1000, 1220, VOICE_TICK_MS))
    deliveries = on_time([rt for rt in frames if rt != 1100])
    deliveries.setdefault(1180, []).append(1100)
    sink = simulate(buf, deliveries, 1000, 1400)
    assert [f for f, _ in sink.voices()] == frames
    assert buf.late_voice_frame_count == 0
    assert buf.interpolated_voice_frame_count >= 1


def test_very_late_frame_is_discarded():
    buf = SequencingBuffer()
    missing = [1100, 1120, 1140, 1160]
    frames = list(range(1000, 1300, VOICE_TICK_MS))
    deliveries = on_time([rt for rt in frames if rt not in missing])
    deliveries.setdefault(1220, []).extend(missing)
    sink = simulate(buf, deliveries, 1000, 1500)
    played = [f for f, _ in sink.voices()]
    assert 1100 not in played
    assert played == sorted(played)
    assert played == [rt for rt in frames if rt != 1100]
    assert buf.late_voice_frame_count == 1


def test_duplicate_frame_discarded_as_out_of_order():
    buf = SequencingBuffer()
    frames = list(range(1000, 1100, VOICE_TICK_MS))
    deliveries = on_time(frames)
    deliveries.setdefault(1080, []).append(1000)
    sink = simulate(buf, deliveries, 1000, 1300)
    played = [f for f, _ in sink.voices()]
    assert played == frames
    assert buf.late_voice_frame_count == 1


def test_signal_released_immediately():
    buf = SequencingBuffer()
    sink = RecordingSink()
    assert buf.consume_signal("key", 500, 1000)
    buf.play_out(1000, sink)
    assert sink.events == [("signal", "key", 1000)]
    assert buf.is_empty()


def test_signal_waits_behind_future_voice():
    buf = SequencingBuffer()
    sink = RecordingSink()
    buf.consume_voice("v", 2000, 1000)
    buf.consume_signal("s", 2100, 1000)
    buf.play_out(1000, sink)
    assert sink.events == []
    assert len(buf) == 2


def test_overflow():
    buf = SequencingBuffer()
    for i in range(MAX_BUFFER_SIZE):
        assert buf.consume_signal(i, i, i)
    assert not buf.consume_signal("extra", 999, 999)
    assert buf.overflow_count == 1
    assert len(buf) == MAX_BUFFER_SIZE
    assert buf.max_size == MAX_BUFFER_SIZE


def test_reset_clears_everything():
    buf = SequencingBuffer()
    simulate(buf, on_time(range(1000, 1100, VOICE_TICK_MS)), 1000, 1100)
    buf.reset()
    assert buf.is_empty()
    assert not buf.in_talkspurt()
    assert buf.late_voice_frame_count == 0
    assert buf.max_buffer_depth == 0


def test_lock_and_unlock_delay():
    buf = SequencingBuffer()
    buf.lock_delay()
    assert buf.delay_locked
    buf.unlock_delay()
    assert not buf.delay_locked


def test_max_buffer_depth_tracks_backlog():
    buf = SequencingBuffer()
    for rt in range(1000, 1100, VOICE_TICK_MS):
        buf.consume_voice(rt, rt, rt)
    buf.play_out(1100, RecordingSink())
    assert buf.max_buffer_depth == 5


def test_extend_time_keeps_full_times():
    assert extend_time(0x12345678, 0) == 0x12345678


def test_extend_time_wraps_forward():
    assert extend_time(0x0010, 0x00028000) == 0x00020010


@pytest.mark.parametrize("local", range(0x00030000, 0x00050000, 0x1234))
@pytest.mark.parametrize("remote", range(0, 0x10000, 0x0F0F))
def test_extend_time_lands_near_local(local, remote):
    result = extend_time(remote, local)
    assert result & 0xFFFF == remote
    assert abs(result - local) <= 0x8000


def test_round_to_tick_halves_away_from_zero():
    assert round_to_tick(30, 20) == 40
    assert round_to_tick(-30, 20) == -40


@pytest.mark.parametrize("value", [-95, -41, -1, 0, 7, 19, 21, 59, 1234])
def test_round_to_tick_nearest_multiple(value):
    result = round_to_tick(value, VOICE_TICK_MS)
    assert result % VOICE_TICK_MS == 0
    assert abs(result - value) <= VOICE_TICK_MS / 2


@pytest.mark.parametrize("value", [-95, -41, -1, 0, 7, 20, 21, 59, 1234])
def test_round_up_to_tick(value):
    result = round_up_to_tick(value, VOICE_TICK_MS)
    assert result % VOICE_TICK_MS == 0
    assert value <= result < value + VOICE_TICK_MS