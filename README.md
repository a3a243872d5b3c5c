# ampersand

Building blocks for an amateur radio voice-link node. The package provides
the pieces that sit between a radio interface and an IAX2-style network link:

- **Messages** (`ampersand.message`): `Message`, `MessageType` and
  `SignalType` carry audio and signalling between components. A `Message`
  holds a body of at most `Message.MAX_SIZE` bytes (a longer body raises
  `ValueError`), an origin time in microseconds, and source and destination
  bus/call ids set with `set_source()` and `set_dest()`. `copy()` returns an
  independent copy.
- **Message bus** (`ampersand.message_bus`): `MessageConsumer` is the abstract
  interface every receiver implements; `MessageBus` forwards what it consumes
  to its `target_channel`, or drops it when none is set.
- **Transcoders** (`ampersand.transcoders`): `Slin48kTranscoder` (960 samples
  per block) and `Slin16kTranscoder` (320 samples per block) convert 20 ms
  blocks between 16-bit PCM samples and little-endian SLIN bytes.
  `decode_gap()` returns a block of silence. A block of the wrong size, or a
  sample outside the 16-bit range, raises `TranscodeError`.
- **Resampler** (`ampersand.resampler`): `Resampler` converts 20 ms blocks
  between 8 kHz and 48 kHz, and between 16 kHz and 48 kHz, using a Q15 FIR
  low-pass filter (`FirFilterQ15`) whose history carries over between blocks.
  Equal rates pass blocks through unchanged; any other pair raises
  `ValueError`. `block_size_for_rate()` gives the block length for a rate.
- **Jitter buffer** (`ampersand.sequencing_buffer`): `SequencingBuffer` is an
  adaptive playout buffer that orders frames by remote timestamp and hands
  them to a `SequencingBufferSink` once per 20 ms tick, asking for
  interpolation when a voice frame is missing during a talkspurt. It holds at
  most 64 frames; `consume_voice()` and `consume_signal()` return `False` when
  it is full. `extend_time()`, `round_to_tick()` and `round_up_to_tick()` are
  the timestamp helpers it uses.
- **Retransmission** (`ampersand.retransmission`): `RetransmissionBuffer`
  holds up to 16 `ReliableFrame`s, sends them in sequence order from `poll()`,
  drops them once `set_expected_seq()` reports them acknowledged, and resends
  any left unacknowledged for more than two seconds. `retransmit_to_seq()`
  resends immediately. `compare_wrap()` compares 8-bit sequence numbers across
  wrap-around.
- **Node tasks**:
  - `RegisterTask` (`ampersand.register`) posts a JSON registration
    (`registration_payload()`) to a registration server every three minutes,
    the first time five seconds after it is created, from `ten_sec_tick()`.
  - `StatsTask` (`ampersand.stats`) fetches a report URL (`stats_url()`) every
    three minutes in a worker thread; `run()` collects the result.
  - `ManagerTask` (`ampersand.manager`) listens on a TCP port for up to four
    manager clients, answers `Login` and `COMMAND` requests, and passes
    commands to a `CommandSink`. `iter_values()` parses a request block.

  Each task takes a clock (a function returning milliseconds) and, for the
  HTTP tasks, a transport function, so they can be driven without a network.

The package has no dependencies outside the standard library and supports
Python 3.10 and later.

## Examples

### Transcoding and resampling

```python
from ampersand.resampler import Resampler, block_size_for_rate
from ampersand.transcoders import Slin48kTranscoder

resampler = Resampler()
resampler.set_rates(8000, 48000)

pcm8k = [0] * block_size_for_rate(8000)      # one 20 ms block at 8 kHz
pcm48k = resampler.resample(pcm8k)           # one 20 ms block at 48 kHz

transcoder = Slin48kTranscoder()
payload = transcoder.encode(pcm48k)          # little-endian SLIN bytes
assert transcoder.decode(payload) == list(pcm48k)
```

Each stream should have its own `Resampler`: the filter keeps state between
blocks so that block boundaries stay smooth.

### Jitter buffer

```python
from ampersand.sequencing_buffer import SequencingBuffer, SequencingBufferSink


class Player(SequencingBufferSink):
    def play_signal(self, frame, local_time):
        print("signal", frame, local_time)

    def play_voice(self, frame, local_time):
        print("voice", frame, local_time)

    def interpolate_voice(self, local_time, duration):
        print("gap", local_time, duration)


buffer = SequencingBuffer()
buffer.consume_voice(b"frame-1", 1000, 1005)

player = Player()
for tick in range(0, 200, 20):               # call play_out once per 20 ms tick
    buffer.play_out(tick, player)
```

### Retransmission

```python
from ampersand.retransmission import ReliableFrame, RetransmissionBuffer, compare_wrap

sent = []
retx = RetransmissionBuffer()
retx.consume(ReliableFrame(o_seq_no=0, time_stamp=0, payload=b"hello"))
retx.poll(0, sent.append)                    # first transmission
retx.set_expected_seq(1)                     # peer acknowledged frame 0
assert retx.is_empty()

assert compare_wrap(0xFD, 0x04) < 0          # 0x04 has just wrapped around
assert compare_wrap(0x10, 0x10) == 0
```

### Registration with a stand-in transport

```python
from ampersand.register import RegisterTask


def transport(url, body, headers, timeout):
    return 200, b"node successfully registered"


password = "password"
task = RegisterTask(clock=lambda: 0, transport=transport)
task.configure("https://register.example.com/", "1999", password, 4569)
assert task.do_register()
```

### Manager protocol fields

```python
from ampersand.manager import iter_values

fields = list(iter_values("ACTION: Login\r\nUsername: admin\r\n"))
assert fields == [("ACTION", "Login"), ("Username", "admin")]
```

Field names are matched exactly: the action must be given as `ACTION`.

## What the package does not do

- It does not talk to sound cards, USB radio interfaces or HID COS inputs;
  audio arrives and leaves only as `Message` objects and PCM sample lists.
- It has no IAX2 network line: there is no frame encoding, call setup or UDP
  handling, only the jitter and retransmission buffers such a line would use.
- It has no G.711 codec or packet-loss concealment; only the SLIN formats are
  transcoded.
- `ManagerTask` accepts any login without checking the username or secret,
  and its command reply carries no output.
- There is no command-line program or event loop; the caller drives each task
  by calling its tick and `run()` methods.