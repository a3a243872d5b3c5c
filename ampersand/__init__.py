"""Building blocks for an amateur radio voice-link node: messages, SLIN transcoders,
resampling, jitter and retransmission buffers, and registration, statistics and
manager tasks."""

__version__ = "0.1.0"