"""PTY channels — interactive shells on pseudo-terminals.

Each session owns one channel: a shell process in its own process group,
with every byte it writes appended to an output accumulator.
"""

from shellkeeper.pty.buffer import OutputAccumulator
from shellkeeper.pty.channel import Channel, ChannelStatus, PTYChannel

__all__ = [
    "Channel",
    "ChannelStatus",
    "OutputAccumulator",
    "PTYChannel",
]
