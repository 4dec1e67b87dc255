"""Session — one caller-named shell and its Ready/Busy state."""

from __future__ import annotations

import enum
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from shellkeeper.errors import ProcessExited, SessionBusy
from shellkeeper.pty.buffer import OutputAccumulator
from shellkeeper.pty.channel import Channel


class SessionState(enum.Enum):
    READY = "ready"
    BUSY = "busy"


@dataclass
class Session:
    """A caller-chosen id bound to exclusively owned PTY channel.

    At most one protocol cycle is in flight per session; ``claim()``
    enforces it by rejecting (never queueing) a second caller.
    """

    id: str
    channel: Channel
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    last_command: str = ""
    # Event-loop time before which the shell may still be starting up
    startup_deadline: float = 0.0
    _state: SessionState = field(default=SessionState.READY, init=False)

    @property
    def buffer(self) -> OutputAccumulator:
        """The accumulator the channel appends to."""
        return self.channel.buffer

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def ready(self) -> bool:
        return self._state is SessionState.READY

    @property
    def alive(self) -> bool:
        return self.channel.alive

    @property
    def uptime(self) -> float:
        return (datetime.now(timezone.utc) - self.created_at).total_seconds()

    @contextmanager
    def claim(self, command: str) -> Iterator[Session]:
        """Mark the session Busy for the duration of the block.

        Raises:
            ProcessExited: The shell is already gone.
            SessionBusy: Another cycle holds the session.
        """
        if not self.channel.alive:
            raise ProcessExited(self.id, self.channel.exit_code)
        if self._state is SessionState.BUSY:
            raise SessionBusy(self.id, self.last_command)

        self._state = SessionState.BUSY
        self.last_command = command
        try:
            yield self
        finally:
            self._state = SessionState.READY

    def describe(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "ready": self.ready,
            "last_command": self.last_command or "(none)",
            "created_at": self.created_at.isoformat(),
            "uptime": int(self.uptime),
        }

    async def kill(self) -> None:
        await self.channel.kill()
