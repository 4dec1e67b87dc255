"""Sentinel markers that bracket a command in the PTY stream."""

from __future__ import annotations

import itertools
import re
import uuid
from dataclasses import dataclass

_PREFIX = "__SK"
_counter = itertools.count(1)


def _echo(marker: str) -> str:
    # Adjacent quoted words are concatenated by the shell, so the typed
    # line never contains the marker itself; only its output does.
    head, tail = marker[: len(_PREFIX)], marker[len(_PREFIX) :]
    return f"echo '{head}''{tail}'"


@dataclass(frozen=True)
class MarkerSet:
    """Start, exit-code and end markers for one protocol cycle.

    The token combines a process-wide counter with a random suffix so
    back-to-back cycles never share markers, even within one clock tick.
    """

    token: str

    @classmethod
    def new(cls) -> MarkerSet:
        return cls(token=f"{next(_counter)}x{uuid.uuid4().hex[:8]}")

    @property
    def start(self) -> str:
        return f"{_PREFIX}_START_{self.token}__"

    @property
    def exit(self) -> str:
        return f"{_PREFIX}_EXIT_{self.token}__"

    @property
    def end(self) -> str:
        return f"{_PREFIX}_END_{self.token}__"

    def start_statement(self) -> str:
        return _echo(self.start)

    def exit_statement(self) -> str:
        """Prints the exit marker immediately followed by ``$?``."""
        return _echo(self.exit) + "$?"

    def end_statement(self) -> str:
        return _echo(self.end)

    def scrub(self, text: str) -> str:
        """Cut this cycle's statements and marker output out of raw text.

        The terminal echoes a statement typed while the command is still
        running (type-ahead) wherever the cursor is, often mid-line.  Each
        statement is removed together with the newline echoed after it, so
        output split around the echo is joined back up.  Marker output
        (``__SK_EXIT_<token>__`` plus the status digits) goes the same way.
        """
        for stmt in (self.start_statement(), self.exit_statement(), self.end_statement()):
            text = re.sub(re.escape(stmt) + r"\r?\n?", "", text)
        text = re.sub(re.escape(self.exit) + r"\d*\r?\n?", "", text)
        for marker in (self.start, self.end):
            text = re.sub(re.escape(marker) + r"\r?\n?", "", text)
        return text
