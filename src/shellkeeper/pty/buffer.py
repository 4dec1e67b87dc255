"""Output accumulator for PTY sessions."""

from __future__ import annotations

import io
import threading


class OutputAccumulator:
    """Thread-safe, append-only text buffer for raw PTY output.

    Holds everything the shell has written since the last ``clear()``,
    including echoes, prompts and ANSI control codes.  The completion
    protocol clears it right before dispatching a command and then scans
    it for markers; the sanitizer reads it for ``get_raw_buffer``.

    Appends are amortized O(1) (backed by ``io.StringIO``) because file
    downloads push megabytes of base64 through here in small reads.
    """

    def __init__(self) -> None:
        self._buf = io.StringIO()
        self._lock = threading.Lock()

    def append(self, text: str) -> None:
        """Append decoded PTY output."""
        if not text:
            return
        with self._lock:
            self._buf.write(text)

    def read_all(self) -> str:
        """Everything accumulated since the last clear."""
        with self._lock:
            return self._buf.getvalue()

    def contains(self, needle: str) -> bool:
        return needle in self.read_all()

    def clear(self) -> None:
        with self._lock:
            self._buf = io.StringIO()
