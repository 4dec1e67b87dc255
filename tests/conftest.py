"""Shared fixtures: a scripted in-memory shell standing in for a PTY."""

from __future__ import annotations

import base64
import re
from dataclasses import dataclass
from typing import Callable

import pytest

from shellkeeper.config import ProtocolConfig, ShellConfig, ShellKeeperConfig, TransferConfig
from shellkeeper.errors import ProcessExited
from shellkeeper.pty.buffer import OutputAccumulator
from shellkeeper.service import ShellKeeper
from shellkeeper.session.session import Session

PROMPT = "[READY]$ "
HANG = object()

_MARKER_ECHO_RE = re.compile(r"echo '([^']*)''([^']*)'(\$\?)?")
_ECHO_RE = re.compile(r"echo (.*)")
_CD_RE = re.compile(r"cd (\S+)")


@dataclass
class Slow:
    """Handler result for a command still running when input arrives.

    ``head`` is written without a trailing newline.  The next ``after``
    lines are echoed right behind it, as a terminal echoes type-ahead
    at the cursor.  Then ``tail`` completes the output, and the queued
    lines run in order, echoed again behind the prompt.
    """

    head: str
    tail: str
    status: int = 0
    after: int = 1


Handler = Callable[[re.Match], "tuple[str, int] | Slow | object"]


def _unquote(word: str) -> str:
    if len(word) >= 2 and word[0] == word[-1] and word[0] in "'\"":
        return word[1:-1]
    return word


class FakeShell:
    """Scripted stand-in for a PTY channel.

    Every written line is echoed behind the prompt like a terminal would.
    Marker echoes and ``$?`` are evaluated; other commands go to handlers
    registered with ``on()``.  A handler returning ``HANG`` makes the
    shell stop executing: later lines are still echoed (type-ahead) but
    produce nothing until ``hung`` is cleared.
    A handler returning ``Slow`` leaves the command running while the
    following lines arrive, so their echo lands in the middle of its output.
    """

    def __init__(self, label: str = "fake") -> None:
        self.label = label
        self.buffer = OutputAccumulator()
        self.written: list[str] = []
        self.hung = False
        self.last_status = 0
        self.cwd = "/home/user"
        self.dirs = {"/", "/home/user", "/tmp"}
        self.killed = False
        self._alive = False
        self._exit_code: int | None = None
        self._on_exit: Callable | None = None
        self._handlers: list[tuple[re.Pattern, Handler]] = []
        self._slow: Slow | None = None
        self._typed_ahead: list[str] = []
        self.on(r"true", lambda m: ("", 0))
        self.on(r"false", lambda m: ("", 1))
        self.on(r"pwd", lambda m: (self.cwd, 0))

    def on(self, pattern: str, handler: Handler) -> None:
        """Register a handler; later registrations win."""
        self._handlers.insert(0, (re.compile(pattern), handler))

    def set_on_exit(self, callback: Callable) -> None:
        self._on_exit = callback

    async def start(self) -> None:
        self._alive = True
        self.buffer.append("Last login: today\r\n" + PROMPT)

    async def write(self, data: str) -> None:
        if not self._alive:
            raise ProcessExited(self.label, self._exit_code)
        self.written.append(data)
        for line in data.splitlines():
            self._feed(line)

    async def kill(self) -> None:
        self.killed = True
        self._alive = False

    def exit(self, code: int = 0) -> None:
        """Simulate the shell dying on its own."""
        self._alive = False
        self._exit_code = code
        if self._on_exit:
            self._on_exit(self, code)

    @property
    def alive(self) -> bool:
        return self._alive

    @property
    def exit_code(self) -> int | None:
        return self._exit_code

    @property
    def commands(self) -> list[str]:
        """Written lines that were not protocol scaffolding."""
        lines = [line for chunk in self.written for line in chunk.splitlines()]
        return [line for line in lines if not _MARKER_ECHO_RE.fullmatch(line)]

    def _feed(self, line: str) -> None:
        self.buffer.append(line + "\r\n")
        if self._slow is not None:
            self._typed_ahead.append(line)
            if len(self._typed_ahead) >= self._slow.after:
                self._finish_slow()
            return
        if self.hung:
            return

        match = _MARKER_ECHO_RE.fullmatch(line)
        if match:
            out = match.group(1) + match.group(2)
            if match.group(3):
                out += str(self.last_status)
            self.last_status = 0
            self.buffer.append(out + "\r\n" + PROMPT)
            return

        result = self._dispatch(line)
        if result is HANG:
            self.hung = True
            return
        if isinstance(result, Slow):
            self._slow = result
            self.buffer.append(result.head.replace("\n", "\r\n"))
            return
        output, status = result  # type: ignore[misc]
        if output:
            self.buffer.append(output.replace("\n", "\r\n") + "\r\n")
        self.last_status = status
        self.buffer.append(PROMPT)

    def _finish_slow(self) -> None:
        slow, queued = self._slow, self._typed_ahead
        assert slow is not None
        self._slow, self._typed_ahead = None, []
        self.buffer.append(slow.tail.replace("\n", "\r\n") + "\r\n")
        self.last_status = slow.status
        self.buffer.append(PROMPT)
        for line in queued:
            self._feed(line)

    def _dispatch(self, line: str) -> tuple[str, int] | object:
        for pattern, handler in self._handlers:
            match = pattern.fullmatch(line)
            if match:
                return handler(match)

        match = _CD_RE.fullmatch(line)
        if match:
            target = match.group(1)
            if target in self.dirs:
                self.cwd = target
                return "", 0
            return f"bash: cd: {target}: No such file or directory", 1

        match = _ECHO_RE.fullmatch(line)
        if match:
            return " ".join(_unquote(w) for w in match.group(1).split()), 0

        return f"bash: {line.split()[0]}: command not found", 127


class RemoteFS:
    """In-memory remote filesystem answering the transfer commands."""

    def __init__(self, shell: FakeShell) -> None:
        self.files: dict[str, bytes] = {}
        self.dirs: set[str] = {"/", "/tmp", "/remote"}
        shell.on(
            r'test -d \'([^\']*)\' && echo "DIR" \|\| echo "FILE"',
            lambda m: ("DIR" if self.is_dir(m.group(1)) else "FILE", 0),
        )
        shell.on(
            r'test -f \'([^\']*)\' && echo "EXISTS" \|\| echo "OK"',
            lambda m: ("EXISTS" if m.group(1) in self.files else "OK", 0),
        )
        shell.on(r"rm -f (\S+) && touch (\S+)", self._touch)
        shell.on(r"printf '%s' '([^']*)' >> (\S+)", self._append)
        shell.on(
            r"\(base64 -D -i (\S+) -o '([^']*)' 2>/dev/null \|\| base64 -d \S+ > '[^']*'\) && rm -f \S+",
            self._decode,
        )
        shell.on(r"ls -lh '([^']*)'", self._ls)
        shell.on(
            r"test -f '([^']*)' && \(stat -f%z '[^']*' 2>/dev/null \|\| stat -c%s '[^']*' 2>/dev/null\)",
            self._stat,
        )
        shell.on(r"base64 -i '([^']*)' 2>/dev/null \|\| base64 '[^']*'", self._encode)

    def is_dir(self, path: str) -> bool:
        return path == "/" or path.rstrip("/") in self.dirs

    def _touch(self, m: re.Match) -> tuple[str, int]:
        self.files[m.group(2)] = b""
        return "", 0

    def _append(self, m: re.Match) -> tuple[str, int]:
        self.files[m.group(2)] = self.files.get(m.group(2), b"") + m.group(1).encode()
        return "", 0

    def _decode(self, m: re.Match) -> tuple[str, int]:
        scratch, dest = m.group(1), m.group(2)
        self.files[dest] = base64.b64decode(self.files.pop(scratch))
        return "", 0

    def _ls(self, m: re.Match) -> tuple[str, int]:
        path = m.group(1)
        if path not in self.files:
            return f"ls: cannot access '{path}': No such file or directory", 2
        return f"-rw-r--r-- 1 user user {len(self.files[path])} Jan  1 00:00 {path}", 0

    def _stat(self, m: re.Match) -> tuple[str, int]:
        path = m.group(1)
        if path not in self.files:
            return "", 1
        return str(len(self.files[path])), 0

    def _encode(self, m: re.Match) -> tuple[str, int]:
        path = m.group(1)
        if path not in self.files:
            return f"base64: {path}: No such file or directory", 1
        encoded = base64.b64encode(self.files[path]).decode()
        lines = [encoded[i : i + 76] for i in range(0, len(encoded), 76)]
        return "\n".join(lines), 0


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def protocol_config() -> ProtocolConfig:
    """Protocol timing with every settle delay removed."""
    return ProtocolConfig(
        settle_delay=0,
        write_delay=0,
        prompt_delay=0,
        poll_interval=0.01,
        startup_delay=0,
    )


@pytest.fixture
async def shell() -> FakeShell:
    sh = FakeShell("test")
    await sh.start()
    return sh


@pytest.fixture
def session(shell: FakeShell) -> Session:
    return Session(id="test", channel=shell)


@pytest.fixture
def shells() -> list[FakeShell]:
    """Every FakeShell the ``keeper`` fixture has spawned, in order."""
    return []


@pytest.fixture
def keeper_config(protocol_config: ProtocolConfig) -> ShellKeeperConfig:
    return ShellKeeperConfig(
        shell=ShellConfig(shell="/bin/sh", cwd="/"),
        protocol=protocol_config,
        transfer=TransferConfig(chunk_size=64, max_file_size=64 * 1024),
    )


@pytest.fixture
def keeper(keeper_config: ShellKeeperConfig, shells: list[FakeShell]) -> ShellKeeper:
    def factory(label: str, config: ShellConfig) -> FakeShell:
        sh = FakeShell(label)
        sh.shell_config = config  # type: ignore[attr-defined]
        sh.fs = RemoteFS(sh)  # type: ignore[attr-defined]
        shells.append(sh)
        return sh

    return ShellKeeper(keeper_config, channel_factory=factory)
