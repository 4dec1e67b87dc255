"""PTY channel — an interactive shell attached to a pseudo-terminal."""

from __future__ import annotations

import asyncio
import codecs
import enum
import fcntl
import logging
import os
import pty
import signal
import struct
import subprocess
import termios
from dataclasses import dataclass, field
from typing import Callable, Protocol, runtime_checkable

from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from shellkeeper.config import ShellConfig
from shellkeeper.errors import ProcessExited
from shellkeeper.pty.buffer import OutputAccumulator

logger = logging.getLogger(__name__)

ExitCallback = Callable[["Channel", "int | None"], None]


class ChannelStatus(enum.Enum):
    """Lifecycle states for a PTY channel."""

    PENDING = "pending"
    RUNNING = "running"
    KILLING = "killing"  # Kill requested, waiting for process to die
    KILLED = "killed"  # Killed by us (SIGKILL)
    EXITED = "exited"  # Process exited on its own


@runtime_checkable
class Channel(Protocol):
    """What a session needs from its byte stream.

    ``write`` pushes raw input, output lands in ``buffer``, and the exit
    callback fires once if the process dies on its own.
    """

    label: str
    buffer: OutputAccumulator

    async def start(self) -> None: ...

    async def write(self, data: str) -> None: ...

    async def kill(self) -> None: ...

    def set_on_exit(self, callback: ExitCallback) -> None: ...

    @property
    def alive(self) -> bool: ...

    @property
    def exit_code(self) -> int | None: ...


def _set_winsize(fd: int, rows: int, cols: int) -> None:
    fcntl.ioctl(fd, termios.TIOCSWINSZ, struct.pack("HHHH", rows, cols, 0, 0))


@dataclass
class PTYChannel:
    """A shell process running on the slave side of a fresh PTY pair.

    - Process group isolation (start_new_session) for safe tree-killing
    - Output read through the event loop (``add_reader``), no threads
    - Incremental UTF-8 decoding so multi-byte characters split across
      reads survive intact
    - Exit notification callback, fired only for exits we did not cause

    Uses subprocess.Popen (not os.fork) to avoid deadlocks when spawned
    from within an asyncio event loop on macOS.
    """

    config: ShellConfig = field(default_factory=ShellConfig)
    label: str = ""

    buffer: OutputAccumulator = field(default_factory=OutputAccumulator)
    _master_fd: int = field(default=-1, init=False)
    _proc: subprocess.Popen | None = field(default=None, init=False)
    _pgid: int = field(default=0, init=False)
    _status: ChannelStatus = field(default=ChannelStatus.PENDING, init=False)
    _exit_code: int | None = field(default=None, init=False)
    _eof: asyncio.Event | None = field(default=None, init=False)
    _watch_task: asyncio.Task | None = field(default=None, init=False)
    _loop: asyncio.AbstractEventLoop | None = field(default=None, init=False)
    _on_exit: ExitCallback | None = field(default=None, init=False)
    _decoder: codecs.IncrementalDecoder = field(
        default_factory=lambda: codecs.getincrementaldecoder("utf-8")(errors="replace"),
        init=False,
    )

    def set_on_exit(self, callback: ExitCallback) -> None:
        """Set a callback invoked when the process exits unexpectedly.

        The callback receives (channel, exit_code). It is NOT called when
        the process is killed via kill().
        """
        self._on_exit = callback

    async def start(self) -> None:
        """Spawn the shell in a new PTY with its own process group."""
        master_fd, slave_fd = pty.openpty()
        try:
            _set_winsize(slave_fd, self.config.rows, self.config.cols)
            self._proc = _spawn(
                [self.config.shell, *self.config.args],
                slave_fd=slave_fd,
                env=self.config.build_env(),
                cwd=self.config.cwd,
            )
        except BaseException:
            os.close(master_fd)
            raise
        finally:
            # Parent always closes slave fd
            os.close(slave_fd)

        self._master_fd = master_fd
        self._pgid = os.getpgid(self._proc.pid)
        self._status = ChannelStatus.RUNNING

        os.set_blocking(master_fd, False)
        self._loop = asyncio.get_running_loop()
        self._eof = asyncio.Event()
        self._loop.add_reader(master_fd, self._on_readable)
        self._watch_task = asyncio.create_task(self._watch_exit())

        logger.info(
            "PTY channel %s started: pid=%d pgid=%d shell=%s",
            self.label,
            self._proc.pid,
            self._pgid,
            self.config.shell,
        )

    def _on_readable(self) -> None:
        try:
            data = os.read(self._master_fd, 65536)
        except BlockingIOError:
            return
        except OSError:
            # EIO once the slave side has no more writers
            data = b""

        if not data:
            self._stop_reading()
            if self._eof is not None:
                self._eof.set()
            return

        self.buffer.append(self._decoder.decode(data))

    def _stop_reading(self) -> None:
        if self._loop is not None and self._master_fd >= 0:
            try:
                self._loop.remove_reader(self._master_fd)
            except (ValueError, OSError):
                pass

    async def _watch_exit(self) -> None:
        assert self._eof is not None
        await self._eof.wait()
        # Only transition to EXITED if we weren't already killing
        if self._status != ChannelStatus.RUNNING:
            return
        exit_code = await self.wait_for_exit(timeout=2.0)
        if self._status != ChannelStatus.RUNNING:
            return
        self._exit_code = exit_code
        self._status = ChannelStatus.EXITED
        self._stop_reading()
        try:
            os.close(self._master_fd)
        except OSError:
            pass
        logger.info("PTY channel %s exited (code=%s)", self.label, self._exit_code)
        if self._on_exit:
            try:
                self._on_exit(self, self._exit_code)
            except Exception:
                logger.exception("Error in on_exit callback for channel %s", self.label)

    async def write(self, data: str) -> None:
        """Write raw input to the shell, waiting out a full PTY input queue."""
        if self._status != ChannelStatus.RUNNING:
            raise ProcessExited(self.label, self._exit_code)

        payload = memoryview(data.encode("utf-8"))
        while payload:
            try:
                written = os.write(self._master_fd, payload)
            except BlockingIOError:
                await asyncio.sleep(0.01)
                continue
            except OSError as e:
                raise ProcessExited(self.label, self._exit_code) from e
            payload = payload[written:]

    async def kill(self) -> None:
        """Kill the entire process tree and reap the shell without blocking the loop."""
        if self._status != ChannelStatus.RUNNING:
            return

        self._status = ChannelStatus.KILLING
        try:
            os.killpg(self._pgid, signal.SIGKILL)
            logger.info("Killed PTY channel %s (pgid=%d)", self.label, self._pgid)
        except ProcessLookupError:
            logger.debug("Process group already gone: %d", self._pgid)
        except OSError as e:
            logger.warning("Error killing PTY channel %s: %s", self.label, e)

        # Wait for process to be reaped (avoids zombies)
        if self._proc is not None:
            exit_code = await self.wait_for_exit(timeout=2.0)
            if exit_code is None:
                logger.warning("PTY channel %s did not exit after SIGKILL", self.label)
            else:
                self._exit_code = exit_code

        self._stop_reading()
        if self._watch_task is not None:
            self._watch_task.cancel()
        try:
            os.close(self._master_fd)
        except OSError:
            pass

        self._status = ChannelStatus.KILLED

    @property
    def alive(self) -> bool:
        return self._status == ChannelStatus.RUNNING

    @property
    def exit_code(self) -> int | None:
        return self._exit_code

    async def wait_for_exit(self, timeout: float = 10.0) -> int | None:
        """Wait for the process to exit. Returns exit code or None on timeout."""
        if self._proc is None:
            return None
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while loop.time() < deadline:
            ret = self._proc.poll()
            if ret is not None:
                return ret
            await asyncio.sleep(0.05)
        return None


@retry(
    retry=(
        retry_if_exception_type(OSError)
        & retry_if_not_exception_type((FileNotFoundError, PermissionError))
    ),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=0.2, min=0.2, max=2),
    before_sleep=before_sleep_log(logger, logging.WARNING),
    reraise=True,
)
def _spawn(
    command: list[str], slave_fd: int, env: dict[str, str], cwd: str
) -> subprocess.Popen:
    """Start ``command`` on the PTY slave, retrying transient OS errors."""
    return subprocess.Popen(
        command,
        stdin=slave_fd,
        stdout=slave_fd,
        stderr=slave_fd,
        start_new_session=True,  # Creates new process group
        env=env,
        cwd=cwd,
    )
