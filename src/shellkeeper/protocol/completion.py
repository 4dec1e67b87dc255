"""Command-completion protocol — synchronous commands over a PTY stream.

A PTY has no notion of "this command is done".  Each command is
bracketed by unique markers:

    echo '__SK''_START_<token>__'
    <command, verbatim>
    echo '__SK''_EXIT_<token>__'$?
    echo '__SK''_END_<token>__'

and the accumulator is polled until the end marker shows up.  The text
between the last start and end markers is the command's output, the
digits after the exit marker are its status.

The command is NOT wrapped in a subshell: ``cd`` and ``export`` must
persist for later calls.  Nothing is retried; a timeout only abandons
the caller's wait, the shell keeps running whatever it was running.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

from shellkeeper.config import ProtocolConfig
from shellkeeper.errors import CommandFailed, CommandTimeout, ProcessExited
from shellkeeper.protocol.markers import MarkerSet
from shellkeeper.protocol.sanitizer import clean_output, strip_escapes

if TYPE_CHECKING:
    from shellkeeper.session.session import Session

logger = logging.getLogger(__name__)

# "(env)[user@host dir]$", "[READY]$" (possibly repeated), "user@host:~$" with nothing after them
_PROMPT_ONLY_RE = re.compile(
    r"^(?:(?:\([^)]+\)\s*)?\[[^\]]*\][$#]\s*)+$"
    r"|^\([^)]+\)\[[^\]]+@[^\]]+\s+[^\]]+\]\$"
    r"|^[\w.-]+@[\w.-]+:\S*[$#]$"
)


@dataclass
class CommandResult:
    """Outcome of one protocol cycle."""

    command: str
    exit_code: int
    output: str  # Sanitized, caller-facing text
    framed: str  # Raw text strictly between the markers (whole buffer if unframed)
    framed_ok: bool = True
    markers: MarkerSet | None = None

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    def raise_for_status(self) -> str:
        """Return the output, or raise ``CommandFailed`` on a non-zero status."""
        if not self.ok:
            raise CommandFailed(self.exit_code, self.command, self.output)
        return self.output


def parse_exchange(raw: str, markers: MarkerSet, command: str) -> CommandResult:
    """Derive output and exit status from the accumulator contents.

    Scaffolding from earlier cycles may still be in the buffer, so the
    *last* start and end markers delimit this command.  Missing or
    out-of-order markers are not an error: the whole buffer is returned,
    sanitized, with status 0.
    """
    start_idx = raw.rfind(markers.start)
    end_idx = raw.rfind(markers.end)
    if start_idx == -1 or end_idx == -1 or start_idx >= end_idx:
        logger.debug("Markers not framed for %r, returning whole buffer", command)
        return CommandResult(
            command=command,
            exit_code=0,
            output=clean_output(raw),
            framed=raw,
            framed_ok=False,
            markers=markers,
        )

    exit_code = 0
    match = re.search(re.escape(markers.exit) + r"(\d+)", raw)
    if match:
        exit_code = int(match.group(1))

    framed = raw[start_idx + len(markers.start) : end_idx]
    filtered = filter_scaffolding(framed, markers, command)
    return CommandResult(
        command=command,
        exit_code=exit_code,
        output=clean_output(filtered),
        framed=framed,
        markers=markers,
    )


def filter_scaffolding(framed: str, markers: MarkerSet, command: str) -> str:
    """Drop protocol lines from the framed slice.

    Marker statements and marker output are cut out of the text first,
    wherever they landed, so command output sharing a line with an echoed
    statement is kept.  Then bare prompts, one echo of the command itself,
    and lines already seen earlier in the slice (multi-line prompt redraws
    repeat them) are dropped.
    """
    command_lines = [c.strip() for c in command.strip().split("\n") if c.strip()]
    first_token = command_lines[0].split()[0] if command_lines else ""
    last_part = command_lines[-1] if command_lines else ""

    seen: set[str] = set()
    echo_skipped = False
    kept: list[str] = []

    for line in strip_escapes(markers.scrub(framed)).split("\n"):
        stripped = line.strip()
        if not stripped:
            continue
        if _PROMPT_ONLY_RE.match(stripped):
            continue

        if not echo_skipped:
            if (last_part and stripped.endswith(last_part)) or (
                first_token and first_token in stripped
            ):
                echo_skipped = True
                continue
            if stripped.startswith("echo "):
                continue

        if stripped in seen:
            continue
        seen.add(stripped)
        kept.append(line)

    return "\n".join(kept)


class CompletionProtocol:
    """Runs commands against a session and waits for their markers."""

    def __init__(self, config: ProtocolConfig | None = None) -> None:
        self._config = config or ProtocolConfig()

    @property
    def config(self) -> ProtocolConfig:
        return self._config

    async def run(
        self, session: Session, command: str, timeout: float | None = None
    ) -> str:
        """Execute ``command`` and return its sanitized output.

        Raises:
            SessionBusy: Another cycle is in flight on this session.
            CommandTimeout: The end marker never showed up.
            CommandFailed: The command exited non-zero.
            ProcessExited: The shell died.
        """
        with session.claim(command):
            result = await self.exchange(session, command, timeout)
        return result.raise_for_status()

    async def exchange(
        self, session: Session, command: str, timeout: float | None = None
    ) -> CommandResult:
        """One protocol cycle on a session the caller has already claimed.

        Does not raise on a non-zero exit status; see ``CommandResult``.
        """
        cfg = self._config
        if timeout is None:
            timeout = cfg.default_timeout

        session.last_command = command
        session.buffer.clear()
        await asyncio.sleep(cfg.settle_delay)

        markers = MarkerSet.new()
        statements = [
            markers.start_statement(),
            command,
            markers.exit_statement(),
            markers.end_statement(),
        ]
        for i, statement in enumerate(statements):
            if i:
                await asyncio.sleep(cfg.write_delay)
            await session.channel.write(statement + "\n")

        await self._wait_for_marker(session, markers.end, command, timeout)
        # Let the prompt come back before slicing
        await asyncio.sleep(cfg.prompt_delay)

        return parse_exchange(session.buffer.read_all(), markers, command)

    async def _wait_for_marker(
        self, session: Session, marker: str, command: str, timeout: float
    ) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout

        while True:
            if session.buffer.contains(marker):
                return
            if not session.channel.alive:
                raise ProcessExited(session.id, session.channel.exit_code)
            remaining = deadline - loop.time()
            if remaining <= 0:
                break
            await asyncio.sleep(min(self._config.poll_interval, remaining))

        logger.warning(
            "Session %s: no completion marker after %.1fs for %r",
            session.id,
            timeout,
            command[:80],
        )
        raise CommandTimeout(command, timeout)
