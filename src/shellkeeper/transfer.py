"""File transfer over the command channel.

Files move as base64 text through ordinary protocol cycles, so uploads
and downloads work through any number of nested ``ssh`` hops without a
separate transport.  Everything here is built on
``CompletionProtocol.exchange``; the session stays Busy for the whole
transfer.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import logging
import posixpath
import re
import uuid
from dataclasses import dataclass
from pathlib import Path

import aiofiles

from shellkeeper.config import TransferConfig
from shellkeeper.errors import (
    CommandFailed,
    CommandTimeout,
    DownloadCorrupted,
    FileTooLarge,
    LocalFileNotFound,
    RemoteFileNotFound,
    RemoteSizeUndeterminable,
)
from shellkeeper.protocol.completion import CompletionProtocol
from shellkeeper.protocol.markers import MarkerSet
from shellkeeper.protocol.sanitizer import strip_escapes
from shellkeeper.session.session import Session

logger = logging.getLogger(__name__)

_BASE64_LINE_RE = re.compile(r"^[A-Za-z0-9+/=]+$")


@dataclass
class UploadReport:
    local_path: str
    remote_path: str
    listing: str

    def __str__(self) -> str:
        return (
            f"File uploaded successfully: {self.local_path} -> {self.remote_path}\n"
            f"{self.listing}"
        )


@dataclass
class DownloadReport:
    remote_path: str
    local_path: str
    size: int

    def __str__(self) -> str:
        return (
            f"File downloaded successfully: {self.remote_path} -> {self.local_path}\n"
            f"Size: {self.size / 1024:.2f}KB"
        )


class _Budget:
    """Splits one overall transfer timeout across successive steps."""

    def __init__(self, total: float, what: str) -> None:
        self._loop = asyncio.get_running_loop()
        self._deadline = self._loop.time() + total
        self._total = total
        self._what = what

    def step(self, cap: float | None = None) -> float:
        remaining = self._deadline - self._loop.time()
        if remaining <= 0:
            raise CommandTimeout(self._what, self._total)
        return remaining if cap is None else min(cap, remaining)


class FileTransfer:
    """Upload and download files through a session's shell."""

    def __init__(
        self, protocol: CompletionProtocol, config: TransferConfig | None = None
    ) -> None:
        self._protocol = protocol
        self._config = config or TransferConfig()

    async def upload(
        self,
        session: Session,
        local_path: str,
        remote_path: str,
        timeout: float | None = None,
    ) -> UploadReport:
        """Copy a local file to ``remote_path`` on whatever host the shell is on.

        A directory destination gets the local base name appended; an
        existing file is never overwritten, the new name gets a short
        random suffix instead.
        """
        cfg = self._config
        path = Path(local_path).expanduser()
        if not path.is_file():
            raise LocalFileNotFound(local_path)
        size = path.stat().st_size
        if size > cfg.max_file_size:
            raise FileTooLarge(size, cfg.max_file_size)

        what = f"upload {local_path} -> {remote_path}"
        with session.claim(what):
            budget = _Budget(timeout or cfg.timeout, what)
            final_path = await self._resolve_destination(
                session, remote_path, path.name, budget
            )
            logger.info(
                "Uploading %s (%d bytes) to %s in session %s",
                local_path,
                size,
                final_path,
                session.id,
            )

            async with aiofiles.open(path, "rb") as f:
                content = await f.read()
            encoded = base64.b64encode(content).decode("ascii")
            chunks = [
                encoded[i : i + cfg.chunk_size]
                for i in range(0, len(encoded), cfg.chunk_size)
            ]

            scratch = posixpath.join(
                cfg.scratch_dir, f"shellkeeper_upload_{uuid.uuid4().hex}.b64"
            )
            # touch keeps the decode step working for empty files
            await self._run(
                session, f"rm -f {scratch} && touch {scratch}", budget.step(cfg.step_timeout)
            )
            for chunk in chunks:
                await self._run(
                    session,
                    f"printf '%s' '{chunk}' >> {scratch}",
                    budget.step(cfg.step_timeout),
                )

            dest = quote_path(final_path)
            await self._run(
                session,
                f"(base64 -D -i {scratch} -o {dest} 2>/dev/null "
                f"|| base64 -d {scratch} > {dest}) && rm -f {scratch}",
                budget.step(),
            )
            listing = await self._run(
                session, f"ls -lh {dest}", budget.step(cfg.step_timeout)
            )

        return UploadReport(local_path=local_path, remote_path=final_path, listing=listing)

    async def download(
        self,
        session: Session,
        remote_path: str,
        local_path: str,
        timeout: float | None = None,
    ) -> DownloadReport:
        """Copy ``remote_path`` from the shell's host to a local file."""
        cfg = self._config
        src = quote_path(remote_path)

        what = f"download {remote_path} -> {local_path}"
        with session.claim(what):
            budget = _Budget(timeout or cfg.timeout, what)

            # BSD stat first, GNU stat as fallback
            size_cmd = (
                f"test -f {src} && "
                f"(stat -f%z {src} 2>/dev/null || stat -c%s {src} 2>/dev/null)"
            )
            try:
                size_text = await self._run(
                    session, size_cmd, budget.step(cfg.step_timeout)
                )
            except CommandFailed as e:
                raise RemoteFileNotFound(remote_path) from e

            size = parse_size(size_text)
            if size is None:
                raise RemoteSizeUndeterminable(remote_path)
            if size > cfg.max_file_size:
                raise FileTooLarge(size, cfg.max_file_size)

            logger.info(
                "Downloading %s (%d bytes) to %s in session %s",
                remote_path,
                size,
                local_path,
                session.id,
            )
            result = await self._protocol.exchange(
                session, f"base64 -i {src} 2>/dev/null || base64 {src}", budget.step()
            )
            result.raise_for_status()

        payload = extract_base64(result.framed, result.markers)
        try:
            data = base64.b64decode(payload, validate=True)
        except binascii.Error as e:
            raise DownloadCorrupted(remote_path, size) from e
        if len(data) != size:
            raise DownloadCorrupted(remote_path, size, len(data))

        dest = Path(local_path).expanduser()
        dest.parent.mkdir(parents=True, exist_ok=True)
        async with aiofiles.open(dest, "wb") as f:
            await f.write(data)

        return DownloadReport(
            remote_path=remote_path, local_path=local_path, size=dest.stat().st_size
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _run(self, session: Session, command: str, timeout: float) -> str:
        result = await self._protocol.exchange(session, command, timeout)
        return result.raise_for_status()

    async def _probe(self, session: Session, command: str, budget: _Budget) -> str | None:
        """Best-effort check; a failed probe means "assume not present"."""
        timeout = budget.step(self._config.probe_timeout)
        try:
            return await self._run(session, command, timeout)
        except (CommandTimeout, CommandFailed) as e:
            logger.debug("Probe %r failed, assuming not present: %s", command, e)
            return None

    async def _resolve_destination(
        self, session: Session, remote_path: str, local_name: str, budget: _Budget
    ) -> str:
        final_path = remote_path

        probe = await self._probe(
            session,
            f'test -d {quote_path(remote_path)} && echo "DIR" || echo "FILE"',
            budget,
        )
        if probe is not None and _last_line(probe) == "DIR":
            if remote_path.endswith("/"):
                final_path = f"{remote_path}{local_name}"
            else:
                final_path = f"{remote_path}/{local_name}"

        probe = await self._probe(
            session,
            f'test -f {quote_path(final_path)} && echo "EXISTS" || echo "OK"',
            budget,
        )
        if probe is not None and _last_line(probe) == "EXISTS":
            # Best effort: nothing stops the name being taken before decode
            final_path = with_random_suffix(final_path)

        return final_path


def with_random_suffix(path: str) -> str:
    """``dir/name.ext`` -> ``dir/name_<6 hex>.ext``."""
    directory, name = posixpath.split(path)
    stem, ext = posixpath.splitext(name)
    renamed = f"{stem}_{uuid.uuid4().hex[:6]}{ext}"
    return posixpath.join(directory, renamed) if directory else renamed


def parse_size(text: str) -> int | None:
    """The byte count printed by ``stat``, or None."""
    for line in reversed(text.splitlines()):
        stripped = line.strip()
        if stripped.isdigit():
            return int(stripped)
    return None


def extract_base64(framed: str, markers: MarkerSet | None = None) -> str:
    """Pull base64 payload lines out of a framed protocol slice.

    Works on the raw slice rather than the sanitized output because the
    latter drops repeated lines, and repeated base64 lines are common
    (runs of zero bytes, for one).  With ``markers`` given, echoed marker
    statements are cut out first so a payload line they split is joined
    back together.
    """
    if markers is not None:
        framed = markers.scrub(framed)
    payload = []
    for line in strip_escapes(framed).split("\n"):
        stripped = line.strip()
        if stripped and _BASE64_LINE_RE.match(stripped):
            payload.append(stripped)
    return "".join(payload)


def _last_line(text: str) -> str:
    lines = text.strip().splitlines()
    return lines[-1].strip() if lines else ""


def shell_quote(s: str) -> str:
    """Quote a string for safe shell usage."""
    return "'" + s.replace("'", "'\\''") + "'"


def quote_path(path: str) -> str:
    """Shell-quote a remote path, leaving a leading ``~/`` expandable."""
    if path == "~":
        return path
    if path.startswith("~/"):
        rest = path[2:]
        return "~/" + shell_quote(rest) if rest else "~/"
    return shell_quote(path)
