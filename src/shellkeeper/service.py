"""ShellKeeper — the inbound operations over persistent shell sessions.

One object wires the registry, the completion protocol and the transfer
codec together and applies the caller-facing policy: timeout clamping,
implicit session creation and the text returned for each operation.
Tools and the CLI hold a reference to it; nothing here is global.
"""

from __future__ import annotations

import logging
from typing import Any

from shellkeeper.config import ShellKeeperConfig
from shellkeeper.protocol.completion import CompletionProtocol
from shellkeeper.protocol.sanitizer import clean_output
from shellkeeper.session.registry import ChannelFactory, SessionRegistry
from shellkeeper.session.session import Session
from shellkeeper.transfer import DownloadReport, FileTransfer, UploadReport

logger = logging.getLogger(__name__)


class ShellKeeper:
    """Execute commands and move files through named, persistent shells."""

    def __init__(
        self,
        config: ShellKeeperConfig | None = None,
        channel_factory: ChannelFactory | None = None,
    ) -> None:
        self.config = config or ShellKeeperConfig()
        self.registry = SessionRegistry(
            shell_config=self.config.shell,
            channel_factory=channel_factory,
            startup_delay=self.config.protocol.startup_delay,
        )
        self.protocol = CompletionProtocol(self.config.protocol)
        self.transfer = FileTransfer(self.protocol, self.config.transfer)

    def _session_id(self, session_id: str | None) -> str:
        return session_id or self.config.default_session

    async def execute(
        self, command: str, session_id: str | None = None, timeout: float | None = None
    ) -> str:
        """Run a command, creating the session on first use.

        ``timeout`` is clamped into the configured [min, max] window.
        """
        sid = self._session_id(session_id)
        session = await self.registry.get_or_create(sid)
        timeout = self.config.protocol.clamp(timeout)
        logger.info("Executing in session %s: %s", sid, command)
        return await self.protocol.run(session, command, timeout)

    async def create_session(self, session_id: str, shell: str | None = None) -> Session:
        logger.info("Creating new session: %s", session_id)
        return await self.registry.create(session_id, shell)

    def list_sessions(self) -> list[dict[str, Any]]:
        return self.registry.list_sessions()

    async def close_session(self, session_id: str) -> None:
        await self.registry.close(session_id)

    def get_raw_buffer(self, session_id: str | None = None, clean: bool = True) -> str:
        """Whatever the session's shell has printed since the last command began."""
        session = self.registry.get(self._session_id(session_id))
        text = session.buffer.read_all()
        return clean_output(text) if clean else text

    async def upload(
        self,
        local_path: str,
        remote_path: str,
        session_id: str | None = None,
        timeout: float | None = None,
    ) -> UploadReport:
        sid = self._session_id(session_id)
        session = await self.registry.get_or_create(sid)
        logger.info("Uploading file in session %s: %s -> %s", sid, local_path, remote_path)
        return await self.transfer.upload(
            session, local_path, remote_path, self.config.transfer.clamp(timeout)
        )

    async def download(
        self,
        remote_path: str,
        local_path: str,
        session_id: str | None = None,
        timeout: float | None = None,
    ) -> DownloadReport:
        """Fetch a file; unlike the other operations this never creates a session."""
        sid = self._session_id(session_id)
        session = self.registry.get(
            sid, hint="Create a session first or connect to a server."
        )
        logger.info(
            "Downloading file in session %s: %s -> %s", sid, remote_path, local_path
        )
        return await self.transfer.download(
            session, remote_path, local_path, self.config.transfer.clamp(timeout)
        )

    async def shutdown(self) -> None:
        logger.info("Shutting down...")
        await self.registry.cleanup()
