"""Session registry — maps caller-chosen ids to live shell sessions."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable

from shellkeeper.config import ShellConfig
from shellkeeper.errors import SessionAlreadyExists, SessionNotFound
from shellkeeper.pty.channel import Channel, PTYChannel
from shellkeeper.session.session import Session

logger = logging.getLogger(__name__)

ChannelFactory = Callable[[str, ShellConfig], Channel]


def _pty_channel(label: str, config: ShellConfig) -> Channel:
    return PTYChannel(config=config, label=label)


class SessionRegistry:
    """Owns session creation and teardown.

    The registry is an ordinary object handed to whatever serves the
    inbound operations; there is no module-level instance.  It ensures:
    - Create and remove are serialized, so two callers racing on the same
      unknown id end up sharing one session
    - A session leaves the registry exactly once, whether through
      ``close()`` or through its shell exiting on its own
    - All shells are killed on ``cleanup()`` (no orphan processes)
    """

    def __init__(
        self,
        shell_config: ShellConfig | None = None,
        channel_factory: ChannelFactory | None = None,
        startup_delay: float = 0.5,
    ) -> None:
        self._shell_config = shell_config or ShellConfig()
        self._channel_factory = channel_factory or _pty_channel
        self._startup_delay = startup_delay
        self._sessions: dict[str, Session] = {}
        self._lock = asyncio.Lock()

    async def create(self, session_id: str, shell: str | None = None) -> Session:
        """Explicitly create a session.

        Raises:
            SessionAlreadyExists: ``session_id`` is already registered.
        """
        async with self._lock:
            if session_id in self._sessions:
                raise SessionAlreadyExists(session_id)
            session = await self._spawn(session_id, shell)
        await self._await_startup(session)
        return session

    async def get_or_create(self, session_id: str) -> Session:
        """Return the session, spawning it on first reference.

        Every caller, including one that finds the session already
        registered, returns only once the shell's startup delay is over.
        """
        async with self._lock:
            session = self._sessions.get(session_id)
            if session is None or not session.alive:
                if session is not None:
                    # Shell died but the exit notification has not landed yet
                    self._sessions.pop(session_id, None)
                logger.info("Creating new session: %s", session_id)
                session = await self._spawn(session_id, None)
        await self._await_startup(session)
        return session

    def get(self, session_id: str, hint: str = "") -> Session:
        """Look up a session.

        Raises:
            SessionNotFound: No such id.
        """
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFound(session_id, hint)
        return session

    async def close(self, session_id: str) -> None:
        """Kill the session's shell and drop it.

        Raises:
            SessionNotFound: No such id.
        """
        async with self._lock:
            session = self._sessions.pop(session_id, None)
        if session is None:
            raise SessionNotFound(session_id)
        logger.info("Closing session: %s", session_id)
        await session.kill()

    def list_sessions(self) -> list[dict[str, Any]]:
        """Id, ready flag, last command, creation time and uptime per session."""
        return [s.describe() for s in self._sessions.values()]

    async def cleanup(self) -> None:
        """Kill all sessions. Called on shutdown."""
        async with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
        await asyncio.gather(*(s.kill() for s in sessions))
        logger.info("All sessions cleaned up")

    async def _spawn(self, session_id: str, shell: str | None) -> Session:
        config = self._shell_config
        if shell:
            config = config.model_copy(update={"shell": shell})

        channel = self._channel_factory(session_id, config)
        session = Session(id=session_id, channel=channel)
        channel.set_on_exit(lambda _ch, code: self._on_exit(session, code))
        await channel.start()
        session.startup_deadline = asyncio.get_running_loop().time() + self._startup_delay
        self._sessions[session_id] = session
        return session

    async def _await_startup(self, session: Session) -> None:
        remaining = session.startup_deadline - asyncio.get_running_loop().time()
        if remaining > 0:
            await asyncio.sleep(remaining)

    def _on_exit(self, session: Session, exit_code: int | None) -> None:
        # Only drop the entry if it still refers to this session; a close()
        # or re-creation under the same id may already have replaced it.
        if self._sessions.get(session.id) is not session:
            return
        del self._sessions[session.id]
        logger.info("Session %s exited with code %s", session.id, exit_code)

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions
