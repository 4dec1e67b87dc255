"""Error taxonomy for sessions, commands and file transfers.

Every failure the core can report derives from ``ShellKeeperError``.
The tool boundary renders these as plain ``Error: ...`` text; anything
else reaching it is treated as a bug and logged with a traceback.
"""

from __future__ import annotations


class ShellKeeperError(Exception):
    """Base exception for all shellkeeper failures."""


class SessionNotFound(ShellKeeperError):
    """Raised when a session id is not present in the registry."""

    def __init__(self, session_id: str, hint: str = "") -> None:
        self.session_id = session_id
        message = f"Session {session_id} not found"
        if hint:
            message += f". {hint}"
        super().__init__(message)


class SessionBusy(ShellKeeperError):
    """Raised when a command is issued while another is still in flight."""

    def __init__(self, session_id: str, last_command: str = "") -> None:
        self.session_id = session_id
        self.last_command = last_command
        super().__init__(
            f"Session {session_id} is busy executing: {last_command}. "
            f"Please wait or use a different session."
        )


class SessionAlreadyExists(ShellKeeperError):
    """Raised on explicit creation of an id that is already registered."""

    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        super().__init__(
            f"Session {session_id} already exists. "
            f"Use terminal_close_session first if you want to recreate it."
        )


class CommandTimeout(ShellKeeperError):
    """The end marker was not observed within the time budget.

    The command may still be running in the shell; its status is unknown.
    """

    def __init__(self, command: str, timeout: float) -> None:
        self.command = command
        self.timeout = timeout
        super().__init__(
            f"Command timeout after {timeout:g}s. "
            f"Command might still be running or waiting for input."
        )


class CommandFailed(ShellKeeperError):
    """The command completed with a non-zero exit status."""

    def __init__(self, exit_code: int, command: str, output: str) -> None:
        self.exit_code = exit_code
        self.command = command
        self.output = output
        super().__init__(
            f"Command exited with code {exit_code}\n"
            f"Command: {command}\n"
            f"Output: {output or '(no output)'}"
        )


class FileTooLarge(ShellKeeperError):
    """A file exceeds the configured transfer size limit."""

    def __init__(self, size: int, limit: int) -> None:
        self.size = size
        self.limit = limit
        super().__init__(
            f"File size ({size / 1024 / 1024:.2f}MB) exceeds maximum allowed size "
            f"({limit / 1024 / 1024:g}MB)"
        )


class LocalFileNotFound(ShellKeeperError):
    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"Local file not found: {path}")


class RemoteFileNotFound(ShellKeeperError):
    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"Remote file not found or cannot access: {path}")


class RemoteSizeUndeterminable(ShellKeeperError):
    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"Cannot determine size of remote file: {path}")


class ProcessExited(ShellKeeperError):
    """The shell backing a session terminated; the session is gone."""

    def __init__(self, session_id: str, exit_code: int | None = None) -> None:
        self.session_id = session_id
        self.exit_code = exit_code
        message = f"Shell process for session {session_id} exited"
        if exit_code is not None:
            message += f" (code={exit_code})"
        super().__init__(message)


class DownloadCorrupted(ShellKeeperError):
    """The payload read back from the shell does not decode to the remote file."""

    def __init__(self, path: str, expected: int, received: int | None = None) -> None:
        self.path = path
        self.expected = expected
        self.received = received
        if received is None:
            detail = "payload is not valid base64"
        else:
            detail = f"expected {expected} bytes, got {received}"
        super().__init__(f"Downloaded data for {path} is corrupted: {detail}")
