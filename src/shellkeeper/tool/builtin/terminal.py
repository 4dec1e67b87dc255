"""Terminal tools — run commands in, and manage, persistent shell sessions."""

from __future__ import annotations

from typing import TYPE_CHECKING, ClassVar

from pydantic import BaseModel, Field

from shellkeeper.tool.base import BaseTool, ToolOk, ToolResult

if TYPE_CHECKING:
    from shellkeeper.service import ShellKeeper


class ExecuteParams(BaseModel):
    command: str = Field(
        description="The command to execute. Examples: 'ls -la', 'ssh user@server', "
        "'top -bn1', 'cd /var/log && tail -50 app.log'"
    )
    session_id: str = Field(
        default="default",
        description="Session identifier to maintain context across commands.",
    )
    timeout: float = Field(
        default=30.0, description="Command timeout in seconds (clamped to 1-120)."
    )


class TerminalExecuteTool(BaseTool[ExecuteParams]):
    """Execute a command in a persistent session, creating it on first use."""

    name: ClassVar[str] = "terminal_execute"
    description: ClassVar[str] = (
        "Execute a command in a persistent terminal session. "
        "This tool maintains shell context across calls, making it perfect for: "
        "1) Running local commands on the user's machine, "
        "2) SSH into servers and maintaining that SSH connection, "
        "3) Running commands within SSH sessions (nested SSH supported). "
        "The session persists until explicitly closed or the server restarts. "
        "Use the same session_id to maintain context (default: 'default')."
    )
    param_model: ClassVar[type[BaseModel]] = ExecuteParams

    def __init__(self, keeper: ShellKeeper) -> None:
        self._keeper = keeper

    async def execute(self, params: ExecuteParams) -> ToolResult:
        output = await self._keeper.execute(
            params.command, params.session_id, params.timeout
        )
        return ToolOk(output=output or "(Command executed successfully with no output)")


class NewSessionParams(BaseModel):
    session_id: str = Field(description="Unique identifier for the new session.")
    shell: str | None = Field(
        default=None,
        description="Shell to use (optional, defaults to $SHELL or /bin/bash).",
    )


class TerminalNewSessionTool(BaseTool[NewSessionParams]):
    name: ClassVar[str] = "terminal_new_session"
    description: ClassVar[str] = (
        "Create a new isolated terminal session. "
        "Useful when you want to maintain multiple separate contexts "
        "(e.g., one session per server, or separate sessions for different tasks)."
    )
    param_model: ClassVar[type[BaseModel]] = NewSessionParams

    def __init__(self, keeper: ShellKeeper) -> None:
        self._keeper = keeper

    async def execute(self, params: NewSessionParams) -> ToolResult:
        await self._keeper.create_session(params.session_id, params.shell)
        suffix = f" (shell: {params.shell})" if params.shell else ""
        return ToolOk(output=f"Created new terminal session: {params.session_id}{suffix}")


class NoParams(BaseModel):
    pass


class TerminalListSessionsTool(BaseTool[NoParams]):
    name: ClassVar[str] = "terminal_list_sessions"
    description: ClassVar[str] = (
        "List all active terminal sessions with their status and metadata"
    )
    param_model: ClassVar[type[BaseModel]] = NoParams

    def __init__(self, keeper: ShellKeeper) -> None:
        self._keeper = keeper

    async def execute(self, params: NoParams) -> ToolResult:
        sessions = self._keeper.list_sessions()
        if not sessions:
            return ToolOk(output="No active sessions")

        entries = [
            f"  • {s['id']}\n"
            f"    Status: {'✓ ready' if s['ready'] else '⏳ busy'}\n"
            f"    Last command: {s['last_command']}\n"
            f"    Uptime: {s['uptime']}s"
            for s in sessions
        ]
        body = "\n\n".join(entries)
        return ToolOk(output=f"Active sessions ({len(sessions)}):\n\n{body}")


class CloseSessionParams(BaseModel):
    session_id: str = Field(description="Session ID to close.")


class TerminalCloseSessionTool(BaseTool[CloseSessionParams]):
    name: ClassVar[str] = "terminal_close_session"
    description: ClassVar[str] = "Close and cleanup a specific terminal session"
    param_model: ClassVar[type[BaseModel]] = CloseSessionParams

    def __init__(self, keeper: ShellKeeper) -> None:
        self._keeper = keeper

    async def execute(self, params: CloseSessionParams) -> ToolResult:
        await self._keeper.close_session(params.session_id)
        return ToolOk(output=f"Closed session: {params.session_id}")


class GetBufferParams(BaseModel):
    session_id: str = Field(default="default", description="Session ID.")
    clean: bool = Field(
        default=True, description="Clean ANSI codes and control characters."
    )


class TerminalGetBufferTool(BaseTool[GetBufferParams]):
    name: ClassVar[str] = "terminal_get_buffer"
    description: ClassVar[str] = (
        "Get the raw output buffer from a session. "
        "Useful for debugging or when you need to see the unprocessed terminal output."
    )
    param_model: ClassVar[type[BaseModel]] = GetBufferParams

    def __init__(self, keeper: ShellKeeper) -> None:
        self._keeper = keeper

    async def execute(self, params: GetBufferParams) -> ToolResult:
        text = self._keeper.get_raw_buffer(params.session_id, params.clean)
        return ToolOk(output=text or "(Empty buffer)")
