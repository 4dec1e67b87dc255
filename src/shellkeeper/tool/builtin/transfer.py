"""File transfer tools."""

from __future__ import annotations

from typing import TYPE_CHECKING, ClassVar

from pydantic import BaseModel, Field

from shellkeeper.tool.base import BaseTool, ToolOk, ToolResult

if TYPE_CHECKING:
    from shellkeeper.service import ShellKeeper


class UploadParams(BaseModel):
    local_path: str = Field(description="Path to the local file to upload.")
    remote_path: str = Field(description="Destination path on the remote server.")
    session_id: str = Field(
        default="default", description="Session identifier to use for upload."
    )
    timeout: float = Field(
        default=300.0, description="Upload timeout in seconds (max: 300)."
    )


class TerminalUploadFileTool(BaseTool[UploadParams]):
    name: ClassVar[str] = "terminal_upload_file"
    description: ClassVar[str] = (
        "Upload a file from local machine to remote server through the terminal session. "
        "Works seamlessly with SSH and nested SSH connections. "
        "Maximum file size: 10MB. Timeout: 5 minutes."
    )
    param_model: ClassVar[type[BaseModel]] = UploadParams

    def __init__(self, keeper: ShellKeeper) -> None:
        self._keeper = keeper

    async def execute(self, params: UploadParams) -> ToolResult:
        report = await self._keeper.upload(
            params.local_path, params.remote_path, params.session_id, params.timeout
        )
        return ToolOk(output=str(report))


class DownloadParams(BaseModel):
    remote_path: str = Field(description="Path to the file on remote server.")
    local_path: str = Field(description="Destination path on local machine.")
    session_id: str = Field(
        default="default", description="Session identifier to use for download."
    )
    timeout: float = Field(
        default=300.0, description="Download timeout in seconds (max: 300)."
    )


class TerminalDownloadFileTool(BaseTool[DownloadParams]):
    name: ClassVar[str] = "terminal_download_file"
    description: ClassVar[str] = (
        "Download a file from remote server to local machine through the terminal session. "
        "Works seamlessly with SSH and nested SSH connections. "
        "Maximum file size: 10MB. Timeout: 5 minutes."
    )
    param_model: ClassVar[type[BaseModel]] = DownloadParams

    def __init__(self, keeper: ShellKeeper) -> None:
        self._keeper = keeper

    async def execute(self, params: DownloadParams) -> ToolResult:
        report = await self._keeper.download(
            params.remote_path, params.local_path, params.session_id, params.timeout
        )
        return ToolOk(output=str(report))
