"""Built-in terminal and file transfer tools."""

from __future__ import annotations

from typing import TYPE_CHECKING

from shellkeeper.tool.builtin.terminal import (
    TerminalCloseSessionTool,
    TerminalExecuteTool,
    TerminalGetBufferTool,
    TerminalListSessionsTool,
    TerminalNewSessionTool,
)
from shellkeeper.tool.builtin.transfer import (
    TerminalDownloadFileTool,
    TerminalUploadFileTool,
)
from shellkeeper.tool.registry import ToolRegistry

if TYPE_CHECKING:
    from shellkeeper.service import ShellKeeper

__all__ = [
    "TerminalCloseSessionTool",
    "TerminalDownloadFileTool",
    "TerminalExecuteTool",
    "TerminalGetBufferTool",
    "TerminalListSessionsTool",
    "TerminalNewSessionTool",
    "TerminalUploadFileTool",
    "build_registry",
]


def build_registry(keeper: ShellKeeper) -> ToolRegistry:
    """A registry holding every terminal tool, bound to ``keeper``."""
    registry = ToolRegistry()
    registry.register_many(
        [
            TerminalExecuteTool(keeper),
            TerminalNewSessionTool(keeper),
            TerminalListSessionsTool(keeper),
            TerminalCloseSessionTool(keeper),
            TerminalGetBufferTool(keeper),
            TerminalUploadFileTool(keeper),
            TerminalDownloadFileTool(keeper),
        ]
    )
    return registry
