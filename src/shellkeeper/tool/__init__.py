"""Tool system — base classes and registry."""

from shellkeeper.tool.base import BaseTool, ToolError, ToolOk, ToolResult
from shellkeeper.tool.registry import ToolRegistry

__all__ = [
    "BaseTool",
    "ToolResult",
    "ToolOk",
    "ToolError",
    "ToolRegistry",
]
