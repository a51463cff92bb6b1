"""Pydantic schemas shared by the agent."""

from agent.schemas.tools import ToolCall, ToolResult

__all__ = [
    "ToolCall",
    "ToolResult",
]
