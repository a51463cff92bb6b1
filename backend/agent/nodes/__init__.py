"""Conversation graph nodes."""

from agent.nodes.execute import execute_tools
from agent.nodes.model import call_model, mark_round_limit, message_text, should_continue

__all__ = [
    "call_model",
    "execute_tools",
    "mark_round_limit",
    "message_text",
    "should_continue",
]
