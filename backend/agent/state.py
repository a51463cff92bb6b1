"""
Agent State Definition

State that flows through the conversation graph for one user turn, and the
result handed back to the caller.
"""

import operator
from dataclasses import dataclass
from typing import Annotated, TypedDict

from langchain_core.messages import BaseMessage
from langgraph.graph.message import add_messages


class ConversationState(TypedDict):
    """
    State for one user turn.

    ``messages`` starts as the stored history plus the new user message and
    grows by one model reply per round and one tool message per call.
    """

    # Conversation history (uses add_messages reducer for appending)
    messages: Annotated[list[BaseMessage], add_messages]

    # Text the model produced alongside tool calls, in order
    narration: Annotated[list[str], operator.add]

    # Loop bookkeeping
    rounds: int
    round_limit_hit: bool

    conversation_id: str


def create_initial_state(
    conversation_id: str,
    messages: list[BaseMessage],
) -> ConversationState:
    """Create the graph input for a new user turn."""
    return ConversationState(
        messages=messages,
        narration=[],
        rounds=0,
        round_limit_hit=False,
        conversation_id=conversation_id,
    )


@dataclass
class TurnResult:
    """What a user turn produced for the delivery surface."""

    final_text: str
    intermediate_text: str | None = None
    rounds: int = 0
    error: str | None = None
