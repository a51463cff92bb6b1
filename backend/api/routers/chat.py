"""
Chat router - Handles conversation endpoints.
"""

import logging
import uuid

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from agent.graph import LeagueAgent
from agent.state import TurnResult
from api.dependencies import get_league_agent

router = APIRouter()
logger = logging.getLogger(__name__)


class ChatMessage(BaseModel):
    """Chat message from a user."""

    content: str
    author: str
    conversation_id: str | None = None


class ChatResponse(BaseModel):
    """Reply produced for one turn."""

    content: str
    conversation_id: str
    intermediate: str | None = None
    rounds: int = 0
    error: str | None = None

    @classmethod
    def from_turn(cls, conversation_id: str, result: TurnResult) -> "ChatResponse":
        return cls(
            content=result.final_text,
            conversation_id=conversation_id,
            intermediate=result.intermediate_text,
            rounds=result.rounds,
            error=result.error,
        )


@router.post("/", response_model=ChatResponse)
async def chat(message: ChatMessage, agent: LeagueAgent = Depends(get_league_agent)):
    """
    Send a message and get a response.

    Failures inside the turn come back as a normal reply with ``error`` set.
    """
    conversation_id = message.conversation_id or str(uuid.uuid4())

    result = await agent.handle_user_turn(
        conversation_id=conversation_id,
        author=message.author,
        text=message.content,
    )
    if result.error:
        logger.warning(f"Turn in {conversation_id} ended with {result.error}")

    return ChatResponse.from_turn(conversation_id, result)


@router.post("/{conversation_id}/reset")
async def reset_conversation(conversation_id: str, agent: LeagueAgent = Depends(get_league_agent)):
    """Forget a conversation's history."""
    await agent.reset_conversation(conversation_id)
    return {"status": "reset", "conversation_id": conversation_id}
