"""
Announcements router - Race summaries and league updates for the channel.
"""

import logging

from fastapi import APIRouter, Depends, Query

from agent.graph import LeagueAgent
from api.dependencies import get_league_agent
from api.routers.chat import ChatResponse

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/race-summary/{race_id}", response_model=ChatResponse)
async def race_summary(
    race_id: int,
    with_league: bool = Query(False, alias="with-league"),
    conversation_id: str | None = None,
    agent: LeagueAgent = Depends(get_league_agent),
):
    """Write a summary of a finished race, optionally with championship context."""
    conversation_id = conversation_id or agent.config.announcement_conversation
    result = await agent.summarize_race(conversation_id, race_id, with_league=with_league)
    return ChatResponse.from_turn(conversation_id, result)


@router.post("/league-update", response_model=ChatResponse)
async def league_update(
    conversation_id: str | None = None,
    agent: LeagueAgent = Depends(get_league_agent),
):
    """Write an update on the current championship."""
    conversation_id = conversation_id or agent.config.announcement_conversation
    result = await agent.league_update(conversation_id)
    return ChatResponse.from_turn(conversation_id, result)
