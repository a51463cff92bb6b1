"""
Shared FastAPI dependencies.
"""

from fastapi import Depends, HTTPException, Request

from agent.graph import LeagueAgent


def get_optional_agent(request: Request) -> LeagueAgent | None:
    """The agent built at startup, or None if startup could not build it."""
    return getattr(request.app.state, "agent", None)


def get_league_agent(agent: LeagueAgent | None = Depends(get_optional_agent)) -> LeagueAgent:
    """The agent, or 503 when it is not available."""
    if agent is None:
        raise HTTPException(status_code=503, detail="Agent not initialized")
    return agent
