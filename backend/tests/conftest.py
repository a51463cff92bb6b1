"""
Pytest configuration and fixtures.
"""

import sys
from pathlib import Path

# Add the backend directory to Python path
sys.path.insert(0, str(Path(__file__).parent.parent))

import pytest
from fastapi.testclient import TestClient
from langchain_core.messages import AIMessage
from unittest.mock import AsyncMock, MagicMock

from agent.config import AgentConfig
from agent.graph import LeagueAgent
from agent.tools.executor import ToolExecutor
from api.dependencies import get_optional_agent
from api.main import app
from db.queries import LeagueDatabase
from db.reference import ReferenceIndex

REFERENCE_DIR = Path(__file__).parent / "fixtures" / "reference"

BRANDS_HATCH = 1534602052
SPA = -171682166
GT3 = -112887377
P4 = -1710882048
ALPINE_A424 = -1404454397


class ScriptedRouter:
    """Stands in for LLMRouter: returns queued replies and records what it was sent."""

    def __init__(self, replies):
        self.replies = list(replies)
        self.calls = []

    async def ainvoke(self, messages, tools=None, **kwargs):
        self.calls.append({"messages": list(messages), "tools": tools})
        reply = self.replies.pop(0)
        if isinstance(reply, BaseException):
            raise reply
        return reply

    def get_available_providers(self):
        return []


def tool_call_reply(*calls, content=""):
    """AIMessage requesting calls given as (id, name, args) tuples."""
    return AIMessage(
        content=content,
        tool_calls=[{"id": call_id, "name": name, "args": args} for call_id, name, args in calls],
    )


@pytest.fixture
def client():
    """Create a test client for the FastAPI app."""
    return TestClient(app)


@pytest.fixture
def reference():
    """ReferenceIndex loaded from the fixture catalogs."""
    return ReferenceIndex(REFERENCE_DIR)


@pytest.fixture
def mock_conn():
    """Mock asyncpg connection returning no rows."""
    conn = AsyncMock()
    conn.fetch = AsyncMock(return_value=[])
    conn.fetchrow = AsyncMock(return_value=None)
    conn.fetchval = AsyncMock(return_value=1)
    return conn


@pytest.fixture
def mock_db_pool(mock_conn):
    """Create a mock database connection pool."""
    mock_pool = MagicMock()
    mock_pool.acquire = MagicMock(
        return_value=AsyncMock(
            __aenter__=AsyncMock(return_value=mock_conn),
            __aexit__=AsyncMock(return_value=False),
        )
    )
    mock_pool.close = AsyncMock()
    return mock_pool


@pytest.fixture
def league_db(mock_db_pool, reference):
    """LeagueDatabase over the mock pool and fixture reference data."""
    return LeagueDatabase(mock_db_pool, reference)


@pytest.fixture
def mock_database(reference):
    """Stand-in LeagueDatabase whose query methods are AsyncMocks returning nothing."""
    database = MagicMock(spec=LeagueDatabase)
    database.reference = reference
    for name in (
        "recent_races",
        "all_races",
        "recent_winners",
        "lap_times",
        "driver_race_history",
        "search_drivers",
        "league_standings",
        "active_leagues",
        "completed_leagues",
        "championship_winners",
    ):
        setattr(database, name, AsyncMock(return_value=[]))
    for name in ("race_results", "driver_stats", "most_recent_league", "league_details"):
        setattr(database, name, AsyncMock(return_value=None))
    database.head_to_head = AsyncMock(return_value={})
    database.championship_stats = AsyncMock(return_value={})
    database.ping = AsyncMock(return_value=True)
    database.close = AsyncMock()
    return database


@pytest.fixture
def executor(mock_database):
    return ToolExecutor(mock_database)


@pytest.fixture
def make_agent(executor):
    """Build a LeagueAgent around scripted model replies."""

    def _make(replies, **config_overrides):
        router = ScriptedRouter(replies)
        agent = LeagueAgent(router, executor, AgentConfig(**config_overrides))
        return agent, router

    return _make


@pytest.fixture
def api_agent(make_agent):
    """Install a scripted agent into the app for the duration of a test."""
    installed = []

    def _install(replies, **config_overrides):
        agent, router = make_agent(replies, **config_overrides)
        app.dependency_overrides[get_optional_agent] = lambda: agent
        installed.append(agent)
        return agent, router

    yield _install
    app.dependency_overrides.clear()
