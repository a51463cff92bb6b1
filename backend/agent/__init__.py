"""
League Assistant Agent

LangGraph-based conversational agent for a sim racing league.

Architecture:
MODEL → TOOLS → MODEL → ... → END
          ↓
    [round limit if the model keeps requesting calls]
"""

from agent.config import AgentConfig
from agent.graph import LeagueAgent, create_agent, create_agent_graph, get_agent
from agent.llm import LLMConfig, LLMProvider, LLMRouter
from agent.state import ConversationState, TurnResult, create_initial_state

__all__ = [
    # Agent
    "AgentConfig",
    "LeagueAgent",
    "create_agent",
    "create_agent_graph",
    "get_agent",
    # State
    "ConversationState",
    "TurnResult",
    "create_initial_state",
    # LLM
    "LLMRouter",
    "LLMConfig",
    "LLMProvider",
]
