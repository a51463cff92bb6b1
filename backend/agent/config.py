"""
Agent configuration.

Values come from environment variables; every field has a default so the
agent can be built in tests without any environment.
"""

import os
from dataclasses import dataclass


def _env_int(name: str, default: int | None) -> int | None:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return float(raw)


@dataclass
class AgentConfig:
    """Settings for the database, reference data and conversation loop."""

    database_url: str = "postgresql://localhost:5432/league"
    db_pool_size: int = 3
    reference_data_dir: str = "data"

    # Conversation loop bounds
    max_rounds: int = 6
    turn_timeout: float = 90.0
    tool_timeout: float = 15.0
    # Messages kept per conversation (trimmed by whole user turns); None = unbounded
    max_history: int | None = 60
    # Conversations whose history is kept; the least recently used go first
    max_conversations: int | None = 500

    # Conversation that race summaries and league updates are posted to
    announcement_conversation: str = "league-channel"

    @classmethod
    def from_env(cls) -> "AgentConfig":
        defaults = cls()
        return cls(
            database_url=os.getenv("DATABASE_URL", defaults.database_url),
            db_pool_size=_env_int("DB_POOL_SIZE", defaults.db_pool_size),
            reference_data_dir=os.getenv("REFERENCE_DATA_DIR", defaults.reference_data_dir),
            max_rounds=_env_int("AGENT_MAX_ROUNDS", defaults.max_rounds),
            turn_timeout=_env_float("AGENT_TURN_TIMEOUT", defaults.turn_timeout),
            tool_timeout=_env_float("AGENT_TOOL_TIMEOUT", defaults.tool_timeout),
            max_history=_env_int("AGENT_MAX_HISTORY", defaults.max_history) or None,
            max_conversations=_env_int("AGENT_MAX_CONVERSATIONS", defaults.max_conversations) or None,
            announcement_conversation=os.getenv(
                "ANNOUNCEMENT_CONVERSATION_ID", defaults.announcement_conversation
            ),
        )
