"""LLM prompts for the league assistant."""

from agent.prompts.system import (
    BOT_NAME,
    LEAGUE_UPDATE_PROMPT,
    RACE_SUMMARY_LEAGUE_SUFFIX,
    RACE_SUMMARY_PROMPT,
    SYSTEM_INSTRUCTIONS,
)

__all__ = [
    "BOT_NAME",
    "LEAGUE_UPDATE_PROMPT",
    "RACE_SUMMARY_LEAGUE_SUFFIX",
    "RACE_SUMMARY_PROMPT",
    "SYSTEM_INSTRUCTIONS",
]
