"""MODEL node - One model round trip with the function catalog bound."""

import logging
from typing import Any

from langchain_core.messages import AIMessage, BaseMessage, SystemMessage
from langgraph.graph import END

from agent.errors import ModelError
from agent.llm import LLMRouter

logger = logging.getLogger(__name__)


def message_text(message: BaseMessage) -> str:
    """Plain text of a message whose content may be a list of parts."""
    content = message.content
    if isinstance(content, str):
        return content
    parts = []
    for part in content or []:
        if isinstance(part, str):
            parts.append(part)
        elif isinstance(part, dict) and part.get("type") == "text":
            parts.append(part.get("text", ""))
    return "".join(parts)


async def call_model(
    state: dict,
    llm_router: LLMRouter,
    tool_specs: list[dict],
    system_prompt: str,
) -> dict[str, Any]:
    """
    MODEL node: send the conversation so far and record the reply.

    Text that arrives together with tool calls is kept as narration so it can
    be shown before the final answer.

    Raises:
        ModelError: the round trip failed on every provider
    """
    messages = [SystemMessage(content=system_prompt), *state["messages"]]

    try:
        response = await llm_router.ainvoke(messages, tools=tool_specs)
    except Exception as e:
        raise ModelError(f"Model round trip failed: {e}") from e

    if not isinstance(response, AIMessage):
        raise ModelError(f"Unexpected model reply type: {type(response).__name__}")

    rounds = state.get("rounds", 0) + 1
    text = message_text(response)
    update: dict[str, Any] = {"messages": [response], "rounds": rounds}

    if response.tool_calls:
        logger.info(
            f"Round {rounds}: model requested {len(response.tool_calls)} call(s): "
            f"{[tc['name'] for tc in response.tool_calls]}"
        )
        if text.strip():
            update["narration"] = [text]
    else:
        logger.info(f"Round {rounds}: model replied with text ({len(text)} chars)")

    return update


def should_continue(state: dict, max_rounds: int) -> str:
    """
    Route after a model round.

    Returns:
        "tools" to run requested calls, "round_limit" when calls are still
        requested after ``max_rounds`` rounds, or END for a final reply.
    """
    last = state["messages"][-1]
    if isinstance(last, AIMessage) and last.tool_calls:
        if state.get("rounds", 0) >= max_rounds:
            logger.warning(f"Round limit ({max_rounds}) reached with calls still pending")
            return "round_limit"
        return "tools"
    return END


async def mark_round_limit(state: dict) -> dict[str, Any]:
    """ROUND_LIMIT node: flag the turn so the orchestrator finalizes it."""
    return {"round_limit_hit": True}
