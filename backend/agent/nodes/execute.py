"""EXECUTE node - Run the model's requested calls in parallel."""

import json
import logging
from typing import Any

from langchain_core.messages import ToolMessage

from agent.schemas.tools import ToolCall
from agent.tools.executor import ToolExecutor
from observability.sentry_integration import add_breadcrumb

logger = logging.getLogger(__name__)


async def execute_tools(state: dict, executor: ToolExecutor) -> dict[str, Any]:
    """
    EXECUTE node: run every call requested in the last model reply.

    All calls run concurrently; the round finishes once each has settled.
    One tool message per call is appended, correlated by call id, with
    content ``{"name": ..., "content": ...}``.

    Args:
        state: Current state whose last message is the model's reply
        executor: Tool executor bound to the league database

    Returns:
        Updated state with tool messages
    """
    reply = state["messages"][-1]
    calls = [
        ToolCall(
            id=tc.get("id") or f"call_{state.get('rounds', 0)}_{i}",
            name=tc["name"],
            args=tc.get("args") or {},
        )
        for i, tc in enumerate(reply.tool_calls)
    ]

    add_breadcrumb(
        message=f"Executing {len(calls)} tool call(s)",
        category="tool",
        data={"round": state.get("rounds", 0), "calls": [call.name for call in calls]},
    )
    results = await executor.execute_all(calls)

    failed = [r.name for r in results if not r.ok]
    if failed:
        logger.warning(f"{len(failed)} call(s) returned errors: {failed}")

    return {
        "messages": [
            ToolMessage(
                content=json.dumps(result.response(), default=str),
                tool_call_id=result.call_id,
                name=result.name,
                status="success" if result.ok else "error",
            )
            for result in results
        ]
    }
