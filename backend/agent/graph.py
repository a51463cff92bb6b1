"""
Agent Graph

LangGraph definition of the league assistant's tool-calling loop.

Architecture:
MODEL → [tool calls?] → TOOLS → MODEL → ... → END
          ↓
    [round limit reached with calls pending] → ROUND_LIMIT → END

Nodes:
- MODEL: One model round trip with the function catalog bound
- TOOLS: Run every requested call concurrently, one tool message per call
- ROUND_LIMIT: Flag the turn so it is finalized without further calls

LeagueAgent wraps the compiled graph with per-conversation history, locking,
the turn time budget and the user-visible fallbacks.
"""

import asyncio
import logging
import weakref
from collections import OrderedDict
from functools import partial
from typing import Any, Awaitable, Callable

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage
from langgraph.graph import END, StateGraph

from agent.config import AgentConfig
from agent.errors import AgentError, EmptyResponseError, ErrorCode
from agent.llm import LLMConfig, LLMRouter, create_llm_router
from agent.nodes import call_model, execute_tools, mark_round_limit, message_text, should_continue
from agent.processors.sanitize import sanitize_response
from agent.prompts import (
    LEAGUE_UPDATE_PROMPT,
    RACE_SUMMARY_LEAGUE_SUFFIX,
    RACE_SUMMARY_PROMPT,
    SYSTEM_INSTRUCTIONS,
)
from agent.state import ConversationState, TurnResult, create_initial_state
from agent.tools.executor import ToolExecutor
from db.queries import LeagueDatabase
from db.reference import ReferenceIndex
from observability.sentry_integration import capture_exception

logger = logging.getLogger(__name__)

APOLOGY_MESSAGE = "Sorry, I'm having technical difficulties at the moment."
EMPTY_RESPONSE_MESSAGE = "I've got nothing to say about that. Try asking me something else."
ROUND_LIMIT_MESSAGE = "I couldn't pull all of that together. Ask me something a bit narrower."
TIMEOUT_MESSAGE = "That took far too long to dig out. Try me again in a moment."

NarrationCallback = Callable[[str], Awaitable[None]]


def create_agent_graph(
    llm_router: LLMRouter,
    executor: ToolExecutor,
    max_rounds: int = 6,
    system_prompt: str = SYSTEM_INSTRUCTIONS,
):
    """
    Create the league assistant graph.

    Args:
        llm_router: Router used for every model round
        executor: Executor for the calls the model requests
        max_rounds: Model rounds allowed per user turn
        system_prompt: Instructions prepended to every model call

    Returns:
        Compiled LangGraph StateGraph
    """
    tool_specs = executor.tool_specs()

    graph = StateGraph(ConversationState)

    graph.add_node(
        "model",
        partial(
            _model_node,
            llm_router=llm_router,
            tool_specs=tool_specs,
            system_prompt=system_prompt,
        ),
    )
    graph.add_node("tools", partial(_tools_node, executor=executor))
    graph.add_node("round_limit", mark_round_limit)

    graph.set_entry_point("model")

    graph.add_conditional_edges(
        "model",
        partial(should_continue, max_rounds=max_rounds),
        {
            "tools": "tools",
            "round_limit": "round_limit",
            END: END,
        },
    )
    graph.add_edge("tools", "model")
    graph.add_edge("round_limit", END)

    logger.info(f"Agent graph created with {len(tool_specs)} functions, max {max_rounds} rounds")
    return graph.compile()


async def _model_node(
    state: ConversationState,
    llm_router: LLMRouter,
    tool_specs: list[dict],
    system_prompt: str,
) -> dict[str, Any]:
    """Wrapper for call_model node."""
    return await call_model(state, llm_router, tool_specs, system_prompt)


async def _tools_node(state: ConversationState, executor: ToolExecutor) -> dict[str, Any]:
    """Wrapper for execute_tools node."""
    return await execute_tools(state, executor)


class LeagueAgent:
    """
    High-level interface for the league assistant.

    Keeps one message history per conversation id. Turns of the same
    conversation run one at a time; different conversations run
    independently. History is only written after a turn succeeds.
    """

    def __init__(
        self,
        llm_router: LLMRouter,
        executor: ToolExecutor,
        config: AgentConfig | None = None,
        system_prompt: str = SYSTEM_INSTRUCTIONS,
    ):
        self.config = config or AgentConfig()
        self.llm_router = llm_router
        self.executor = executor
        self.graph = create_agent_graph(
            llm_router,
            executor,
            max_rounds=self.config.max_rounds,
            system_prompt=system_prompt,
        )
        # Least recently used first; capped at config.max_conversations
        self._histories: OrderedDict[str, list[BaseMessage]] = OrderedDict()
        # Entries vanish once no turn holds or waits on the lock
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

        logger.info(
            f"LeagueAgent initialized (max_rounds={self.config.max_rounds}, "
            f"turn_timeout={self.config.turn_timeout}s, max_history={self.config.max_history})"
        )

    @property
    def database(self) -> LeagueDatabase:
        return self.executor.database

    def _lock_for(self, conversation_id: str) -> asyncio.Lock:
        lock = self._locks.get(conversation_id)
        if lock is None:
            lock = self._locks[conversation_id] = asyncio.Lock()
        return lock

    async def handle_user_turn(
        self,
        conversation_id: str,
        author: str,
        text: str,
        narration_callback: NarrationCallback | None = None,
    ) -> TurnResult:
        """
        Process a chat message and produce the reply.

        Args:
            conversation_id: Conversation the message belongs to
            author: Display name of the sender
            text: Message text
            narration_callback: Optional async callback receiving text the
                model wrote alongside tool calls, as it arrives

        Returns:
            TurnResult with the final text and any intermediate narration
        """
        return await self._run_turn(conversation_id, f"{author} >> {text}", narration_callback)

    async def summarize_race(
        self,
        conversation_id: str,
        race_id: int,
        with_league: bool = False,
    ) -> TurnResult:
        """Ask for a channel announcement about a finished race."""
        prompt = RACE_SUMMARY_PROMPT.format(race_id=race_id)
        if with_league:
            prompt += RACE_SUMMARY_LEAGUE_SUFFIX
        logger.info(f"Race summary requested for race {race_id} (with_league={with_league})")
        return await self._run_turn(conversation_id, prompt, None)

    async def league_update(self, conversation_id: str) -> TurnResult:
        """Ask for a channel announcement about the current championship."""
        logger.info("League update requested")
        return await self._run_turn(conversation_id, LEAGUE_UPDATE_PROMPT, None)

    async def reset_conversation(self, conversation_id: str) -> None:
        """Forget a conversation's history."""
        async with self._lock_for(conversation_id):
            if self._histories.pop(conversation_id, None) is not None:
                logger.info(f"Cleared conversation {conversation_id}")

    def get_history(self, conversation_id: str) -> list[BaseMessage]:
        """Copy of the committed history for a conversation."""
        return list(self._histories.get(conversation_id, []))

    async def _run_turn(
        self,
        conversation_id: str,
        content: str,
        narration_callback: NarrationCallback | None,
    ) -> TurnResult:
        async with self._lock_for(conversation_id):
            history = self.get_history(conversation_id)
            state = create_initial_state(
                conversation_id,
                [*history, HumanMessage(content=content)],
            )
            logger.info(f"Processing turn in conversation {conversation_id}")

            try:
                result = await asyncio.wait_for(
                    self._stream(state, narration_callback),
                    timeout=self.config.turn_timeout,
                )
            except asyncio.TimeoutError:
                logger.warning(
                    f"Turn in conversation {conversation_id} exceeded {self.config.turn_timeout}s"
                )
                return TurnResult(final_text=TIMEOUT_MESSAGE, error=ErrorCode.TURN_TIMEOUT.value)
            except Exception as e:
                # Sentry receives this through capture_exception only
                logger.warning(f"Chat error in conversation {conversation_id}: {e}", exc_info=True)
                capture_exception(
                    e,
                    extra={"conversation_id": conversation_id},
                    tags={"component": "orchestrator"},
                )
                code = e.code if isinstance(e, AgentError) else ErrorCode.MODEL_ERROR
                return TurnResult(final_text=APOLOGY_MESSAGE, error=code.value)

            try:
                return self._finalize(conversation_id, result)
            except EmptyResponseError as e:
                logger.warning(f"{e} (conversation {conversation_id})")
                return TurnResult(
                    final_text=EMPTY_RESPONSE_MESSAGE,
                    intermediate_text=_join(_narration(result)),
                    rounds=result.get("rounds", 0),
                    error=e.code.value,
                )

    async def _stream(
        self,
        state: ConversationState,
        narration_callback: NarrationCallback | None,
    ) -> dict[str, Any]:
        """Run the graph, forwarding narration as each round produces it."""
        # Each round is a model step plus a tools step
        config = {"recursion_limit": 2 * self.config.max_rounds + 4}

        result: dict[str, Any] = dict(state)
        async for mode, chunk in self.graph.astream(
            state,
            config=config,
            stream_mode=["updates", "values"],
        ):
            if mode == "values":
                result = chunk
                continue
            for node_output in chunk.values():
                for text in (node_output or {}).get("narration", []):
                    await _narrate(narration_callback, text)
        return result

    def _finalize(self, conversation_id: str, result: dict[str, Any]) -> TurnResult:
        messages: list[BaseMessage] = list(result["messages"])
        rounds = result.get("rounds", 0)
        narration = _narration(result)

        final_text = sanitize_response(message_text(messages[-1]))

        if result.get("round_limit_hit"):
            # The last reply still asks for calls; close the turn on its text
            if final_text and narration and narration[-1] == final_text:
                narration.pop()
            final_text = final_text or ROUND_LIMIT_MESSAGE
            messages[-1] = AIMessage(content=final_text)
        elif not final_text:
            raise EmptyResponseError(f"Empty reply after {rounds} round(s)")

        self._commit(conversation_id, self._trim(messages))
        logger.info(f"Turn in conversation {conversation_id} finished after {rounds} round(s)")

        return TurnResult(
            final_text=final_text,
            intermediate_text=_join(narration),
            rounds=rounds,
        )

    def _commit(self, conversation_id: str, messages: list[BaseMessage]) -> None:
        self._histories[conversation_id] = messages
        self._histories.move_to_end(conversation_id)

        limit = self.config.max_conversations
        while limit and len(self._histories) > limit:
            evicted, _ = self._histories.popitem(last=False)
            logger.info(f"Dropped idle conversation {evicted}")

    def _trim(self, messages: list[BaseMessage]) -> list[BaseMessage]:
        """Drop the oldest whole user turns until the history fits."""
        limit = self.config.max_history
        if not limit or len(messages) <= limit:
            return messages

        starts = [i for i, m in enumerate(messages) if isinstance(m, HumanMessage)]
        for start in starts:
            if len(messages) - start <= limit:
                return messages[start:]
        # The latest turn alone is over the limit; keep it whole
        return messages[starts[-1]:] if starts else messages


def _narration(result: dict[str, Any]) -> list[str]:
    return [t for t in (sanitize_response(n) for n in result.get("narration", [])) if t]


def _join(narration: list[str]) -> str | None:
    return "\n".join(narration) or None


async def _narrate(callback: NarrationCallback | None, text: str) -> None:
    text = sanitize_response(text)
    if not callback or not text:
        return
    try:
        await callback(text)
    except Exception as e:
        logger.debug(f"Narration callback error: {e}")


async def create_agent(
    config: AgentConfig | None = None,
    llm_config: LLMConfig | None = None,
) -> LeagueAgent:
    """
    Build the agent with its reference data, database pool and LLM router.

    Args:
        config: Agent configuration (uses env vars if not provided)
        llm_config: LLM configuration (uses env vars if not provided)

    Returns:
        LeagueAgent instance
    """
    config = config or AgentConfig.from_env()

    reference = ReferenceIndex(config.reference_data_dir)
    logger.info(f"Reference data loaded: {reference.counts()}")

    database = await LeagueDatabase.connect(
        config.database_url,
        reference,
        max_size=config.db_pool_size,
    )
    executor = ToolExecutor(database, call_timeout=config.tool_timeout)

    return LeagueAgent(create_llm_router(llm_config), executor, config)


# Singleton agent instance (initialized on first use)
_agent: LeagueAgent | None = None


async def get_agent() -> LeagueAgent:
    """Get or create the singleton LeagueAgent instance."""
    global _agent
    if _agent is None:
        _agent = await create_agent()
    return _agent


async def shutdown_agent() -> None:
    """Close the singleton's database pool and forget it."""
    global _agent
    if _agent is not None:
        await _agent.database.close()
        _agent = None
