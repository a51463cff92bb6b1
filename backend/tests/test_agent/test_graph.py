"""
Tests for the conversation loop: rounds, narration, limits and history.
"""

import asyncio
import gc
import json
import logging
from unittest.mock import patch

import pytest
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage, ToolMessage

from agent.graph import (
    APOLOGY_MESSAGE,
    EMPTY_RESPONSE_MESSAGE,
    ROUND_LIMIT_MESSAGE,
    TIMEOUT_MESSAGE,
)
from agent.prompts import SYSTEM_INSTRUCTIONS

from conftest import tool_call_reply


class TestSingleRound:
    """Tests for turns answered without tool calls."""

    @pytest.mark.asyncio
    async def test_text_reply_finishes_in_one_round(self, make_agent):
        agent, router = make_agent([AIMessage(content="Bloody awful driving.")])

        result = await agent.handle_user_turn("general", "alice", "how was the race?")

        assert result.final_text == "Bloody awful driving."
        assert result.intermediate_text is None
        assert result.rounds == 1
        assert result.error is None
        assert len(router.calls) == 1

    @pytest.mark.asyncio
    async def test_author_prefix_and_system_prompt(self, make_agent):
        agent, router = make_agent([AIMessage(content="Hello.")])

        await agent.handle_user_turn("general", "alice", "hi")

        sent = router.calls[0]["messages"]
        assert isinstance(sent[0], SystemMessage)
        assert sent[0].content == SYSTEM_INSTRUCTIONS
        assert sent[-1].content == "alice >> hi"
        assert router.calls[0]["tools"]

    @pytest.mark.asyncio
    async def test_system_prompt_not_stored(self, make_agent):
        agent, _ = make_agent([AIMessage(content="Hello.")])

        await agent.handle_user_turn("general", "alice", "hi")

        history = agent.get_history("general")
        assert [type(m) for m in history] == [HumanMessage, AIMessage]

    @pytest.mark.asyncio
    async def test_reply_is_sanitized(self, make_agent):
        agent, _ = make_agent([AIMessage(content='  "Rubbish, all of it."  ')])

        result = await agent.handle_user_turn("general", "alice", "thoughts?")
        assert result.final_text == "Rubbish, all of it."

    @pytest.mark.asyncio
    async def test_text_parts_are_joined(self, make_agent):
        agent, _ = make_agent([
            AIMessage(content=[{"type": "text", "text": "Part one. "}, {"type": "text", "text": "Part two."}])
        ])

        result = await agent.handle_user_turn("general", "alice", "go on")
        assert result.final_text == "Part one. Part two."


class TestToolRounds:
    """Tests for turns that call functions."""

    @pytest.mark.asyncio
    async def test_tool_results_fed_back(self, make_agent, mock_database):
        mock_database.recent_races.return_value = [{"id": 77, "track_name": "Spa-Francorchamps GP"}]
        agent, router = make_agent([
            tool_call_reply(("call_1", "get_recent_races", {"limit": 1})),
            AIMessage(content="Spa. Dreadful."),
        ])

        result = await agent.handle_user_turn("general", "alice", "last race?")

        assert result.final_text == "Spa. Dreadful."
        assert result.rounds == 2
        mock_database.recent_races.assert_awaited_once_with(1, None)

        tool_message = router.calls[1]["messages"][-1]
        assert isinstance(tool_message, ToolMessage)
        assert tool_message.tool_call_id == "call_1"
        assert json.loads(tool_message.content) == {
            "name": "get_recent_races",
            "content": [{"id": 77, "track_name": "Spa-Francorchamps GP"}],
        }

    @pytest.mark.asyncio
    async def test_parallel_calls_one_message_each(self, make_agent, mock_database):
        mock_database.race_results.side_effect = RuntimeError("boom")
        agent, router = make_agent([
            tool_call_reply(
                ("a", "get_race_results", {"race_id": 1}),
                ("b", "get_active_leagues", {}),
            ),
            AIMessage(content="Done."),
        ])

        await agent.handle_user_turn("general", "alice", "everything")

        tool_messages = [m for m in router.calls[1]["messages"] if isinstance(m, ToolMessage)]
        assert [m.tool_call_id for m in tool_messages] == ["a", "b"]
        assert json.loads(tool_messages[0].content)["content"]["code"] == "EXECUTION_FAILED"
        assert json.loads(tool_messages[1].content)["content"] == []

    @pytest.mark.asyncio
    async def test_narration_surfaced_before_final(self, make_agent):
        agent, _ = make_agent([
            tool_call_reply(("c1", "get_active_leagues", {}), content="Let me dig that out."),
            tool_call_reply(("c2", "get_completed_leagues", {}), content="And the old ones."),
            AIMessage(content="Here you go."),
        ])
        narrated = []

        async def on_narration(text):
            narrated.append(text)

        result = await agent.handle_user_turn(
            "general", "alice", "leagues?", narration_callback=on_narration
        )

        assert narrated == ["Let me dig that out.", "And the old ones."]
        assert result.intermediate_text == "Let me dig that out.\nAnd the old ones."
        assert result.final_text == "Here you go."
        assert result.rounds == 3

    @pytest.mark.asyncio
    async def test_failing_narration_callback_is_ignored(self, make_agent):
        agent, _ = make_agent([
            tool_call_reply(("c1", "get_active_leagues", {}), content="Checking."),
            AIMessage(content="Nothing running."),
        ])

        async def broken(text):
            raise ConnectionError("channel gone")

        result = await agent.handle_user_turn("general", "alice", "?", narration_callback=broken)
        assert result.final_text == "Nothing running."

    @pytest.mark.asyncio
    async def test_unknown_function_reported_to_model(self, make_agent):
        agent, router = make_agent([
            tool_call_reply(("c1", "get_weather", {})),
            AIMessage(content="No idea about the weather."),
        ])

        result = await agent.handle_user_turn("general", "alice", "rain?")

        assert result.final_text == "No idea about the weather."
        content = json.loads(router.calls[1]["messages"][-1].content)["content"]
        assert content["error"] == "unknown function: get_weather"


class TestRoundLimit:
    """Tests for turns where the model keeps requesting calls."""

    @pytest.mark.asyncio
    async def test_round_limit_uses_last_text(self, make_agent):
        agent, router = make_agent(
            [
                tool_call_reply(("c1", "get_active_leagues", {})),
                tool_call_reply(("c2", "get_active_leagues", {}), content="Still looking."),
            ],
            max_rounds=2,
        )

        result = await agent.handle_user_turn("general", "alice", "loop forever")

        assert len(router.calls) == 2
        assert result.final_text == "Still looking."
        assert result.intermediate_text is None
        assert result.rounds == 2

        last = agent.get_history("general")[-1]
        assert isinstance(last, AIMessage)
        assert not last.tool_calls

    @pytest.mark.asyncio
    async def test_round_limit_generic_fallback(self, make_agent):
        agent, _ = make_agent(
            [tool_call_reply(("c1", "get_active_leagues", {}))],
            max_rounds=1,
        )

        result = await agent.handle_user_turn("general", "alice", "loop")

        assert result.final_text == ROUND_LIMIT_MESSAGE
        assert agent.get_history("general")[-1].content == ROUND_LIMIT_MESSAGE


class TestFailures:
    """Tests for model errors, empty replies and timeouts."""

    @pytest.mark.asyncio
    async def test_model_error_apology_and_history_unchanged(self, make_agent):
        agent, _ = make_agent([
            AIMessage(content="First answer."),
            RuntimeError("quota exceeded"),
        ])
        await agent.handle_user_turn("general", "alice", "one")
        before = agent.get_history("general")

        with patch("agent.graph.capture_exception") as capture:
            result = await agent.handle_user_turn("general", "alice", "two")

        assert result.final_text == APOLOGY_MESSAGE
        assert result.error == "MODEL_ERROR"
        assert agent.get_history("general") == before
        capture.assert_called_once()

    @pytest.mark.asyncio
    async def test_model_error_logged_below_error_level(self, make_agent, caplog):
        agent, _ = make_agent([RuntimeError("quota exceeded")])

        with patch("agent.graph.capture_exception") as capture, caplog.at_level(logging.INFO):
            await agent.handle_user_turn("general", "alice", "one")

        capture.assert_called_once()
        assert not [r for r in caplog.records if r.levelno >= logging.ERROR]

    @pytest.mark.asyncio
    async def test_model_error_after_tool_round(self, make_agent):
        agent, _ = make_agent([
            tool_call_reply(("c1", "get_active_leagues", {})),
            RuntimeError("connection reset"),
        ])

        result = await agent.handle_user_turn("general", "alice", "leagues")

        assert result.final_text == APOLOGY_MESSAGE
        assert agent.get_history("general") == []

    @pytest.mark.asyncio
    async def test_empty_reply(self, make_agent):
        agent, _ = make_agent([AIMessage(content='""')])

        result = await agent.handle_user_turn("general", "alice", "say nothing")

        assert result.final_text == EMPTY_RESPONSE_MESSAGE
        assert result.error == "EMPTY_RESPONSE"
        assert agent.get_history("general") == []

    @pytest.mark.asyncio
    async def test_turn_timeout(self, make_agent):
        agent, router = make_agent([], turn_timeout=0.05)

        async def hang(messages, tools=None, **kwargs):
            await asyncio.sleep(1)

        router.ainvoke = hang

        result = await agent.handle_user_turn("general", "alice", "slow")

        assert result.final_text == TIMEOUT_MESSAGE
        assert result.error == "TURN_TIMEOUT"
        assert agent.get_history("general") == []


class TestConversations:
    """Tests for per-conversation history."""

    @pytest.mark.asyncio
    async def test_conversations_are_isolated(self, make_agent):
        agent, router = make_agent([
            AIMessage(content="A1"),
            AIMessage(content="B1"),
            AIMessage(content="A2"),
        ])

        await agent.handle_user_turn("a", "alice", "first")
        await agent.handle_user_turn("b", "bob", "other")
        await agent.handle_user_turn("a", "alice", "second")

        contents = [m.content for m in router.calls[2]["messages"][1:]]
        assert contents == ["alice >> first", "A1", "alice >> second"]

    @pytest.mark.asyncio
    async def test_reset_only_affects_one_conversation(self, make_agent):
        agent, _ = make_agent([AIMessage(content="A"), AIMessage(content="B")])
        await agent.handle_user_turn("a", "alice", "x")
        await agent.handle_user_turn("b", "bob", "y")

        await agent.reset_conversation("a")

        assert agent.get_history("a") == []
        assert len(agent.get_history("b")) == 2

    @pytest.mark.asyncio
    async def test_reset_replays_turn_without_history(self, make_agent):
        agent, router = make_agent([AIMessage(content="Hunt."), AIMessage(content="Still Hunt.")])
        await agent.handle_user_turn("general", "alice", "who won?")

        await agent.reset_conversation("general")
        await agent.handle_user_turn("general", "alice", "who won?")

        sent = router.calls[1]["messages"]
        assert [type(m) for m in sent] == [SystemMessage, HumanMessage]
        assert sent[1].content == "alice >> who won?"

    @pytest.mark.asyncio
    async def test_least_recently_used_conversation_dropped(self, make_agent):
        agent, _ = make_agent(
            [AIMessage(content="A"), AIMessage(content="B"), AIMessage(content="A2"), AIMessage(content="C")],
            max_conversations=2,
        )
        await agent.handle_user_turn("a", "alice", "x")
        await agent.handle_user_turn("b", "bob", "y")
        await agent.handle_user_turn("a", "alice", "x again")
        await agent.handle_user_turn("c", "carol", "z")

        assert agent.get_history("b") == []
        assert len(agent.get_history("a")) == 4
        assert len(agent.get_history("c")) == 2

    @pytest.mark.asyncio
    async def test_locks_released_after_turns(self, make_agent):
        agent, _ = make_agent([AIMessage(content="A")])

        await agent.handle_user_turn("one-off", "alice", "x")
        gc.collect()

        assert "one-off" not in agent._locks

    @pytest.mark.asyncio
    async def test_concurrent_turns_in_one_conversation_are_serialized(self, make_agent):
        agent, _ = make_agent([AIMessage(content="one"), AIMessage(content="two")])

        await asyncio.gather(
            agent.handle_user_turn("general", "alice", "x"),
            agent.handle_user_turn("general", "bob", "y"),
        )

        history = agent.get_history("general")
        assert [type(m) for m in history] == [HumanMessage, AIMessage, HumanMessage, AIMessage]

    @pytest.mark.asyncio
    async def test_history_trimmed_by_whole_turns(self, make_agent, mock_database):
        agent, _ = make_agent(
            [
                tool_call_reply(("c1", "get_active_leagues", {})),
                AIMessage(content="T1"),
                AIMessage(content="T2"),
                AIMessage(content="T3"),
            ],
            max_history=4,
        )

        for text in ("one", "two", "three"):
            await agent.handle_user_turn("general", "alice", text)

        history = agent.get_history("general")
        assert [m.content for m in history] == ["alice >> two", "T2", "alice >> three", "T3"]
        assert isinstance(history[0], HumanMessage)


class TestAnnouncements:
    """Tests for race summaries and league updates."""

    @pytest.mark.asyncio
    async def test_summarize_race(self, make_agent):
        agent, router = make_agent([AIMessage(content="Shambles.")])

        result = await agent.summarize_race("channel", 1234)

        prompt = router.calls[0]["messages"][-1].content
        assert "1234" in prompt
        assert ">>" not in prompt
        assert "standings" not in prompt
        assert result.final_text == "Shambles."

    @pytest.mark.asyncio
    async def test_summarize_race_with_league(self, make_agent):
        agent, router = make_agent([AIMessage(content="Shambles.")])

        await agent.summarize_race("channel", 1234, with_league=True)

        assert "standings" in router.calls[0]["messages"][-1].content

    @pytest.mark.asyncio
    async def test_league_update_shares_conversation(self, make_agent):
        agent, router = make_agent([AIMessage(content="Hunt leads."), AIMessage(content="Yes.")])

        await agent.league_update("channel")
        await agent.handle_user_turn("channel", "alice", "really?")

        assert router.calls[1]["messages"][2].content == "Hunt leads."
