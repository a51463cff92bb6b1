"""
Tests for tool execution: dispatch, validation, isolation and timeouts.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from agent.errors import CatalogMismatchError
from agent.schemas.tools import ToolCall
from agent.tools.catalog import FunctionCatalog
from agent.tools.executor import HANDLERS, ToolExecutor

from conftest import ALPINE_A424


class TestCoverage:
    """Tests for the catalog / handler 1:1 check."""

    def test_missing_handler(self, mock_database):
        handlers = {k: v for k, v in HANDLERS.items() if k != "search_tracks"}

        with pytest.raises(CatalogMismatchError) as exc_info:
            ToolExecutor(mock_database, handlers=handlers)

        assert exc_info.value.missing == {"search_tracks"}
        assert exc_info.value.orphaned == set()

    def test_orphaned_handler(self, mock_database):
        handlers = {**HANDLERS, "get_weather": AsyncMock()}

        with pytest.raises(CatalogMismatchError) as exc_info:
            ToolExecutor(mock_database, handlers=handlers)

        assert exc_info.value.orphaned == {"get_weather"}


class TestExecute:
    """Tests for single calls."""

    @pytest.mark.asyncio
    async def test_successful_call(self, executor, mock_database):
        mock_database.recent_races.return_value = [{"id": 1}]

        result = await executor.execute(
            ToolCall(id="c1", name="get_recent_races", args={"limit": 3})
        )

        assert result.ok
        assert result.call_id == "c1"
        assert result.response() == {"name": "get_recent_races", "content": [{"id": 1}]}
        mock_database.recent_races.assert_awaited_once_with(3, None)

    @pytest.mark.asyncio
    async def test_defaults_applied(self, executor, mock_database):
        await executor.execute(ToolCall(id="c1", name="get_recent_races", args={}))
        mock_database.recent_races.assert_awaited_once_with(5, None)

    @pytest.mark.asyncio
    async def test_unknown_function(self, executor):
        result = await executor.execute(ToolCall(id="c1", name="get_weather", args={}))

        assert not result.ok
        assert result.error == {"error": "unknown function: get_weather", "code": "UNKNOWN_FUNCTION"}
        assert result.response()["content"] == result.error

    @pytest.mark.asyncio
    async def test_invalid_arguments(self, executor, mock_database):
        result = await executor.execute(
            ToolCall(id="c1", name="get_race_results", args={"race_id": "last one"})
        )

        assert result.error["code"] == "INVALID_ARGUMENTS"
        assert "race_id" in result.error["error"]
        mock_database.race_results.assert_not_called()

    @pytest.mark.asyncio
    async def test_missing_required_argument(self, executor):
        result = await executor.execute(ToolCall(id="c1", name="get_head_to_head", args={"driver1": "hunt"}))
        assert result.error["code"] == "INVALID_ARGUMENTS"

    @pytest.mark.asyncio
    async def test_not_found_is_a_payload(self, executor, mock_database):
        mock_database.driver_stats.return_value = None

        result = await executor.execute(
            ToolCall(id="c1", name="get_driver_stats", args={"driver_name": "nobody"})
        )

        assert result.ok
        assert result.content["found"] is False
        assert "nobody" in result.content["message"]

    @pytest.mark.asyncio
    async def test_handler_exception(self, executor, mock_database):
        mock_database.league_standings.side_effect = RuntimeError("relation does not exist")

        result = await executor.execute(
            ToolCall(id="c1", name="get_league_standings", args={"league_id": 4})
        )

        assert result.error == {"error": "relation does not exist", "code": "EXECUTION_FAILED"}

    @pytest.mark.asyncio
    async def test_timeout(self, mock_database):
        async def slow(*args):
            await asyncio.sleep(1)

        mock_database.active_leagues.side_effect = slow
        executor = ToolExecutor(mock_database, call_timeout=0.01)

        result = await executor.execute(ToolCall(id="c1", name="get_active_leagues", args={}))

        assert result.error["code"] == "TOOL_TIMEOUT"

    @pytest.mark.asyncio
    async def test_format_lap_time(self, executor):
        result = await executor.execute(
            ToolCall(id="c1", name="format_lap_time", args={"milliseconds": 83456})
        )
        assert result.content == {"formatted_time": "1:23.456"}

    @pytest.mark.asyncio
    async def test_search_vehicles_uses_reference(self, executor):
        result = await executor.execute(
            ToolCall(id="c1", name="search_vehicles", args={"query": "alpine"})
        )
        assert result.content == [{"id": ALPINE_A424, "name": "Alpine A424", "class": "P4"}]

    @pytest.mark.asyncio
    async def test_search_tracks_uses_reference(self, executor):
        result = await executor.execute(
            ToolCall(id="c1", name="search_tracks", args={"query": "brands"})
        )
        assert [t["name"] for t in result.content] == ["Brands Hatch GP"]


class TestExecuteAll:
    """Tests for concurrent rounds."""

    @pytest.mark.asyncio
    async def test_empty_round(self, executor):
        assert await executor.execute_all([]) == []

    @pytest.mark.asyncio
    async def test_failing_sibling_does_not_affect_others(self, executor, mock_database):
        mock_database.race_results.side_effect = RuntimeError("boom")
        mock_database.active_leagues.return_value = [{"id": 7}]

        results = await executor.execute_all([
            ToolCall(id="a", name="get_race_results", args={"race_id": 1}),
            ToolCall(id="b", name="get_active_leagues", args={}),
            ToolCall(id="c", name="get_weather", args={}),
        ])

        assert [r.call_id for r in results] == ["a", "b", "c"]
        assert results[0].error["code"] == "EXECUTION_FAILED"
        assert results[1].content == [{"id": 7}]
        assert results[2].error["code"] == "UNKNOWN_FUNCTION"

    @pytest.mark.asyncio
    async def test_calls_run_concurrently(self, mock_database):
        started = []

        async def slow(*args):
            started.append(args)
            await asyncio.sleep(0.2)
            return []

        mock_database.active_leagues.side_effect = slow
        mock_database.completed_leagues.side_effect = slow
        executor = ToolExecutor(mock_database)

        loop = asyncio.get_running_loop()
        begin = loop.time()
        await executor.execute_all([
            ToolCall(id="a", name="get_active_leagues", args={}),
            ToolCall(id="b", name="get_completed_leagues", args={}),
        ])

        assert len(started) == 2
        assert loop.time() - begin < 0.35


class TestTools:
    """Tests for the tools offered to the model."""

    def test_one_tool_per_declaration(self, executor):
        assert [tool.name for tool in executor.tools] == FunctionCatalog().names()

    def test_tool_specs_shape(self, executor):
        specs = executor.tool_specs()
        assert [s["function"]["name"] for s in specs] == FunctionCatalog().names()

        spec = next(s for s in specs if s["function"]["name"] == "get_driver_stats")
        assert spec["type"] == "function"
        function = spec["function"]
        assert function["description"] == FunctionCatalog().describe("get_driver_stats").description

        parameters = function["parameters"]
        assert parameters["type"] == "object"
        assert parameters["required"] == ["driver_name"]
        assert parameters["properties"]["driver_name"]["type"] == "string"
        assert "league_id" in parameters["properties"]

    @pytest.mark.asyncio
    async def test_tool_coroutine_reaches_database(self, executor, mock_database):
        mock_database.search_drivers.return_value = [{"name": "hunt"}]
        tool = next(t for t in executor.tools if t.name == "search_drivers")

        assert await tool.coroutine(query="hu") == [{"name": "hunt"}]
        mock_database.search_drivers.assert_awaited_once_with("hu")
