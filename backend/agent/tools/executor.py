"""
Tool Executor

Dispatches model-requested calls to LeagueDatabase operations. Every call
yields a ToolResult (payload or error descriptor); nothing raises past
``execute``. Calls requested in the same round run concurrently.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable

from langchain_core.tools import StructuredTool
from langchain_core.utils.function_calling import convert_to_openai_tool
from pydantic import BaseModel, ValidationError

from agent.errors import CatalogMismatchError, ErrorCode, error_payload
from agent.processors.formatters import format_lap_time
from agent.schemas.tools import ToolCall, ToolResult
from agent.tools import catalog as c
from agent.tools.catalog import FunctionCatalog, FunctionDeclaration
from db.queries import LeagueDatabase

logger = logging.getLogger(__name__)

DEFAULT_CALL_TIMEOUT = 15.0

Handler = Callable[[LeagueDatabase, Any], Awaitable[Any]]

# name -> handler; checked against the catalog when an executor is built
HANDLERS: dict[str, Handler] = {}


def handler(name: str):
    """Register a handler for a catalog function."""

    def decorator(fn: Handler) -> Handler:
        if name in HANDLERS:
            raise ValueError(f"Duplicate handler for {name}")
        HANDLERS[name] = fn
        return fn

    return decorator


def not_found(message: str) -> dict:
    """Payload for a lookup that matched nothing (not an error)."""
    return {"found": False, "message": message}


# ============================================================
# HANDLERS
# ============================================================

@handler("get_recent_races")
async def _recent_races(db: LeagueDatabase, args: c.RecentRacesArgs):
    return await db.recent_races(args.limit, args.league_id)


@handler("get_race_results")
async def _race_results(db: LeagueDatabase, args: c.RaceIdArgs):
    result = await db.race_results(args.race_id)
    return result if result is not None else not_found(f"No race with id {args.race_id}")


@handler("get_driver_stats")
async def _driver_stats(db: LeagueDatabase, args: c.DriverStatsArgs):
    stats = await db.driver_stats(args.driver_name, args.league_id)
    if stats is None:
        return not_found(f"No finished races for a driver matching '{args.driver_name}'")
    return stats


@handler("get_league_standings")
async def _league_standings(db: LeagueDatabase, args: c.LeagueIdArgs):
    return await db.league_standings(args.league_id)


@handler("get_active_leagues")
async def _active_leagues(db: LeagueDatabase, args: c.NoArgs):
    return await db.active_leagues()


@handler("get_completed_leagues")
async def _completed_leagues(db: LeagueDatabase, args: c.NoArgs):
    return await db.completed_leagues()


@handler("get_most_recent_league")
async def _most_recent_league(db: LeagueDatabase, args: c.MostRecentLeagueArgs):
    league = await db.most_recent_league(args.active_only)
    return league if league is not None else not_found("No leagues found")


@handler("get_championship_winners")
async def _championship_winners(db: LeagueDatabase, args: c.NoArgs):
    return await db.championship_winners()


@handler("get_championship_stats")
async def _championship_stats(db: LeagueDatabase, args: c.NoArgs):
    return await db.championship_stats()


@handler("get_lap_times")
async def _lap_times(db: LeagueDatabase, args: c.LapTimesArgs):
    return await db.lap_times(args.race_id, args.driver_name)


@handler("get_head_to_head")
async def _head_to_head(db: LeagueDatabase, args: c.HeadToHeadArgs):
    return await db.head_to_head(args.driver1, args.driver2)


@handler("search_drivers")
async def _search_drivers(db: LeagueDatabase, args: c.SearchArgs):
    return await db.search_drivers(args.query)


@handler("get_all_races")
async def _all_races(db: LeagueDatabase, args: c.AllRacesArgs):
    return await db.all_races(args.limit, args.track_name, args.vehicle_class)


@handler("get_driver_race_history")
async def _driver_race_history(db: LeagueDatabase, args: c.DriverHistoryArgs):
    return await db.driver_race_history(args.driver_name, args.limit)


@handler("get_recent_winners")
async def _recent_winners(db: LeagueDatabase, args: c.LimitArgs):
    return await db.recent_winners(args.limit)


@handler("get_league_details")
async def _league_details(db: LeagueDatabase, args: c.LeagueIdArgs):
    details = await db.league_details(args.league_id)
    return details if details is not None else not_found(f"No league with id {args.league_id}")


@handler("search_tracks")
async def _search_tracks(db: LeagueDatabase, args: c.SearchArgs):
    return [
        {"id": t.get("id"), "name": t["display_name"]}
        for t in db.reference.search_tracks(args.query)
    ]


@handler("search_vehicles")
async def _search_vehicles(db: LeagueDatabase, args: c.SearchArgs):
    return [
        {
            "id": v.get("id"),
            "name": v["display_name"],
            "class": db.reference.vehicle_class_name(v["class"]) if v.get("class") is not None else None,
        }
        for v in db.reference.search_vehicles(args.query)
    ]


@handler("format_lap_time")
async def _format_lap_time(db: LeagueDatabase, args: c.LapTimeFormatArgs):
    return {"formatted_time": format_lap_time(args.milliseconds)}


# ============================================================
# EXECUTOR
# ============================================================

def check_coverage(catalog: FunctionCatalog, handlers: dict[str, Handler]) -> None:
    """Raise CatalogMismatchError unless catalog names and handlers match 1:1."""
    declared = set(catalog.names())
    registered = set(handlers)
    if declared != registered:
        raise CatalogMismatchError(
            missing=declared - registered,
            orphaned=registered - declared,
        )


class ToolExecutor:
    """Executes catalog functions against the league database.

    Each declaration is bound to its handler as a StructuredTool; ``tools``
    is what the model is offered and the registry calls are dispatched from.
    """

    def __init__(
        self,
        database: LeagueDatabase,
        catalog: FunctionCatalog | None = None,
        handlers: dict[str, Handler] | None = None,
        call_timeout: float = DEFAULT_CALL_TIMEOUT,
    ):
        self.database = database
        self.catalog = catalog or FunctionCatalog()
        self._handlers = dict(HANDLERS if handlers is None else handlers)
        self.call_timeout = call_timeout
        check_coverage(self.catalog, self._handlers)

        self.tools: list[StructuredTool] = [self._bind(d) for d in self.catalog.list()]
        self._registry = {tool.name: tool for tool in self.tools}
        logger.info(f"Tool executor ready with {len(self._registry)} functions")

    def _bind(self, declaration: FunctionDeclaration) -> StructuredTool:
        handle = self._handlers[declaration.name]

        async def run(**kwargs):
            return await handle(self.database, declaration.args_schema.model_validate(kwargs))

        return declaration.as_tool(run)

    def tool_specs(self) -> list[dict]:
        """OpenAI-style definitions of every tool, in catalog order."""
        return [convert_to_openai_tool(tool) for tool in self.tools]

    async def execute(self, call: ToolCall) -> ToolResult:
        """Run one call; failures become an error descriptor on the result."""
        tool = self._registry.get(call.name)
        if tool is None:
            logger.warning(f"Model requested unknown function: {call.name}")
            return self._error(call, f"unknown function: {call.name}", ErrorCode.UNKNOWN_FUNCTION)

        try:
            args: BaseModel = tool.args_schema.model_validate(call.args or {})
        except ValidationError as e:
            logger.warning(f"Invalid arguments for {call.name}: {e}")
            return self._error(
                call,
                f"invalid arguments for {call.name}: {_summarize(e)}",
                ErrorCode.INVALID_ARGUMENTS,
            )

        try:
            content = await asyncio.wait_for(
                tool.coroutine(**args.model_dump()),
                timeout=self.call_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(f"{call.name} timed out after {self.call_timeout}s")
            return self._error(
                call,
                f"{call.name} timed out after {self.call_timeout:g}s",
                ErrorCode.TOOL_TIMEOUT,
            )
        except Exception as e:
            logger.error(f"Error executing {call.name}: {e}")
            return self._error(call, str(e) or type(e).__name__, ErrorCode.EXECUTION_FAILED)

        logger.debug(f"{call.name} completed")
        return ToolResult(call_id=call.id, name=call.name, content=content)

    async def execute_all(self, calls: list[ToolCall]) -> list[ToolResult]:
        """Run a round's calls concurrently; results follow request order."""
        if not calls:
            return []

        logger.info(f"Executing {len(calls)} tool call(s): {[call.name for call in calls]}")
        outcomes = await asyncio.gather(
            *(self.execute(call) for call in calls),
            return_exceptions=True,
        )

        results = []
        for call, outcome in zip(calls, outcomes):
            if isinstance(outcome, BaseException):
                logger.error(f"Tool {call.name} failed: {outcome}")
                outcome = self._error(call, str(outcome), ErrorCode.EXECUTION_FAILED)
            results.append(outcome)
        return results

    @staticmethod
    def _error(call: ToolCall, message: str, code: ErrorCode) -> ToolResult:
        return ToolResult(call_id=call.id, name=call.name, error=error_payload(message, code))


def _summarize(error: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(p) for p in item['loc']) or 'args'}: {item['msg']}"
        for item in error.errors()
    )
