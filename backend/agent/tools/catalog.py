"""
Function Catalog

Every operation the model may call, with the description it uses to pick a
call and a pydantic model describing the arguments. The catalog is the
contract with the model; ToolExecutor must provide exactly one handler per
entry.
"""

from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from langchain_core.tools import StructuredTool
from pydantic import BaseModel, Field


# ============================================================
# ARGUMENT SCHEMAS
# ============================================================

class NoArgs(BaseModel):
    """Operation takes no arguments."""


class RecentRacesArgs(BaseModel):
    limit: int = Field(default=5, description="Number of races to return (default 5, max 50)")
    league_id: int | None = Field(default=None, description="Optional: filter by specific league ID")


class RaceIdArgs(BaseModel):
    race_id: int = Field(description="The race ID")


class DriverStatsArgs(BaseModel):
    driver_name: str = Field(description="The driver's name to search for (partial match is ok)")
    league_id: int | None = Field(
        default=None,
        description="Optional: filter stats to a specific league/championship",
    )


class LeagueIdArgs(BaseModel):
    league_id: int = Field(description="The league/championship ID")


class MostRecentLeagueArgs(BaseModel):
    active_only: bool = Field(
        default=False,
        description="If true, only consider leagues that are still running",
    )


class LapTimesArgs(BaseModel):
    race_id: int = Field(description="The race ID to get lap times for")
    driver_name: str | None = Field(
        default=None,
        description="Optional: filter to a specific driver's laps (partial match is ok)",
    )


class HeadToHeadArgs(BaseModel):
    driver1: str = Field(description="First driver's name")
    driver2: str = Field(description="Second driver's name")


class SearchArgs(BaseModel):
    query: str = Field(description="Search query (partial name is ok)")


class AllRacesArgs(BaseModel):
    limit: int = Field(default=20, description="Number of races to return (default 20, max 50)")
    track_name: str | None = Field(
        default=None,
        description="Optional: filter by track name (partial match, e.g. 'Spa')",
    )
    vehicle_class: str | None = Field(
        default=None,
        description="Optional: filter by vehicle class name (partial match, e.g. 'GT3')",
    )


class DriverHistoryArgs(BaseModel):
    driver_name: str = Field(description="The driver's name to search for (partial match is ok)")
    limit: int = Field(default=20, description="Number of results to return (default 20, max 50)")


class LimitArgs(BaseModel):
    limit: int = Field(default=10, description="Number of races to check (default 10, max 50)")


class LapTimeFormatArgs(BaseModel):
    milliseconds: int = Field(description="A time in milliseconds, e.g. 83456")


# ============================================================
# DECLARATIONS
# ============================================================

@dataclass(frozen=True)
class FunctionDeclaration:
    """A callable operation advertised to the model."""

    name: str
    description: str
    args_schema: type[BaseModel]

    def as_tool(self, coroutine: Callable[..., Awaitable[Any]]) -> StructuredTool:
        """Bind an implementation, giving the tool handed to the model and the registry."""
        return StructuredTool(
            name=self.name,
            description=self.description,
            args_schema=self.args_schema,
            coroutine=coroutine,
        )


DECLARATIONS: list[FunctionDeclaration] = [
    FunctionDeclaration(
        name="get_recent_races",
        description=(
            "Get the most recent races from the league. Use this when users ask about "
            "recent races, the last race, or what happened lately."
        ),
        args_schema=RecentRacesArgs,
    ),
    FunctionDeclaration(
        name="get_race_results",
        description=(
            "Get detailed results for a specific race including finishing positions, lap "
            "times, and race information. Use this when users ask about a specific race's "
            "results or want details about who won a particular race."
        ),
        args_schema=RaceIdArgs,
    ),
    FunctionDeclaration(
        name="get_driver_stats",
        description=(
            "Get comprehensive statistics for a specific driver including wins, podiums, "
            "fastest laps, and average position. Use this when users ask about a driver's "
            "performance or career stats."
        ),
        args_schema=DriverStatsArgs,
    ),
    FunctionDeclaration(
        name="get_league_standings",
        description=(
            "Get the championship standings for a specific league including positions, "
            "points, wins, poles, and podiums. Use this when users ask about championship "
            "standings, who's leading, or league positions."
        ),
        args_schema=LeagueIdArgs,
    ),
    FunctionDeclaration(
        name="get_active_leagues",
        description=(
            "Get all currently active (ongoing) championships/leagues. Use this when users "
            "ask about current championships, active leagues, or what's happening now."
        ),
        args_schema=NoArgs,
    ),
    FunctionDeclaration(
        name="get_completed_leagues",
        description=(
            "Get all completed (past) championships/leagues. Use this when users ask about "
            "previous seasons, past championships, or league history."
        ),
        args_schema=NoArgs,
    ),
    FunctionDeclaration(
        name="get_most_recent_league",
        description=(
            "Get the newest league/championship, optionally only among the ones still "
            "running. Use this when users say 'this season', 'the current championship' "
            "or 'last season' without naming it."
        ),
        args_schema=MostRecentLeagueArgs,
    ),
    FunctionDeclaration(
        name="get_championship_winners",
        description=(
            "Get the champion (P1 in the final standings) of every completed league, newest "
            "first. Use this when users ask who won past championships."
        ),
        args_schema=NoArgs,
    ),
    FunctionDeclaration(
        name="get_championship_stats",
        description=(
            "Get championship statistics: titles per driver, who has won the most, and "
            "back-to-back champions. Use this for questions about the most successful "
            "drivers or title streaks."
        ),
        args_schema=NoArgs,
    ),
    FunctionDeclaration(
        name="get_lap_times",
        description=(
            "Get lap-by-lap timing data for a specific race. Optionally filter by driver. "
            "Use this when users ask about lap times, pace, or sector times from a race."
        ),
        args_schema=LapTimesArgs,
    ),
    FunctionDeclaration(
        name="get_head_to_head",
        description=(
            "Compare two drivers head-to-head with statistics on races together, wins, and "
            "who finished ahead. Use this when users ask to compare drivers."
        ),
        args_schema=HeadToHeadArgs,
    ),
    FunctionDeclaration(
        name="search_drivers",
        description=(
            "Search for drivers by name. Use this when you need to find a driver's exact "
            "name or see available drivers."
        ),
        args_schema=SearchArgs,
    ),
    FunctionDeclaration(
        name="get_all_races",
        description=(
            "Get races across all leagues and standalone events, optionally filtered by "
            "track name or vehicle class. Use this when users ask about races at a "
            "particular track or in a particular class."
        ),
        args_schema=AllRacesArgs,
    ),
    FunctionDeclaration(
        name="get_driver_race_history",
        description=(
            "Get a driver's individual race results across all races, newest first. Use "
            "this when users ask how a driver has done recently or race by race."
        ),
        args_schema=DriverHistoryArgs,
    ),
    FunctionDeclaration(
        name="get_recent_winners",
        description=(
            "Get the winners of the most recent races. Use this when users ask who has "
            "been winning lately."
        ),
        args_schema=LimitArgs,
    ),
    FunctionDeclaration(
        name="get_league_details",
        description=(
            "Get everything about one league: description, standings, race schedule, "
            "points system and completed races. Use this for detailed questions about a "
            "specific championship."
        ),
        args_schema=LeagueIdArgs,
    ),
    FunctionDeclaration(
        name="search_tracks",
        description=(
            "Search the track catalog by name. Use this to check a track's exact name or "
            "what tracks exist."
        ),
        args_schema=SearchArgs,
    ),
    FunctionDeclaration(
        name="search_vehicles",
        description=(
            "Search the vehicle catalog by name. Use this to check a car's exact name or "
            "which cars match a make or class."
        ),
        args_schema=SearchArgs,
    ),
    FunctionDeclaration(
        name="format_lap_time",
        description=(
            "Convert a time in milliseconds to a readable lap time (e.g. 83456 -> 1:23.456). "
            "All times returned by the other functions are in milliseconds."
        ),
        args_schema=LapTimeFormatArgs,
    ),
]


class FunctionCatalog:
    """Ordered registry of function declarations."""

    def __init__(self, declarations: list[FunctionDeclaration] | None = None):
        declarations = DECLARATIONS if declarations is None else declarations
        self._declarations: dict[str, FunctionDeclaration] = {}
        for declaration in declarations:
            if declaration.name in self._declarations:
                raise ValueError(f"Duplicate function declaration: {declaration.name}")
            self._declarations[declaration.name] = declaration

    def names(self) -> list[str]:
        return list(self._declarations)

    def has(self, name: str) -> bool:
        return name in self._declarations

    def describe(self, name: str) -> FunctionDeclaration | None:
        return self._declarations.get(name)

    def __len__(self) -> int:
        return len(self._declarations)

    # Defined last: inside the class body this name shadows the builtin
    def list(self) -> list[FunctionDeclaration]:
        return [*self._declarations.values()]
