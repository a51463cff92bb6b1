"""
League Database

Read-only queries over the league's race history (PostgreSQL via asyncpg).
Every race row is enriched with track / vehicle / class names from the
ReferenceIndex before it is returned.

Only "finished" races are aggregated: ``finished = true`` and
``"isHistoricalOrIncomplete" = false``.
"""

import logging
from typing import Any

import asyncpg

from db.reference import ReferenceIndex
from db.sql import SelectQuery

logger = logging.getLogger(__name__)

MIN_LIMIT = 1
MAX_LIMIT = 50
SEARCH_DRIVERS_LIMIT = 20
# Name filters in all_races run after enrichment, so fetch extra rows first
ALL_RACES_OVERFETCH = 4

FINISHED = """h.finished = true AND h."isHistoricalOrIncomplete" = false"""

RACE_COLUMNS = """
    SELECT
        h.id,
        h.end_time,
        h.start_time,
        h.league_id,
        l.name AS league_name,
        hs."TrackId" AS track_id,
        hs."VehicleClassId" AS vehicle_class_id,
        hs."VehicleModelId" AS vehicle_model_id
    FROM batchupload_history h
    JOIN batchupload_historysetup hs ON h.setup_id = hs.id
    LEFT JOIN leagues_league l ON h.league_id = l.id
"""

# Race-1 stage results joined back to their race
RESULT_JOINS = """
    FROM batchupload_historystageresult r
    JOIN batchupload_historystage s ON r.stage_id = s.id
    JOIN batchupload_historystages hst ON hst.race1_id = s.id
    JOIN batchupload_history h ON h.stages_id = hst.id
"""

LEAGUE_COLUMNS = """
    SELECT
        id,
        name,
        description,
        completed,
        "extraPointForFastestLap" AS extra_point_for_fastest_lap
    FROM leagues_league
"""


def clamp_limit(limit: Any, default: int) -> int:
    """Coerce a model-supplied limit into ``MIN_LIMIT..MAX_LIMIT``."""
    try:
        value = int(limit) if limit is not None else default
    except (TypeError, ValueError):
        value = default
    return max(MIN_LIMIT, min(MAX_LIMIT, value))


def _like(pattern: str) -> str:
    return f"%{pattern}%"


def _int(value: Any) -> int:
    return int(value) if value is not None else 0


class LeagueDatabase:
    """
    Query layer for race, result, lap and league data.

    Owns an asyncpg pool and a ReferenceIndex; holds no other state.
    """

    def __init__(self, pool: asyncpg.Pool, reference: ReferenceIndex):
        self._pool = pool
        self.reference = reference

    @classmethod
    async def connect(
        cls,
        dsn: str,
        reference: ReferenceIndex,
        max_size: int = 3,
    ) -> "LeagueDatabase":
        """Create the connection pool (read-only use needs only a few connections)."""
        pool = await asyncpg.create_pool(
            dsn,
            min_size=1,
            max_size=max_size,
            max_inactive_connection_lifetime=30,
            timeout=2,
        )
        logger.info(f"League database pool initialized (max_size={max_size})")
        return cls(pool, reference)

    async def close(self):
        """Close the connection pool."""
        if self._pool:
            await self._pool.close()
            logger.info("League database pool closed")

    async def ping(self) -> bool:
        """Check connectivity with ``SELECT NOW()``."""
        try:
            async with self._pool.acquire() as conn:
                await conn.fetchval("SELECT NOW()")
            return True
        except Exception as e:
            logger.error(f"Database connection failed: {e}")
            return False

    # ------------------------------------------------------------------
    # Low-level helpers
    # ------------------------------------------------------------------

    async def _fetch(self, sql: str, *params: Any) -> list[dict]:
        async with self._pool.acquire() as conn:
            rows = await conn.fetch(sql, *params)
        return [dict(row) for row in rows]

    async def _fetchrow(self, sql: str, *params: Any) -> dict | None:
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(sql, *params)
        return dict(row) if row is not None else None

    async def _fetch_query(self, query: SelectQuery) -> list[dict]:
        sql, params = query.render()
        return await self._fetch(sql, *params)

    def _enrich_race(self, row: dict) -> dict:
        ref = self.reference
        enriched = {
            **row,
            "track_name": ref.track_name(row.get("track_id")),
            "vehicle_class_name": ref.vehicle_class_name(row.get("vehicle_class_id")),
        }
        if "vehicle_model_id" in row:
            enriched["vehicle_name"] = ref.vehicle_name(row["vehicle_model_id"])
        return enriched

    # ------------------------------------------------------------------
    # Races
    # ------------------------------------------------------------------

    async def recent_races(self, limit: int = 10, league_id: int | None = None) -> list[dict]:
        """Most recently ended finished races, newest first."""
        limit = clamp_limit(limit, 10)
        query = SelectQuery(base=RACE_COLUMNS + f" WHERE {FINISHED}")
        query.where_if(league_id, "h.league_id = {}")
        query.order_by("h.end_time DESC").limit(limit)

        rows = await self._fetch_query(query)
        return [self._enrich_race(row) for row in rows[:limit]]

    async def race_results(self, race_id: int) -> dict | None:
        """Race metadata plus its race-1 results by finishing position."""
        race_sql = """
            SELECT
                h.id,
                h.end_time,
                h.start_time,
                h.league_id,
                l.name AS league_name,
                hs."TrackId" AS track_id,
                hs."VehicleClassId" AS vehicle_class_id,
                hs."VehicleModelId" AS vehicle_model_id,
                hs."RaceLength" AS race_length,
                hs."GridSize" AS grid_size
            FROM batchupload_history h
            JOIN batchupload_historysetup hs ON h.setup_id = hs.id
            LEFT JOIN leagues_league l ON h.league_id = l.id
            WHERE h.id = $1
        """
        race = await self._fetchrow(race_sql, race_id)
        if race is None:
            return None

        results_sql = """
            SELECT
                r.name,
                r."RacePosition" AS position,
                r."TotalTime" AS total_time,
                r."FastestLapTime" AS fastest_lap,
                r."IsFastestLap" AS is_fastest_lap,
                r."State" AS state,
                r."VehicleId" AS vehicle_id
            FROM batchupload_history h
            JOIN batchupload_historystages hst ON h.stages_id = hst.id
            JOIN batchupload_historystageresult r ON hst.race1_id = r.stage_id
            WHERE h.id = $1
            ORDER BY r."RacePosition" ASC NULLS LAST
        """
        rows = await self._fetch(results_sql, race_id)
        results = [
            {**row, "vehicle_name": self.reference.vehicle_name(row.get("vehicle_id"))}
            for row in rows
        ]
        return {"race": self._enrich_race(race), "results": results}

    async def all_races(
        self,
        limit: int = 20,
        track_name: str | None = None,
        vehicle_class: str | None = None,
    ) -> list[dict]:
        """Finished races across every league, filtered by display names.

        Track and class names only exist after enrichment, so the filters run
        in memory over an over-fetched window.
        """
        limit = clamp_limit(limit, 20)
        fetch = limit * ALL_RACES_OVERFETCH if (track_name or vehicle_class) else limit

        query = SelectQuery(base=RACE_COLUMNS + f" WHERE {FINISHED}")
        query.order_by("h.end_time DESC").limit(fetch)
        races = [self._enrich_race(row) for row in await self._fetch_query(query)]

        if track_name:
            needle = track_name.lower()
            races = [r for r in races if needle in r["track_name"].lower()]
        if vehicle_class:
            needle = vehicle_class.lower()
            races = [r for r in races if needle in r["vehicle_class_name"].lower()]

        return races[:limit]

    async def recent_winners(self, limit: int = 10) -> list[dict]:
        """Position-1 finishers of the most recent finished races."""
        limit = clamp_limit(limit, 10)
        query = SelectQuery(
            base=f"""
                SELECT
                    h.id AS race_id,
                    h.end_time,
                    h.league_id,
                    l.name AS league_name,
                    hs."TrackId" AS track_id,
                    hs."VehicleClassId" AS vehicle_class_id,
                    r.name AS winner_name,
                    r."TotalTime" AS winning_time,
                    r."FastestLapTime" AS fastest_lap,
                    r."IsFastestLap" AS had_fastest_lap
                FROM batchupload_history h
                JOIN batchupload_historysetup hs ON h.setup_id = hs.id
                JOIN batchupload_historystages hst ON h.stages_id = hst.id
                JOIN batchupload_historystageresult r ON hst.race1_id = r.stage_id
                LEFT JOIN leagues_league l ON h.league_id = l.id
                WHERE {FINISHED}
                    AND r."RacePosition" = 1
            """
        )
        query.order_by("h.end_time DESC").limit(limit)
        rows = await self._fetch_query(query)
        return [self._enrich_race(row) for row in rows[:limit]]

    async def lap_times(self, race_id: int, driver_name: str | None = None) -> list[dict]:
        """Valid lap events of a race, by lap number then lap time."""
        query = SelectQuery(
            base="""
                SELECT
                    e.name,
                    e."attributes_Lap" AS lap_number,
                    e."attributes_LapTime" AS lap_time,
                    e."attributes_Sector1Time" AS sector1,
                    e."attributes_Sector2Time" AS sector2,
                    e."attributes_Sector3Time" AS sector3,
                    e."attributes_RacePosition" AS position
                FROM batchupload_history h
                JOIN batchupload_historystages hst ON h.stages_id = hst.id
                JOIN batchupload_historystageevent e ON hst.race1_id = e.stage_id
                WHERE e.event_name = 'Lap'
                    AND e."attributes_LapTime" > 0
            """
        )
        query.where("h.id = {}", race_id)
        if driver_name:
            query.where("e.name ILIKE {}", _like(driver_name))
        query.order_by('e."attributes_Lap" ASC, e."attributes_LapTime" ASC')
        return await self._fetch_query(query)

    # ------------------------------------------------------------------
    # Drivers
    # ------------------------------------------------------------------

    async def driver_stats(self, driver_name: str, league_id: int | None = None) -> dict | None:
        """Career aggregate for the best-matching driver name.

        Exact (case-insensitive) name matches win over partial ones; ties go to
        the driver with more races. Returns None when nobody matches.
        """
        query = SelectQuery(
            base=f"""
                SELECT
                    r.name,
                    COUNT(*) AS races_entered,
                    SUM(CASE WHEN r."RacePosition" = 1 THEN 1 ELSE 0 END) AS wins,
                    SUM(CASE WHEN r."RacePosition" <= 3 THEN 1 ELSE 0 END) AS podiums,
                    SUM(CASE WHEN r."RacePosition" <= 10 THEN 1 ELSE 0 END) AS top_10s,
                    SUM(CASE WHEN r."IsFastestLap" = true THEN 1 ELSE 0 END) AS fastest_laps,
                    MIN(NULLIF(r."FastestLapTime", 0)) AS best_lap_time,
                    AVG(r."RacePosition") AS avg_position
                {RESULT_JOINS}
                WHERE {FINISHED}
            """,
            group_by="r.name",
        )
        query.where("r.name ILIKE {}", _like(driver_name))
        query.where_if(league_id, "h.league_id = {}")
        exact = query.bind(driver_name)
        query.order_by(f"(LOWER(r.name) = LOWER({exact})) DESC, COUNT(*) DESC")
        query.limit(1)

        rows = await self._fetch_query(query)
        if not rows:
            return None

        row = rows[0]
        avg_position = row.get("avg_position")
        return {
            "name": row["name"],
            "races_entered": _int(row.get("races_entered")),
            "wins": _int(row.get("wins")),
            "podiums": _int(row.get("podiums")),
            "top_10s": _int(row.get("top_10s")),
            "fastest_laps": _int(row.get("fastest_laps")),
            "best_lap_time": row.get("best_lap_time"),
            "avg_position": round(float(avg_position), 2) if avg_position is not None else None,
        }

    async def driver_race_history(self, driver_name: str, limit: int = 20) -> list[dict]:
        """Every finished-race result for matching drivers, newest race first."""
        limit = clamp_limit(limit, 20)
        query = SelectQuery(
            base=f"""
                SELECT
                    h.id AS race_id,
                    h.end_time,
                    h.league_id,
                    l.name AS league_name,
                    hs."TrackId" AS track_id,
                    hs."VehicleClassId" AS vehicle_class_id,
                    r.name AS driver_name,
                    r."RacePosition" AS position,
                    r."TotalTime" AS total_time,
                    r."FastestLapTime" AS fastest_lap,
                    r."IsFastestLap" AS is_fastest_lap,
                    r."State" AS state
                {RESULT_JOINS}
                JOIN batchupload_historysetup hs ON h.setup_id = hs.id
                LEFT JOIN leagues_league l ON h.league_id = l.id
                WHERE {FINISHED}
            """
        )
        query.where("r.name ILIKE {}", _like(driver_name))
        query.order_by("h.end_time DESC").limit(limit)
        rows = await self._fetch_query(query)
        return [self._enrich_race(row) for row in rows[:limit]]

    async def head_to_head(self, driver1: str, driver2: str) -> dict:
        """Compare two name patterns over finished races.

        Each pattern is matched independently, so a name matching both is
        counted for both sides.
        """
        sql = f"""
            WITH race_positions AS (
                SELECT
                    h.id AS race_id,
                    r.name,
                    r."RacePosition" AS position
                {RESULT_JOINS}
                WHERE (r.name ILIKE $1 OR r.name ILIKE $2)
                    AND {FINISHED}
            ),
            per_race AS (
                SELECT
                    race_id,
                    MIN(CASE WHEN name ILIKE $1 THEN position END) AS pos1,
                    MIN(CASE WHEN name ILIKE $2 THEN position END) AS pos2,
                    BOOL_OR(name ILIKE $1) AS has1,
                    BOOL_OR(name ILIKE $2) AS has2
                FROM race_positions
                GROUP BY race_id
            )
            SELECT
                (SELECT COUNT(*) FROM per_race WHERE has1) AS driver1_races,
                (SELECT COUNT(*) FROM per_race WHERE has2) AS driver2_races,
                (SELECT COUNT(*) FROM per_race WHERE has1 AND has2) AS races_together,
                (SELECT COUNT(*) FROM race_positions WHERE name ILIKE $1 AND position = 1) AS driver1_wins,
                (SELECT COUNT(*) FROM race_positions WHERE name ILIKE $2 AND position = 1) AS driver2_wins,
                (SELECT COUNT(*) FROM per_race WHERE has1 AND has2 AND pos1 < pos2) AS driver1_ahead,
                (SELECT COUNT(*) FROM per_race WHERE has1 AND has2 AND pos2 < pos1) AS driver2_ahead
        """
        row = await self._fetchrow(sql, _like(driver1), _like(driver2)) or {}
        stats = {
            key: _int(row.get(key))
            for key in (
                "driver1_races",
                "driver2_races",
                "races_together",
                "driver1_wins",
                "driver2_wins",
                "driver1_ahead",
                "driver2_ahead",
            )
        }
        return {"driver1": driver1, "driver2": driver2, **stats}

    async def search_drivers(self, query: str) -> list[str]:
        """Distinct driver names containing ``query``, alphabetical."""
        sql = """
            SELECT DISTINCT name
            FROM batchupload_historystageresult
            WHERE name ILIKE $1
            ORDER BY name
            LIMIT $2
        """
        rows = await self._fetch(sql, _like(query), SEARCH_DRIVERS_LIMIT)
        return [row["name"] for row in rows[:SEARCH_DRIVERS_LIMIT]]

    # ------------------------------------------------------------------
    # Leagues
    # ------------------------------------------------------------------

    async def league_standings(self, league_id: int) -> list[dict]:
        """Scoreboard for a league; unplaced entries sort last."""
        sql = """
            SELECT
                l.id AS league_id,
                l.name AS league_name,
                l.completed,
                e."PlayerName" AS player_name,
                e."Position" AS position,
                e."Points" AS points,
                e."Wins" AS wins,
                e."Poles" AS poles,
                e."Podiums" AS podiums,
                e."FastestLaps" AS fastest_laps,
                e."PointsFinishes" AS points_finishes
            FROM leagues_league l
            JOIN leagues_leaguescoreboardentry e ON l.id = e.league_id
            WHERE l.id = $1
            ORDER BY e."Position" ASC NULLS LAST
        """
        return await self._fetch(sql, league_id)

    async def active_leagues(self) -> list[dict]:
        return await self._fetch(LEAGUE_COLUMNS + " WHERE completed = false ORDER BY id DESC")

    async def completed_leagues(self) -> list[dict]:
        return await self._fetch(LEAGUE_COLUMNS + " WHERE completed = true ORDER BY id DESC")

    async def most_recent_league(self, active_only: bool = False) -> dict | None:
        """Highest-id league, optionally restricted to incomplete ones."""
        query = SelectQuery(base=LEAGUE_COLUMNS)
        if active_only:
            query.where("completed = {}", False)
        query.order_by("id DESC").limit(1)
        sql, params = query.render()
        return await self._fetchrow(sql, *params)

    async def championship_winners(self) -> list[dict]:
        """Position-1 entry of every completed league, newest league first."""
        sql = """
            SELECT
                l.id AS league_id,
                l.name AS league_name,
                e."PlayerName" AS champion,
                e."Points" AS points,
                e."Wins" AS wins,
                e."Poles" AS poles,
                e."Podiums" AS podiums
            FROM leagues_league l
            JOIN leagues_leaguescoreboardentry e ON l.id = e.league_id
            WHERE l.completed = true
                AND e."Position" = 1
            ORDER BY l.id DESC
        """
        return await self._fetch(sql)

    async def championship_stats(self) -> dict:
        """Title counts per driver and back-to-back championships."""
        champions = await self.championship_winners()
        return summarize_championships(champions)

    async def league_details(self, league_id: int) -> dict | None:
        """League metadata with standings, schedule, points table and races."""
        league = await self._fetchrow(
            """
            SELECT
                id,
                name,
                description,
                completed,
                "extraPointForFastestLap" AS extra_point_for_fastest_lap,
                img
            FROM leagues_league
            WHERE id = $1
            """,
            league_id,
        )
        if league is None:
            return None

        standings = await self.league_standings(league_id)

        schedule = await self._fetch(
            """
            SELECT id, track, date, completed
            FROM leagues_leagueracedate
            WHERE league_id = $1
            ORDER BY date ASC
            """,
            league_id,
        )
        points_system = await self._fetch(
            """
            SELECT "position", points
            FROM leagues_leaguepointsposition
            WHERE league_id = $1
            ORDER BY "position" ASC
            """,
            league_id,
        )
        races = await self._fetch(
            """
            SELECT h.id, h.end_time, hs."TrackId" AS track_id
            FROM batchupload_history h
            JOIN batchupload_historysetup hs ON h.setup_id = hs.id
            WHERE h.league_id = $1
                AND h.finished = true
            ORDER BY h.end_time ASC
            """,
            league_id,
        )

        return {
            "league": league,
            "standings": standings,
            "schedule": [
                {**row, "track_name": self.reference.track_name(row.get("track"))}
                for row in schedule
            ],
            "points_system": points_system,
            "races_completed": [
                {**row, "track_name": self.reference.track_name(row.get("track_id"))}
                for row in races
            ],
        }


def summarize_championships(champions: list[dict]) -> dict:
    """Group champions (newest league first) into title counts and streaks.

    Back-to-back titles are detected by league-id adjacency: two consecutive
    entries with the same champion whose league ids differ by exactly 1.
    """
    by_driver: dict[str, dict] = {}
    for champ in champions:
        entry = by_driver.setdefault(
            champ["champion"],
            {"name": champ["champion"], "championships": 0, "titles": []},
        )
        entry["championships"] += 1
        entry["titles"].append({
            "league_name": champ.get("league_name"),
            "league_id": champ.get("league_id"),
            "points": champ.get("points"),
            "wins": champ.get("wins"),
        })

    most = sorted(by_driver.values(), key=lambda d: d["championships"], reverse=True)

    back_to_back = []
    for current, following in zip(champions, champions[1:]):
        if (
            current["champion"] == following["champion"]
            and abs(current["league_id"] - following["league_id"]) == 1
        ):
            back_to_back.append({
                "driver": current["champion"],
                "leagues": [current.get("league_name"), following.get("league_name")],
                "league_ids": [current["league_id"], following["league_id"]],
            })

    return {
        "total_championships": len(champions),
        "all_champions": champions,
        "most_championships": most,
        "back_to_back_champions": back_to_back,
        "unique_champions": len(most),
    }
