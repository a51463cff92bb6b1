"""Database access: league queries and reference catalogs."""

from db.queries import LeagueDatabase, clamp_limit, summarize_championships
from db.reference import ReferenceIndex, to_signed32
from db.sql import SelectQuery

__all__ = [
    "LeagueDatabase",
    "clamp_limit",
    "summarize_championships",
    "ReferenceIndex",
    "to_signed32",
    "SelectQuery",
]
