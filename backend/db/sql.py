"""
Parameterized SELECT builder.

Optional filters shift positional placeholders, so fragments are written with
``{}`` and the builder assigns ``$1, $2, ...`` in the order values are bound.
"""

import re
from dataclasses import dataclass, field
from typing import Any

_WHERE = re.compile(r"\bWHERE\b", re.IGNORECASE)


@dataclass
class SelectQuery:
    """A SELECT statement assembled from a fixed body and optional filters.

    Example:
        q = SelectQuery(base="SELECT ... FROM t WHERE t.done = true")
        q.where("t.league_id = {}", league_id)
        q.order_by("t.end_time DESC")
        q.limit(10)
        sql, params = q.render()
    """

    base: str
    group_by: str | None = None
    _conditions: list[str] = field(default_factory=list)
    _params: list[Any] = field(default_factory=list)
    _order_by: str | None = None
    _limit: int | None = None

    def bind(self, value: Any) -> str:
        """Bind a value and return its placeholder."""
        self._params.append(value)
        return f"${len(self._params)}"

    def where(self, fragment: str, *values: Any) -> "SelectQuery":
        """Add an ``AND`` condition; each ``{}`` in ``fragment`` takes one value."""
        placeholders = [self.bind(v) for v in values]
        self._conditions.append(fragment.format(*placeholders))
        return self

    def where_if(self, value: Any, fragment: str) -> "SelectQuery":
        """Add the condition only when ``value`` is not None."""
        if value is not None:
            self.where(fragment, value)
        return self

    def order_by(self, clause: str) -> "SelectQuery":
        self._order_by = clause
        return self

    def limit(self, n: int) -> "SelectQuery":
        self._limit = n
        return self

    def render(self) -> tuple[str, list[Any]]:
        """Return the final SQL text and its parameter list."""
        sql = self.base.rstrip()
        if self._conditions:
            joiner = " AND " if _WHERE.search(sql) else " WHERE "
            sql += joiner + " AND ".join(self._conditions)
        if self.group_by:
            sql += f" GROUP BY {self.group_by}"
        if self._order_by:
            sql += f" ORDER BY {self._order_by}"
        params = list(self._params)
        if self._limit is not None:
            params.append(self._limit)
            sql += f" LIMIT ${len(params)}"
        return sql, params
