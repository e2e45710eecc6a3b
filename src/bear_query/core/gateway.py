from __future__ import annotations

import re
import sqlite3
from dataclasses import dataclass, field
from typing import Any, Mapping, Sequence

from .errors import QueryError
from .utils import Logger, null_logger


Params = Sequence[Any] | Mapping[str, Any]

# Leading whitespace and comments are skipped; they are dropped from the merged text.
_LEADING_WITH_RE = re.compile(
    r"^(?:\s|--[^\n]*(?:\n|$)|/\*.*?\*/)*WITH(\s+RECURSIVE)?\b",
    re.IGNORECASE | re.DOTALL,
)


def combine_sql(view_definitions: str, sql: str) -> str:
    """Put the view clause in front of `sql`.

    A caller query that opens its own WITH clause has its CTEs appended to
    the view clause (SQLite allows only one WITH per statement). RECURSIVE
    applies to the whole clause, so it is hoisted onto the combined one.
    """

    if not isinstance(sql, str) or not sql.strip():
        raise QueryError("SQL must be a non-empty string", sql=sql, reason="empty_query")
    match = _LEADING_WITH_RE.match(sql)
    if match is None:
        return f"{view_definitions.rstrip()}\n{sql.strip()}"
    head, keyword, body = view_definitions.partition("WITH")
    if not keyword:
        raise QueryError("View definitions do not start with a WITH clause", sql=sql)
    if match.group(1):
        keyword = "WITH RECURSIVE"
    rest = sql[match.end():].strip()
    return f"{head}{keyword}{body.rstrip()},\n  {rest}"


@dataclass
class PreparedQuery:
    connection: sqlite3.Connection
    sql: str
    combined_sql: str
    params: Params = field(default_factory=tuple)

    def execute(self) -> sqlite3.Cursor:
        try:
            return self.connection.execute(self.combined_sql, self.params)
        except (sqlite3.Error, sqlite3.Warning) as exc:
            raise QueryError(f"Query failed: {exc}", sql=self.sql, reason="execute") from exc


class QueryGateway:
    """Runs caller SQL against the normalized views of one connection.

    Nothing here enforces read-only access; that belongs to the connection
    (see `ReadOnlyStorage`).
    """

    def __init__(
        self,
        connection: sqlite3.Connection,
        view_definitions: str,
        logger: Logger | None = None,
    ) -> None:
        self.connection = connection
        self.view_definitions = view_definitions
        self._log = logger or null_logger

    def prepare(self, sql: str, params: Params | None = None) -> PreparedQuery:
        combined = combine_sql(self.view_definitions, sql)
        bound = params if params is not None else ()
        # EXPLAIN compiles the statement (syntax, names, bindings) without running it.
        try:
            self.connection.execute("EXPLAIN " + combined, bound).close()
        except (sqlite3.Error, sqlite3.Warning) as exc:
            raise QueryError(f"Invalid query: {exc}", sql=sql, reason="prepare") from exc
        self._log(f"[query] prepared: {' '.join(sql.split())}")
        return PreparedQuery(
            connection=self.connection,
            sql=sql,
            combined_sql=combined,
            params=bound,
        )
