"""Convert query results into a column-typed pandas DataFrame.

SQLite types values per cell, not per column, so one result column can mix
integers, reals, text and blobs. Every row is buffered as raw `Cell`s first,
then each column settles on a single kind:

    REAL > INTEGER > TEXT > BLOB

Integers in a REAL column are widened to float. Cells of any other losing
kind become missing values instead of failing the query. A column with no
non-null cell (including every column of an empty result) is an all-NA
`string` column.
"""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Sequence

import pandas as pd

from .errors import QueryError, TabulizeError
from .gateway import Params, QueryGateway
from .utils import Logger, null_logger


FETCH_BATCH_SIZE = 1000


class CellKind(str, Enum):
    NULL = "null"
    INTEGER = "integer"
    REAL = "real"
    TEXT = "text"
    BLOB = "blob"


KIND_PRIORITY: tuple[CellKind, ...] = (
    CellKind.REAL,
    CellKind.INTEGER,
    CellKind.TEXT,
    CellKind.BLOB,
)

KIND_DTYPES: dict[CellKind, Any] = {
    CellKind.REAL: "Float64",
    CellKind.INTEGER: "Int64",
    CellKind.TEXT: "string",
    CellKind.BLOB: object,
    CellKind.NULL: "string",
}


@dataclass(frozen=True)
class Cell:
    kind: CellKind
    value: Any = None

    @classmethod
    def from_sqlite(cls, value: Any) -> "Cell":
        if value is None:
            return cls(CellKind.NULL)
        # bool is an int subclass; sqlite3 never returns it but adapters might.
        if isinstance(value, int):
            return cls(CellKind.INTEGER, int(value))
        if isinstance(value, float):
            return cls(CellKind.REAL, value)
        if isinstance(value, str):
            return cls(CellKind.TEXT, value)
        if isinstance(value, (bytes, bytearray, memoryview)):
            return cls(CellKind.BLOB, bytes(value))
        raise TabulizeError(
            f"Unsupported cell value of type {type(value).__name__}",
            reason="decode",
        )


def resolve_column_kind(kinds: Iterable[CellKind]) -> CellKind:
    """Fold observed kinds into the winning one; NULL when none were seen."""

    state = CellKind.NULL
    for kind in kinds:
        if kind is CellKind.NULL or kind is state:
            continue
        if state is CellKind.NULL or KIND_PRIORITY.index(kind) < KIND_PRIORITY.index(state):
            state = kind
        if state is KIND_PRIORITY[0]:
            break
    return state


def _cell_as(kind: CellKind, cell: Cell) -> Any:
    if cell.kind is kind:
        return cell.value
    if kind is CellKind.REAL and cell.kind is CellKind.INTEGER:
        return float(cell.value)
    return None


def build_column(name: str, cells: Sequence[Cell]) -> tuple[pd.Series, CellKind]:
    kind = resolve_column_kind(cell.kind for cell in cells)
    if kind is CellKind.NULL:
        values: list[Any] = [None] * len(cells)
    else:
        values = [_cell_as(kind, cell) for cell in cells]
    series = pd.Series(
        values,
        dtype=KIND_DTYPES[kind],
        name=name,
        index=pd.RangeIndex(len(cells)),
    )
    return series, kind


def _is_decode_error(exc: sqlite3.Error) -> bool:
    return "Could not decode to UTF-8" in str(exc)


def _read_buffers(cursor: sqlite3.Cursor, width: int) -> tuple[list[list[Cell]], int]:
    buffers: list[list[Cell]] = [[] for _ in range(width)]
    row_count = 0
    while True:
        try:
            rows = cursor.fetchmany(FETCH_BATCH_SIZE)
        except sqlite3.Error as exc:
            if _is_decode_error(exc):
                raise TabulizeError(f"Unable to decode row {row_count}: {exc}", reason="decode") from exc
            raise QueryError(f"Query failed while reading rows: {exc}", reason="execute") from exc
        if not rows:
            break
        for row in rows:
            if len(row) != width:
                raise TabulizeError(
                    f"Row {row_count} has {len(row)} values, expected {width}",
                    reason="row_width",
                )
            for idx in range(width):
                buffers[idx].append(Cell.from_sqlite(row[idx]))
            row_count += 1
    return buffers, row_count


def assemble_table(names: Sequence[str], buffers: Sequence[Sequence[Cell]], row_count: int) -> pd.DataFrame:
    if len(names) != len(buffers):
        raise TabulizeError(
            f"Got {len(buffers)} column buffers for {len(names)} columns",
            reason="assembly",
        )
    columns: dict[int, pd.Series] = {}
    kinds: list[str] = []
    for idx, (name, cells) in enumerate(zip(names, buffers)):
        if len(cells) != row_count:
            raise TabulizeError(
                f"Column {name!r} has {len(cells)} values, expected {row_count}",
                reason="assembly",
            )
        series, kind = build_column(name, cells)
        columns[idx] = series
        kinds.append(kind.value)
    frame = pd.DataFrame(columns, index=pd.RangeIndex(row_count))
    # Positional keys above keep duplicate column names (e.g. `a.id, b.id`) apart.
    frame.columns = pd.Index(list(names), dtype=object)
    frame.attrs["column_kinds"] = kinds
    return frame


def execute_to_table(
    gateway: QueryGateway,
    sql: str,
    params: Params | None = None,
    logger: Logger | None = None,
) -> pd.DataFrame:
    log = logger or null_logger
    prepared = gateway.prepare(sql, params)
    try:
        cursor = prepared.execute()
    except QueryError as exc:
        # Some sqlite3 builds convert the first row inside execute().
        cause = exc.__cause__
        if isinstance(cause, sqlite3.Error) and _is_decode_error(cause):
            raise TabulizeError(f"Unable to decode row 0: {cause}", reason="decode") from cause
        raise
    try:
        names = [str(desc[0]) for desc in (cursor.description or ())]
        buffers, row_count = _read_buffers(cursor, len(names))
    finally:
        cursor.close()
    frame = assemble_table(names, buffers, row_count)
    log(f"[query] {row_count} rows x {len(names)} columns")
    return frame
