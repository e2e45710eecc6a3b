"""Discovery of the version-dependent parts of Bear's Core Data schema.

Core Data names many-to-many junction tables after the entity numbers it
assigns at model compile time, so the note/tag join is `Z_5TAGS` with
columns `Z_5NOTES`/`Z_13TAGS` in one Bear release and `Z_7TAGS` with
`Z_7NOTES`/`Z_15TAGS` in another. Matching is done on plain strings first
(`match_metadata`) so it can be tested without a database; `discover_metadata`
only adds the catalog enumeration.
"""

from __future__ import annotations

import json
import re
import sqlite3
from dataclasses import dataclass
from typing import Iterable, Sequence

from .errors import SchemaDiscoveryError
from .utils import Logger, is_safe_identifier, null_logger


JUNCTION_TABLE_RE = re.compile(r"^Z_[0-9]+TAGS$")
NOTES_COLUMN_SUFFIX = "NOTES"
TAGS_COLUMN_SUFFIX = "TAGS"


@dataclass(frozen=True)
class SchemaMetadata:
    junction_table: str
    junction_notes_column: str
    junction_tags_column: str

    def __post_init__(self) -> None:
        for field_name in ("junction_table", "junction_notes_column", "junction_tags_column"):
            value = getattr(self, field_name)
            if not is_safe_identifier(value):
                raise ValueError(f"Unsafe identifier for {field_name}: {value!r}")

    def as_dict(self) -> dict[str, str]:
        return {
            "junction_table": self.junction_table,
            "junction_notes_column": self.junction_notes_column,
            "junction_tags_column": self.junction_tags_column,
        }


def find_junction_table(table_names: Iterable[str]) -> str:
    """Return the first table named like `Z_<n>TAGS`.

    More than one candidate is not an error; callers pass names in catalog
    (lexical) order so the pick is deterministic.
    """

    for name in table_names:
        if JUNCTION_TABLE_RE.match(str(name)):
            return str(name)
    raise SchemaDiscoveryError(
        "No junction table matching Z_<n>TAGS found",
        reason="no_junction_table",
    )


def _first_with_suffix(column_names: Sequence[str], suffix: str) -> str | None:
    for name in column_names:
        if str(name).endswith(suffix) and is_safe_identifier(str(name)):
            return str(name)
    return None


def find_junction_columns(column_names: Sequence[str], table: str = "") -> tuple[str, str]:
    names = list(column_names)
    where = f" in {table}" if table else ""
    notes_column = _first_with_suffix(names, NOTES_COLUMN_SUFFIX)
    if notes_column is None:
        raise SchemaDiscoveryError(
            f"No column ending in {NOTES_COLUMN_SUFFIX} found{where} (columns: {names})",
            reason="no_notes_column",
        )
    tags_column = _first_with_suffix(names, TAGS_COLUMN_SUFFIX)
    if tags_column is None:
        raise SchemaDiscoveryError(
            f"No column ending in {TAGS_COLUMN_SUFFIX} found{where} (columns: {names})",
            reason="no_tags_column",
        )
    return notes_column, tags_column


def match_metadata(catalog: Iterable[tuple[str, str]]) -> SchemaMetadata:
    """Build metadata from `(table_name, column_name)` pairs."""

    tables: dict[str, list[str]] = {}
    for table_name, column_name in catalog:
        tables.setdefault(str(table_name), []).append(str(column_name))
    table = find_junction_table(tables.keys())
    notes_column, tags_column = find_junction_columns(tables[table], table=table)
    return SchemaMetadata(
        junction_table=table,
        junction_notes_column=notes_column,
        junction_tags_column=tags_column,
    )


def list_catalog(conn: sqlite3.Connection) -> list[tuple[str, str]]:
    tables = [
        str(r[0])
        for r in conn.execute(
            "select name from sqlite_master where type='table' and name not like 'sqlite_%' order by name"
        ).fetchall()
    ]
    pairs: list[tuple[str, str]] = []
    for table in tables:
        for col in conn.execute(f"PRAGMA table_info({json.dumps(table)})").fetchall():
            pairs.append((table, str(col[1])))
    return pairs


def discover_metadata(conn: sqlite3.Connection, logger: Logger | None = None) -> SchemaMetadata:
    log = logger or null_logger
    try:
        catalog = list_catalog(conn)
    except sqlite3.Error as exc:
        raise SchemaDiscoveryError(
            f"Unable to read schema catalog: {exc}", reason="catalog_unreadable"
        ) from exc
    metadata = match_metadata(catalog)
    log(
        f"[schema] junction={metadata.junction_table} "
        f"notes={metadata.junction_notes_column} tags={metadata.junction_tags_column}"
    )
    return metadata
