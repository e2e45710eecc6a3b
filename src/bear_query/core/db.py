from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

import pandas as pd

from .config import BearQuerySettings, resolve_settings
from .gateway import Params, QueryGateway
from .models import NOTE_COLUMNS, BearNote, BearTag, BearTags, NotesQuery, TagId
from .schema import SchemaMetadata, discover_metadata
from .storage import ReadOnlyStorage, default_db_path
from .tabulize import execute_to_table
from .utils import Logger, null_logger
from .views import generate_view_definitions


class BearDb:
    """Read-only handle on Bear's database.

    Construction opens one connection to discover the version-specific schema
    names and renders the normalized views once. Every method after that opens
    its own short-lived connection, queries through the views and closes it.
    """

    def __init__(
        self,
        db_path: str | Path | None = None,
        *,
        settings: BearQuerySettings | None = None,
        logger: Logger | None = None,
    ) -> None:
        self.settings = settings or resolve_settings()
        self._log = logger or null_logger
        path = Path(db_path).expanduser() if db_path else self.settings.db_path
        self.storage = ReadOnlyStorage(
            path or default_db_path(),
            busy_timeout_ms=self.settings.busy_timeout_ms,
            connect_timeout=self.settings.connect_timeout_s,
            logger=self._log,
        )
        with self.storage.connection() as conn:
            self._metadata = discover_metadata(conn, logger=self._log)
        self._view_definitions = generate_view_definitions(self._metadata)

    @property
    def db_path(self) -> Path:
        return self.storage.db_path

    @property
    def metadata(self) -> SchemaMetadata:
        return self._metadata

    @property
    def view_definitions(self) -> str:
        return self._view_definitions

    @contextmanager
    def gateway(self) -> Iterator[QueryGateway]:
        with self.storage.connection() as conn:
            yield QueryGateway(conn, self._view_definitions, logger=self._log)

    def query(self, sql: str, params: Params | None = None) -> pd.DataFrame:
        """Run SQL written against the normalized views and return a DataFrame."""

        with self.gateway() as gateway:
            return execute_to_table(gateway, sql, params, logger=self._log)

    def _fetch(self, sql: str, params: Params | None = None) -> list:
        with self.gateway() as gateway:
            cursor = gateway.prepare(sql, params).execute()
            try:
                return cursor.fetchall()
            finally:
                cursor.close()

    def tags(self) -> BearTags:
        rows = self._fetch("SELECT id, name, modified FROM labels ORDER BY name ASC, id ASC")
        tags: dict[TagId, BearTag] = {}
        for row in rows:
            tag = BearTag.from_row(row)
            tags[tag.id] = tag
        return BearTags(tags=tags)

    def notes(self, query: NotesQuery | None = None) -> list[BearNote]:
        if query is None:
            query = NotesQuery(limit=self.settings.notes_limit)
        sql, params = query.to_sql()
        return [BearNote.from_row(row) for row in self._fetch(sql, params)]

    def search(self, text: str, limit: int | None = None) -> list[BearNote]:
        return self.notes(NotesQuery(limit=limit, search=text))

    def note(self, note_id: int) -> BearNote | None:
        rows = self._fetch(f"SELECT {NOTE_COLUMNS} FROM entities WHERE id = ?", (int(note_id),))
        return BearNote.from_row(rows[0]) if rows else None

    def note_links(self, note_id: int) -> list[BearNote]:
        """Notes linked from `note_id`, newest first, trashed/archived excluded."""

        sql = (
            "SELECT e.id, e.unique_id, e.title, e.content, e.modified, e.created, e.is_pinned "
            "FROM entity_links AS l "
            "JOIN entities AS e ON e.id = l.to_entity_id "
            "WHERE l.from_entity_id = ? "
            "AND coalesce(e.is_trashed, 0) <> 1 AND coalesce(e.is_archived, 0) <> 1 "
            "ORDER BY e.modified DESC, e.id DESC"
        )
        return [BearNote.from_row(row) for row in self._fetch(sql, (int(note_id),))]

    def note_tags(self, note_id: int) -> set[TagId]:
        rows = self._fetch("SELECT label_id FROM entity_labels WHERE entity_id = ?", (int(note_id),))
        return {TagId(int(row["label_id"])) for row in rows if row["label_id"] is not None}
