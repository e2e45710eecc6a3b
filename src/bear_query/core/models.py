from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable, Iterator, Mapping, NewType

from .utils import parse_sqlite_datetime


NoteId = NewType("NoteId", int)
TagId = NewType("TagId", int)


@dataclass(frozen=True)
class BearTag:
    """A tag. Names are hierarchical with `/` separators (`work/projects`).

    `name` is nullable in the store, and `modified` is unset for tags Bear
    never touched after creating them.
    """

    id: TagId
    name: str | None
    modified: datetime | None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "BearTag":
        return cls(
            id=TagId(int(row["id"])),
            name=row["name"],
            modified=parse_sqlite_datetime(row["modified"]),
        )


@dataclass(frozen=True)
class BearTags:
    tags: dict[TagId, BearTag] = field(default_factory=dict)

    def get(self, tag_id: int) -> BearTag | None:
        return self.tags.get(TagId(tag_id))

    def __len__(self) -> int:
        return len(self.tags)

    def __iter__(self) -> Iterator[BearTag]:
        return iter(self.tags.values())

    def names(self, tag_ids: Iterable[int]) -> set[str]:
        """Names of the given tags; unknown ids and unnamed tags are skipped."""

        out: set[str] = set()
        for tag_id in tag_ids:
            tag = self.get(tag_id)
            if tag is not None and tag.name is not None:
                out.add(tag.name)
        return out


@dataclass(frozen=True)
class BearNote:
    """A note.

    `id` is the store's primary key and the thing to join and look up by.
    `unique_id` is Bear's UUID, the one its x-callback-url scheme takes
    (`bear://x-callback-url/open-note?id=...`). Only `content` may be
    missing, for empty notes.
    """

    id: NoteId
    unique_id: str
    title: str
    content: str | None
    modified: datetime | None
    created: datetime | None
    is_pinned: bool

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "BearNote":
        return cls(
            id=NoteId(int(row["id"])),
            unique_id=str(row["unique_id"] or ""),
            title=str(row["title"] or ""),
            content=row["content"],
            modified=parse_sqlite_datetime(row["modified"]),
            created=parse_sqlite_datetime(row["created"]),
            is_pinned=bool(row["is_pinned"]),
        )


@dataclass(frozen=True)
class NotesQuery:
    """Filters for `BearDb.notes`. `limit=None` returns every match."""

    limit: int | None = 10
    include_trashed: bool = False
    include_archived: bool = False
    pinned_only: bool = False
    search: str | None = None

    def __post_init__(self) -> None:
        if self.limit is not None and int(self.limit) <= 0:
            raise ValueError("limit must be positive")

    def to_sql(self) -> tuple[str, list[Any]]:
        clauses: list[str] = []
        params: list[Any] = []
        if not self.include_trashed:
            clauses.append("coalesce(is_trashed, 0) <> 1")
        if not self.include_archived:
            clauses.append("coalesce(is_archived, 0) <> 1")
        if self.pinned_only:
            clauses.append("is_pinned = 1")
        if self.search:
            clauses.append("(title LIKE ? ESCAPE '\\' OR content LIKE ? ESCAPE '\\')")
            pattern = f"%{escape_like(self.search)}%"
            params.extend([pattern, pattern])
        sql = f"SELECT {NOTE_COLUMNS} FROM entities"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += " ORDER BY modified DESC, id DESC"
        if self.limit is not None:
            sql += " LIMIT ?"
            params.append(int(self.limit))
        return sql, params


NOTE_COLUMNS = "id, unique_id, title, content, modified, created, is_pinned"


def escape_like(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
