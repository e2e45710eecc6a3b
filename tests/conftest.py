from __future__ import annotations

import sqlite3
from pathlib import Path
from contextlib import contextmanager
from typing import Callable, Iterator

import pytest

from bear_query.core.db import BearDb
from bear_query.core.config import BearQuerySettings
from bear_query.core.gateway import QueryGateway
from bear_query.core.schema import discover_metadata
from bear_query.core.storage import ReadOnlyStorage
from bear_query.core.views import generate_view_definitions


BEAR_SCHEMA = """
CREATE TABLE Z_PRIMARYKEY (Z_ENT INTEGER PRIMARY KEY, Z_NAME VARCHAR, Z_SUPER INTEGER, Z_MAX INTEGER);
CREATE TABLE Z_METADATA (Z_VERSION INTEGER PRIMARY KEY, Z_UUID VARCHAR(255), Z_PLIST BLOB);
CREATE TABLE ZSFNOTE (
  Z_PK INTEGER PRIMARY KEY,
  ZUNIQUEIDENTIFIER TEXT,
  ZTITLE TEXT,
  ZTEXT TEXT,
  ZMODIFICATIONDATE REAL,
  ZCREATIONDATE REAL,
  ZPINNED INTEGER,
  ZTRASHED INTEGER,
  ZARCHIVED INTEGER
);
CREATE TABLE ZSFNOTETAG (
  Z_PK INTEGER PRIMARY KEY,
  ZTITLE TEXT,
  ZMODIFICATIONDATE REAL
);
CREATE TABLE Z_{note_ent}PINNEDINTAGS (Z_{note_ent}PINNEDNOTES INTEGER, Z_{tag_ent}PINNEDINTAGS INTEGER);
CREATE TABLE Z_{note_ent}TAGS (
  Z_{note_ent}NOTES INTEGER,
  Z_{tag_ent}TAGS INTEGER
);
CREATE TABLE ZSFNOTEBACKLINK (
  Z_PK INTEGER PRIMARY KEY,
  ZLINKEDBY INTEGER,
  ZLINKINGTO INTEGER
);
"""

# Core Data timestamps count seconds from 2001-01-01; 31536000 is one year later.
SAMPLE_DATA = """
INSERT INTO ZSFNOTE (Z_PK, ZUNIQUEIDENTIFIER, ZTITLE, ZTEXT, ZMODIFICATIONDATE, ZCREATIONDATE, ZPINNED, ZTRASHED, ZARCHIVED)
VALUES
  (1, 'note-uuid-1', 'First Note', 'Content of first note', 0, 0, 0, 0, 0),
  (2, 'note-uuid-2', 'Second Note', 'Content of second note', 31536000, 31536000, 1, 0, 0),
  (3, 'note-uuid-3', 'Trashed Note', 'This is trashed', 0, 0, 0, 1, 0);

INSERT INTO ZSFNOTETAG (Z_PK, ZTITLE, ZMODIFICATIONDATE)
VALUES
  (1, 'work', 0),
  (2, 'personal', 0);

INSERT INTO Z_{note_ent}TAGS (Z_{note_ent}NOTES, Z_{tag_ent}TAGS)
VALUES
  (1, 1),
  (2, 2);

INSERT INTO ZSFNOTEBACKLINK (ZLINKEDBY, ZLINKINGTO)
VALUES
  (1, 2);
"""


def create_bear_db(
    path: Path,
    *,
    note_ent: int = 5,
    tag_ent: int = 13,
    seed: bool = True,
    extra_sql: str = "",
) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    con = sqlite3.connect(path)
    try:
        con.executescript(BEAR_SCHEMA.format(note_ent=note_ent, tag_ent=tag_ent))
        if seed:
            con.executescript(SAMPLE_DATA.format(note_ent=note_ent, tag_ent=tag_ent))
        if extra_sql:
            con.executescript(extra_sql)
        con.commit()
    finally:
        con.close()
    return path


@pytest.fixture()
def make_bear_db(tmp_path: Path) -> Callable[..., Path]:
    counter = {"n": 0}

    def _make(relative: str | None = None, **kwargs) -> Path:
        counter["n"] += 1
        target = tmp_path / (relative or f"bear{counter['n']}/database.sqlite")
        return create_bear_db(target, **kwargs)

    return _make


@pytest.fixture()
def bear_db_path(make_bear_db: Callable[..., Path]) -> Path:
    return make_bear_db()


@pytest.fixture()
def bear_db(bear_db_path: Path) -> BearDb:
    return BearDb(bear_db_path, settings=BearQuerySettings())


@contextmanager
def open_gateway(db_path: Path) -> Iterator[QueryGateway]:
    storage = ReadOnlyStorage(db_path)
    with storage.connection() as conn:
        views = generate_view_definitions(discover_metadata(conn))
        yield QueryGateway(conn, views)


@pytest.fixture()
def gateway_for() -> Callable[[Path], object]:
    return open_gateway


@pytest.fixture()
def gateway(bear_db_path: Path) -> Iterator[QueryGateway]:
    with open_gateway(bear_db_path) as gw:
        yield gw
