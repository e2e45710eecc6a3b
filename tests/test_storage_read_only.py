from __future__ import annotations

import sqlite3
from pathlib import Path

import pytest

from bear_query.core.errors import DatabaseNotFoundError
from bear_query.core.storage import BEAR_DB_RELATIVE_PATH, ReadOnlyStorage, default_db_path


def test_storage_rejects_insert(bear_db_path: Path) -> None:
    storage = ReadOnlyStorage(bear_db_path)
    with storage.connection() as conn, pytest.raises(sqlite3.DatabaseError):
        conn.execute("INSERT INTO ZSFNOTETAG (Z_PK, ZTITLE) VALUES (99, 'nope')")


@pytest.mark.parametrize(
    "sql",
    [
        "UPDATE ZSFNOTE SET ZTITLE = 'x'",
        "DELETE FROM ZSFNOTE",
        "CREATE TABLE t (x INTEGER)",
        "DROP TABLE ZSFNOTE",
        "ATTACH DATABASE ':memory:' AS other",
    ],
)
def test_storage_rejects_writes_and_attach(bear_db_path: Path, sql: str) -> None:
    storage = ReadOnlyStorage(bear_db_path)
    with storage.connection() as conn, pytest.raises(sqlite3.DatabaseError):
        conn.execute(sql)


def test_storage_leaves_data_untouched(bear_db_path: Path) -> None:
    storage = ReadOnlyStorage(bear_db_path)
    with storage.connection() as conn:
        with pytest.raises(sqlite3.DatabaseError):
            conn.execute("DELETE FROM ZSFNOTE")
    con = sqlite3.connect(bear_db_path)
    try:
        assert con.execute("SELECT COUNT(*) FROM ZSFNOTE").fetchone()[0] == 3
    finally:
        con.close()


def test_storage_sets_pragmas(bear_db_path: Path) -> None:
    storage = ReadOnlyStorage(bear_db_path, busy_timeout_ms=1234)
    with storage.connection() as conn:
        assert conn.execute("PRAGMA busy_timeout").fetchone()[0] == 1234
        assert conn.execute("PRAGMA query_only").fetchone()[0] == 1


def test_storage_closes_connection(bear_db_path: Path) -> None:
    storage = ReadOnlyStorage(bear_db_path)
    with storage.connection() as conn:
        pass
    with pytest.raises(sqlite3.ProgrammingError):
        conn.execute("SELECT 1")


def test_storage_missing_file(tmp_path: Path) -> None:
    storage = ReadOnlyStorage(tmp_path / "missing.sqlite")
    with pytest.raises(DatabaseNotFoundError):
        with storage.connection():
            pass
    assert not (tmp_path / "missing.sqlite").exists()


def test_storage_path_with_spaces(make_bear_db) -> None:
    path = make_bear_db("Group Containers/Application Data/database.sqlite")
    storage = ReadOnlyStorage(path)
    with storage.connection() as conn:
        assert conn.execute("SELECT COUNT(*) FROM ZSFNOTE").fetchone()[0] == 3


def test_default_db_path_under_home(tmp_path: Path) -> None:
    assert default_db_path(tmp_path) == tmp_path / BEAR_DB_RELATIVE_PATH
    assert default_db_path(tmp_path).name == "database.sqlite"
