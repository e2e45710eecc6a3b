from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from .errors import BearQueryError, DatabaseNotFoundError
from .utils import Logger, null_logger


BEAR_DB_RELATIVE_PATH = Path(
    "Library/Group Containers/9K33E3U3T4.net.shinyfrog.bear/Application Data/database.sqlite"
)

_DENIED_ACTIONS = {
    sqlite3.SQLITE_INSERT,
    sqlite3.SQLITE_UPDATE,
    sqlite3.SQLITE_DELETE,
    sqlite3.SQLITE_TRANSACTION,
    sqlite3.SQLITE_CREATE_TABLE,
    sqlite3.SQLITE_DROP_TABLE,
    sqlite3.SQLITE_ALTER_TABLE,
    sqlite3.SQLITE_CREATE_INDEX,
    sqlite3.SQLITE_DROP_INDEX,
    sqlite3.SQLITE_CREATE_TRIGGER,
    sqlite3.SQLITE_DROP_TRIGGER,
    sqlite3.SQLITE_CREATE_VIEW,
    sqlite3.SQLITE_DROP_VIEW,
    sqlite3.SQLITE_CREATE_TEMP_TABLE,
    sqlite3.SQLITE_CREATE_TEMP_VIEW,
    sqlite3.SQLITE_ATTACH,
    sqlite3.SQLITE_DETACH,
}


def default_db_path(home: Path | None = None) -> Path:
    if home is None:
        try:
            home = Path.home()
        except RuntimeError as exc:
            raise DatabaseNotFoundError(
                "Unable to determine the user's home directory", reason="no_home_directory"
            ) from exc
    return home / BEAR_DB_RELATIVE_PATH


def _read_only_authorizer(action_code: int, param1: str, param2: str, dbname: str, source: str) -> int:
    if action_code == sqlite3.SQLITE_FUNCTION and str(param2 or "").lower() == "load_extension":
        return sqlite3.SQLITE_DENY
    if action_code in _DENIED_ACTIONS:
        return sqlite3.SQLITE_DENY
    return sqlite3.SQLITE_OK


class ReadOnlyStorage:
    """Short-lived, read-only connections to a database another process owns.

    Bear keeps writing to its database while we read, so nothing is held open
    between calls: every `connection()` opens, queries and closes.
    """

    def __init__(
        self,
        db_path: Path,
        *,
        busy_timeout_ms: int = 5000,
        connect_timeout: float = 5.0,
        logger: Logger | None = None,
    ) -> None:
        self.db_path = Path(db_path)
        self.busy_timeout_ms = int(busy_timeout_ms)
        self.connect_timeout = float(connect_timeout)
        self._log = logger or null_logger

    def _connect(self) -> sqlite3.Connection:
        if not self.db_path.is_file():
            raise DatabaseNotFoundError(f"Bear database not found at {self.db_path}")
        uri = f"{self.db_path.resolve().as_uri()}?mode=ro"
        try:
            conn = sqlite3.connect(uri, uri=True, check_same_thread=False, timeout=self.connect_timeout)
        except sqlite3.Error as exc:
            raise BearQueryError(f"Unable to open {self.db_path}: {exc}", reason="connect") from exc
        try:
            conn.row_factory = sqlite3.Row
            conn.execute(f"PRAGMA busy_timeout = {self.busy_timeout_ms}")
            conn.execute("PRAGMA query_only = ON")
            conn.set_authorizer(_read_only_authorizer)
        except sqlite3.Error as exc:
            conn.close()
            raise BearQueryError(f"Unable to configure connection: {exc}", reason="connect") from exc
        return conn

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        conn = self._connect()
        self._log(f"[storage] opened {self.db_path}")
        try:
            yield conn
        finally:
            conn.close()
            self._log(f"[storage] closed {self.db_path}")
