from __future__ import annotations

import json
import os
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable


Logger = Callable[[str], None]


def null_logger(msg: str) -> None:
    pass


def ensure_dir(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)


def json_dumps(data: Any) -> str:
    return json.dumps(data, ensure_ascii=False, indent=2, sort_keys=True, default=str)


_IDENT_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def is_safe_identifier(name: str) -> bool:
    return bool(_IDENT_RE.match(name or ""))


def quote_identifier(name: str) -> str:
    if not is_safe_identifier(name):
        raise ValueError(f"Unsafe identifier: {name}")
    return f"\"{name}\""


def env_int(name: str) -> int | None:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer (got {raw!r})") from exc


def env_path(name: str) -> Path | None:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return None
    return Path(raw).expanduser()


_ENV_PLACEHOLDER_RE = re.compile(r"^\$\{ENV:([A-Z0-9_]+)\}$")


def resolve_env_placeholders(value: Any) -> Any:
    """Resolve `${ENV:NAME}` strings to their environment variable values."""

    if isinstance(value, str):
        match = _ENV_PLACEHOLDER_RE.match(value.strip())
        if not match:
            return value
        name = match.group(1)
        if name not in os.environ:
            raise ValueError(f"Missing environment variable: {name}")
        return os.environ[name]
    if isinstance(value, list):
        return [resolve_env_placeholders(item) for item in value]
    if isinstance(value, dict):
        return {k: resolve_env_placeholders(v) for k, v in value.items()}
    return value


def parse_sqlite_datetime(value: Any) -> datetime | None:
    """Parse SQLite's `datetime()` output ("YYYY-MM-DD HH:MM:SS") as UTC."""

    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def file_logger(path: Path) -> Logger:
    def _write_log(msg: str) -> None:
        ensure_dir(path.parent)
        with path.open("a", encoding="utf-8") as handle:
            handle.write(msg + "\n")

    return _write_log


def tee_loggers(*loggers: Logger | None) -> Logger:
    active = [logger for logger in loggers if logger is not None]
    if not active:
        return null_logger

    def _log(msg: str) -> None:
        for logger in active:
            logger(msg)

    return _log
