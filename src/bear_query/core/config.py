from __future__ import annotations

import copy
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml
from jsonschema import ValidationError, validate

from .errors import ConfigError
from .utils import env_int, env_path, resolve_env_placeholders


SETTINGS_SCHEMA: dict[str, Any] = {
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "db_path": {"type": ["string", "null"], "default": None},
        "busy_timeout_ms": {"type": "integer", "minimum": 0, "default": 5000},
        "connect_timeout_s": {"type": "number", "exclusiveMinimum": 0, "default": 5.0},
        "notes_limit": {"type": "integer", "minimum": 1, "default": 10},
    },
}

_ENV_OVERRIDES = {
    "busy_timeout_ms": "BEAR_QUERY_BUSY_TIMEOUT_MS",
    "notes_limit": "BEAR_QUERY_NOTES_LIMIT",
}


@dataclass(frozen=True)
class BearQuerySettings:
    db_path: Path | None = None
    busy_timeout_ms: int = 5000
    connect_timeout_s: float = 5.0
    notes_limit: int = 10


def load_settings(path: str | Path | None) -> dict[str, Any]:
    if not path:
        return {}
    path = Path(path)
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Unable to read settings file {path}: {exc}") from exc
    try:
        if path.suffix == ".json":
            payload = json.loads(content)
        else:
            payload = yaml.safe_load(content)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise ConfigError(f"Unable to parse settings file {path}: {exc}") from exc
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ConfigError(f"Settings file {path} must contain a mapping")
    return payload


def _apply_defaults(schema: dict[str, Any], instance: dict[str, Any]) -> dict[str, Any]:
    for key, prop_schema in sorted((schema.get("properties") or {}).items()):
        if key not in instance and "default" in prop_schema:
            instance[key] = copy.deepcopy(prop_schema["default"])
    return instance


def resolve_settings(raw: dict[str, Any] | None = None) -> BearQuerySettings:
    """Defaults, then the settings mapping, then `BEAR_QUERY_*` environment variables."""

    try:
        resolved = resolve_env_placeholders(copy.deepcopy(raw or {}))
        for key, env_name in _ENV_OVERRIDES.items():
            value = env_int(env_name)
            if value is not None:
                resolved[key] = value
    except ValueError as exc:
        raise ConfigError(str(exc)) from exc
    env_db_path = env_path("BEAR_QUERY_DB_PATH")
    if env_db_path is not None:
        resolved["db_path"] = str(env_db_path)
    _apply_defaults(SETTINGS_SCHEMA, resolved)
    try:
        validate(instance=resolved, schema=SETTINGS_SCHEMA)
    except ValidationError as exc:
        raise ConfigError(f"Invalid settings: {exc.message}") from exc
    db_path = resolved.get("db_path")
    return BearQuerySettings(
        db_path=Path(db_path).expanduser() if db_path else None,
        busy_timeout_ms=int(resolved["busy_timeout_ms"]),
        connect_timeout_s=float(resolved["connect_timeout_s"]),
        notes_limit=int(resolved["notes_limit"]),
    )


def settings_from_file(path: str | Path | None) -> BearQuerySettings:
    return resolve_settings(load_settings(path))
