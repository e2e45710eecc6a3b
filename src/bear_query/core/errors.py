from __future__ import annotations


class BearQueryError(Exception):
    """Base class for every error raised by bear_query.

    `reason` is a short machine-readable code so callers can branch on the
    failure without parsing messages.
    """

    default_reason = "error"

    def __init__(self, message: str, *, reason: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.reason = reason or self.default_reason


class DatabaseNotFoundError(BearQueryError):
    default_reason = "database_not_found"


class ConfigError(BearQueryError):
    default_reason = "invalid_config"


class SchemaDiscoveryError(BearQueryError):
    default_reason = "schema_discovery"


class QueryError(BearQueryError):
    default_reason = "query"

    def __init__(self, message: str, *, sql: str | None = None, reason: str | None = None) -> None:
        super().__init__(message, reason=reason)
        self.sql = sql


class TabulizeError(BearQueryError):
    default_reason = "tabulize"
