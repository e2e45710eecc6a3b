from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Any

from bear_query.core.config import resolve_settings, load_settings
from bear_query.core.db import BearDb
from bear_query.core.errors import BearQueryError
from bear_query.core.models import NotesQuery
from bear_query.core.utils import Logger, file_logger, json_dumps, tee_loggers


def _stderr_logger(msg: str) -> None:
    print(msg, file=sys.stderr)


def open_db(args: argparse.Namespace) -> BearDb:
    settings = resolve_settings(load_settings(args.settings))
    verbose: Logger | None = _stderr_logger if args.verbose else None
    log_file: Logger | None = file_logger(Path(args.log_file)) if args.log_file else None
    return BearDb(args.db, settings=settings, logger=tee_loggers(verbose, log_file))


def cmd_tags(db: BearDb) -> None:
    for tag in db.tags():
        print(tag.name if tag.name is not None else "[unnamed]")


def cmd_notes(db: BearDb, args: argparse.Namespace) -> None:
    limit = args.limit if args.limit is not None else db.settings.notes_limit
    query = NotesQuery(
        limit=limit if limit > 0 else None,
        include_trashed=bool(args.include_trashed),
        include_archived=bool(args.include_archived),
        pinned_only=bool(args.pinned),
        search=args.search,
    )
    tags = db.tags() if args.tags else None
    for note in db.notes(query):
        print(note.title)
        if args.links:
            for link in db.note_links(note.id):
                print(f"  Linked: {link.title}")
        if tags is not None:
            names = sorted(tags.names(db.note_tags(note.id)))
            print(f"  Tags: {', '.join(names)}")


def cmd_query(db: BearDb, sql: str, fmt: str) -> None:
    df = db.query(sql)
    if fmt == "csv":
        sys.stdout.write(df.to_csv(index=False))
    elif fmt == "json":
        print(df.to_json(orient="records", date_format="iso", default_handler=str))
    else:
        print(df.to_string(index=False))


def cmd_schema(db: BearDb, views: bool) -> None:
    payload: dict[str, Any] = {"db_path": str(db.db_path), **db.metadata.as_dict()}
    print(json_dumps(payload))
    if views:
        print(db.view_definitions.strip())


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="bear-query")
    parser.add_argument("--db", help="Path to Bear's database.sqlite")
    parser.add_argument("--settings", help="YAML or JSON settings file")
    parser.add_argument("--verbose", action="store_true")
    parser.add_argument("--log-file")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("tags")

    notes_parser = sub.add_parser("notes")
    notes_parser.add_argument("--limit", type=int, help="0 for no limit")
    notes_parser.add_argument("--include-trashed", action="store_true")
    notes_parser.add_argument("--include-archived", action="store_true")
    notes_parser.add_argument("--pinned", action="store_true")
    notes_parser.add_argument("--search")
    notes_parser.add_argument("--links", action="store_true")
    notes_parser.add_argument("--tags", action="store_true")

    query_parser = sub.add_parser("query")
    query_parser.add_argument("sql")
    query_parser.add_argument("--format", choices=["table", "csv", "json"], default="table")

    schema_parser = sub.add_parser("schema")
    schema_parser.add_argument("--views", action="store_true")
    return parser


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    try:
        db = open_db(args)
        if args.command == "tags":
            cmd_tags(db)
        elif args.command == "notes":
            cmd_notes(db, args)
        elif args.command == "query":
            cmd_query(db, args.sql, args.format)
        elif args.command == "schema":
            cmd_schema(db, bool(args.views))
        else:
            raise SystemExit(2)
    except BearQueryError as exc:
        raise SystemExit(f"error ({exc.reason}): {exc.message}") from exc


if __name__ == "__main__":
    main()
