from __future__ import annotations

from .schema import SchemaMetadata
from .utils import quote_identifier


# Seconds between the Unix epoch and the Core Data reference date (2001-01-01 UTC).
CORE_DATA_EPOCH_OFFSET = 978307200

# Relation name -> column names. Queries issued through the gateway may rely on
# exactly these; they do not change when Bear renames its junction table.
STABLE_RELATIONS: dict[str, tuple[str, ...]] = {
    "entities": (
        "id",
        "unique_id",
        "title",
        "content",
        "modified",
        "created",
        "is_pinned",
        "is_trashed",
        "is_archived",
    ),
    "labels": ("id", "name", "modified"),
    "entity_labels": ("entity_id", "label_id"),
    "entity_links": ("from_entity_id", "to_entity_id"),
    "notes": (
        "id",
        "unique_id",
        "title",
        "content",
        "modified",
        "created",
        "is_pinned",
        "is_trashed",
        "is_archived",
    ),
    "tags": ("id", "name", "modified"),
    "note_tags": ("note_id", "tag_id"),
    "note_links": ("from_note_id", "to_note_id"),
}


def core_data_datetime(expr: str) -> str:
    return f"datetime({expr} + {CORE_DATA_EPOCH_OFFSET}, 'unixepoch')"


_TEMPLATE = """
WITH
  entities AS (
    SELECT
      n.Z_PK AS id,
      n.ZUNIQUEIDENTIFIER AS unique_id,
      n.ZTITLE AS title,
      n.ZTEXT AS content,
      {note_modified} AS modified,
      {note_created} AS created,
      n.ZPINNED AS is_pinned,
      n.ZTRASHED AS is_trashed,
      n.ZARCHIVED AS is_archived
    FROM ZSFNOTE AS n
  ),
  labels AS (
    SELECT
      t.Z_PK AS id,
      t.ZTITLE AS name,
      {tag_modified} AS modified
    FROM ZSFNOTETAG AS t
  ),
  entity_labels AS (
    SELECT
      nt.{notes_column} AS entity_id,
      nt.{tags_column} AS label_id
    FROM {junction_table} AS nt
  ),
  entity_links AS (
    SELECT
      nl.ZLINKEDBY AS from_entity_id,
      nl.ZLINKINGTO AS to_entity_id
    FROM ZSFNOTEBACKLINK AS nl
  ),
  notes AS (
    SELECT * FROM entities
  ),
  tags AS (
    SELECT * FROM labels
  ),
  note_tags AS (
    SELECT entity_id AS note_id, label_id AS tag_id FROM entity_labels
  ),
  note_links AS (
    SELECT from_entity_id AS from_note_id, to_entity_id AS to_note_id FROM entity_links
  )
"""


def generate_view_definitions(metadata: SchemaMetadata) -> str:
    """Render the normalizing `WITH` clause for one database instance.

    Pure: the same metadata always yields the same text. The clause ends
    without a trailing comma so any SELECT can follow it directly.
    """

    return _TEMPLATE.format(
        note_modified=core_data_datetime("n.ZMODIFICATIONDATE"),
        note_created=core_data_datetime("n.ZCREATIONDATE"),
        tag_modified=core_data_datetime("t.ZMODIFICATIONDATE"),
        notes_column=quote_identifier(metadata.junction_notes_column),
        tags_column=quote_identifier(metadata.junction_tags_column),
        junction_table=quote_identifier(metadata.junction_table),
    )
