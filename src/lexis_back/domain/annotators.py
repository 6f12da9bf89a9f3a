"""
Annotators for viewer-specific fields.

Each annotator attaches one derived field to every record it is given, issues
at most one parameterised query regardless of how many records there are, and
does nothing for an empty list.
"""

from __future__ import annotations

import logging
from typing import Any

from lexis_back.domain.enums import default_vocabs_by_level
from lexis_back.runtime.errors import ViewResolutionError
from lexis_back.runtime.repository import DatabaseManager
from lexis_back.specs.context import FetchContext
from lexis_back.specs.fetch_spec import Record

logger = logging.getLogger(__name__)


def _database(context: FetchContext) -> DatabaseManager:
    if context.db is None:
        raise ViewResolutionError("Fetch context has no database for annotation")
    return context.db


def _placeholders(values: list[Any]) -> str:
    return ", ".join("?" * len(values))


def _record_ids(records: list[Record]) -> list[Any]:
    return list(dict.fromkeys(r["id"] for r in records))


# =============================================================================
# Vocab Level Histograms
# =============================================================================


_TEXT_VOCAB_LEVELS_SQL = """
SELECT tv."textId" AS "ownerId", COALESCE(lv."level", 0) AS "level", COUNT(*) AS "count"
FROM "MapTextVocab" tv
LEFT JOIN "MapLearnerVocab" lv ON lv."vocabId" = tv."vocabId" AND lv."learnerId" = ?
WHERE tv."textId" IN ({placeholders})
GROUP BY tv."textId", COALESCE(lv."level", 0)
"""

_COLLECTION_VOCAB_LEVELS_SQL = """
SELECT t."collectionId" AS "ownerId", COALESCE(lv."level", 0) AS "level", COUNT(*) AS "count"
FROM "Text" t
JOIN "MapTextVocab" tv ON tv."textId" = t."id"
LEFT JOIN "MapLearnerVocab" lv ON lv."vocabId" = tv."vocabId" AND lv."learnerId" = ?
WHERE t."collectionId" IN ({placeholders})
GROUP BY t."collectionId", COALESCE(lv."level", 0)
"""


def _annotate_vocabs_by_level(records: list[Record], context: FetchContext, query: str) -> None:
    user = context.require_user("vocabsByLevel")
    if not records:
        return
    ids = _record_ids(records)
    rows = _database(context).fetch_all(
        query.format(placeholders=_placeholders(ids)), [user.profile_id, *ids]
    )

    counts: dict[Any, dict[int, int]] = {}
    for row in rows:
        counts.setdefault(row["ownerId"], {})[int(row["level"])] = row["count"]

    for record in records:
        record["vocabsByLevel"] = {**default_vocabs_by_level(), **counts.get(record["id"], {})}


async def annotate_texts_vocabs_by_level(texts: list[Record], context: FetchContext) -> None:
    """Per-level count of the vocabs of each text, for the current learner."""
    _annotate_vocabs_by_level(texts, context, _TEXT_VOCAB_LEVELS_SQL)


async def annotate_collections_vocabs_by_level(collections: list[Record], context: FetchContext) -> None:
    """
    Per-level count of vocab occurrences across each collection's texts.

    A vocab that appears in several texts of a collection is counted once per text.
    """
    _annotate_vocabs_by_level(collections, context, _COLLECTION_VOCAB_LEVELS_SQL)


# =============================================================================
# Bookmarks
# =============================================================================


def _annotate_is_bookmarked(
    records: list[Record], context: FetchContext, table: str, key: str
) -> None:
    if not records:
        return
    if not context.is_authenticated:
        for record in records:
            record["isBookmarked"] = False
        return

    user = context.require_user("isBookmarked")
    ids = _record_ids(records)
    rows = _database(context).fetch_all(
        f'SELECT "{key}" AS "ownerId" FROM "{table}" '
        f'WHERE "bookmarkerId" = ? AND "{key}" IN ({_placeholders(ids)})',
        [user.profile_id, *ids],
    )
    bookmarked = {row["ownerId"] for row in rows}
    for record in records:
        record["isBookmarked"] = record["id"] in bookmarked


async def annotate_texts_is_bookmarked(texts: list[Record], context: FetchContext) -> None:
    """Whether the viewer bookmarked each text (False for anonymous viewers)."""
    _annotate_is_bookmarked(texts, context, "TextBookmark", "textId")


async def annotate_collections_is_bookmarked(collections: list[Record], context: FetchContext) -> None:
    """Whether the viewer bookmarked each collection (False for anonymous viewers)."""
    _annotate_is_bookmarked(collections, context, "CollectionBookmark", "collectionId")
