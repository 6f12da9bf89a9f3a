"""
Language-learning domain: schema, fetch specs, filters, annotators and views.
"""

from lexis_back.domain.annotators import (
    annotate_collections_is_bookmarked,
    annotate_collections_vocabs_by_level,
    annotate_texts_is_bookmarked,
    annotate_texts_vocabs_by_level,
)
from lexis_back.domain.enums import VocabLevel, default_vocabs_by_level
from lexis_back.domain.fetch_specs import build_fetch_spec_registry
from lexis_back.domain.filters import learner_meanings_filter, text_visibility_filter
from lexis_back.domain.schema import ENTITIES

__all__ = [
    "ENTITIES",
    "VocabLevel",
    "default_vocabs_by_level",
    "build_fetch_spec_registry",
    "text_visibility_filter",
    "learner_meanings_filter",
    "annotate_texts_vocabs_by_level",
    "annotate_texts_is_bookmarked",
    "annotate_collections_vocabs_by_level",
    "annotate_collections_is_bookmarked",
]
