"""
Field fetch specs of the language-learning domain.

Each entity type gets a factory; relations point at other types through
``registry.ref()`` so cycles (Text -> Collection -> Text, User -> Profile ->
User) are resolved lazily.
"""

from __future__ import annotations

from lexis_back.domain.annotators import (
    annotate_collections_is_bookmarked,
    annotate_collections_vocabs_by_level,
    annotate_texts_is_bookmarked,
    annotate_texts_vocabs_by_level,
)
from lexis_back.domain.filters import learner_meanings_filter, texts_visible_in_context
from lexis_back.specs.fetch_spec import (
    DB_COLUMN,
    FORMULA,
    AnnotatedFetchSpec,
    EntityFetchSpecs,
    FetchSpecRegistry,
    RelationFetchSpec,
)


def _columns(*names: str) -> dict[str, object]:
    return {name: DB_COLUMN for name in names}


def build_fetch_spec_registry() -> FetchSpecRegistry:
    """Register the fetch specs of every exposed entity type."""
    registry = FetchSpecRegistry()

    def to_one(populate: str, entity_name: str) -> RelationFetchSpec:
        return RelationFetchSpec(
            populate=populate, entity_fetch_specs=registry.ref(entity_name), relation_type="to-one"
        )

    def to_many(populate: str, entity_name: str, context_filter=None) -> RelationFetchSpec:
        return RelationFetchSpec(
            populate=populate,
            entity_fetch_specs=registry.ref(entity_name),
            relation_type="to-many",
            default_context_filter=context_filter,
        )

    registry.register(
        "Language",
        lambda: EntityFetchSpecs(
            "Language",
            {
                **_columns(
                    "id",
                    "code",
                    "name",
                    "greeting",
                    "secondSpeakersCount",
                    "flag",
                    "flagCircular",
                    "flagEmoji",
                    "color",
                    "isRtl",
                    "isAbjad",
                    "levelThresholds",
                ),
                "learnersCount": FORMULA,
            },
        ),
    )

    registry.register(
        "User",
        lambda: EntityFetchSpecs(
            "User",
            {
                **_columns("id", "username", "email", "isEmailConfirmed", "isBanned"),
                "isPendingEmailChange": FORMULA,
                "profile": to_one("profile", "Profile"),
            },
        ),
    )

    registry.register(
        "Profile",
        lambda: EntityFetchSpecs(
            "Profile",
            {
                **_columns("id", "profilePicture", "bio", "isPublic"),
                "user": to_one("user", "User"),
                "languagesLearning": to_many("languagesLearning", "Language"),
            },
        ),
    )

    registry.register(
        "Collection",
        lambda: EntityFetchSpecs(
            "Collection",
            {
                **_columns("id", "title", "description", "image", "addedOn", "isPublic"),
                "avgPastViewersCountPerText": FORMULA,
                "language": to_one("language", "Language"),
                "addedBy": to_one("addedBy", "Profile"),
                "texts": to_many("texts", "Text", texts_visible_in_context),
                "vocabsByLevel": AnnotatedFetchSpec(annotate=annotate_collections_vocabs_by_level),
                "isBookmarked": AnnotatedFetchSpec(annotate=annotate_collections_is_bookmarked),
            },
        ),
    )

    registry.register(
        "Text",
        lambda: EntityFetchSpecs(
            "Text",
            {
                **_columns(
                    "id",
                    "title",
                    "content",
                    "parsedTitle",
                    "parsedContent",
                    "audio",
                    "image",
                    "orderInCollection",
                    "isProcessing",
                    "addedOn",
                    "isPublic",
                    "level",
                ),
                "isLastInCollection": FORMULA,
                "pastViewersCount": FORMULA,
                "language": to_one("language", "Language"),
                "addedBy": to_one("addedBy", "Profile"),
                "collection": to_one("collection", "Collection"),
                "vocabsByLevel": AnnotatedFetchSpec(annotate=annotate_texts_vocabs_by_level),
                "isBookmarked": AnnotatedFetchSpec(annotate=annotate_texts_is_bookmarked),
            },
        ),
    )

    registry.register(
        "TextHistoryEntry",
        lambda: EntityFetchSpecs(
            "TextHistoryEntry",
            {
                **_columns("id", "timeViewed"),
                "text": to_one("text", "Text"),
                "pastViewer": to_one("pastViewer", "Profile"),
            },
        ),
    )

    registry.register(
        "Vocab",
        lambda: EntityFetchSpecs(
            "Vocab",
            {
                **_columns("id", "text", "isPhrase"),
                "learnersCount": FORMULA,
                "textsCount": FORMULA,
                "language": to_one("language", "Language"),
                "meanings": to_many("meanings", "Meaning"),
                "learnerMeanings": to_many("learnerMeanings", "Meaning", learner_meanings_filter),
            },
        ),
    )

    registry.register(
        "Meaning",
        lambda: EntityFetchSpecs(
            "Meaning",
            {
                **_columns("id", "text", "addedOn", "attribution"),
                "learnersCount": FORMULA,
                "vocab": to_one("vocab", "Vocab"),
                "addedBy": to_one("addedBy", "Profile"),
                "language": to_one("language", "Language"),
            },
        ),
    )

    registry.register(
        "MapLearnerVocab",
        lambda: EntityFetchSpecs(
            "MapLearnerVocab",
            {
                **_columns("id", "level", "notes", "savedOn"),
                "vocab": to_one("vocab", "Vocab"),
                "learner": to_one("learner", "Profile"),
            },
        ),
    )

    registry.register(
        "MapLearnerLanguage",
        lambda: EntityFetchSpecs(
            "MapLearnerLanguage",
            {
                **_columns("id", "startedLearningOn", "lastOpened"),
                "language": to_one("language", "Language"),
                "learner": to_one("learner", "Profile"),
            },
        ),
    )

    registry.register(
        "Dictionary",
        lambda: EntityFetchSpecs(
            "Dictionary",
            {
                **_columns("id", "name", "lookupLink", "dictionaryLink", "isPronunciation"),
                "language": to_one("language", "Language"),
            },
        ),
    )

    return registry
